class PlantTrackerError(Exception):
    """Base class for plant tracker errors."""


class PersistenceError(PlantTrackerError):
    """Reading or writing the plant/settings files failed."""


class PermissionDenied(PlantTrackerError):
    """The host refused access to notifications or pictures."""


class NotificationError(PlantTrackerError):
    """A reminder could not be registered or delivered."""


class ValidationError(PlantTrackerError):
    """User input failed validation before any mutation."""
