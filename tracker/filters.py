from watering import get_watering_status


def _matches(plant, term):
    fields = (plant.get("name"), plant.get("scientific_name"), plant.get("notes"), plant.get("room"))
    return any(term in (value or "").lower() for value in fields)


def filter_plants(plants, search_term, filter_type, manual_mode, now):
    """Apply the search term and sort order to a plant list.

    Returns:
        New list; the input is never reordered in place.
    """
    term = (search_term or "").strip().lower()
    result = [p for p in plants if _matches(p, term)] if term else list(plants)

    if filter_type == "alphabetical":
        result.sort(key=lambda p: p["name"].lower())
    elif filter_type == "room":
        result.sort(key=lambda p: (p.get("room", "").lower(), p["name"].lower()))
    elif filter_type == "watering-priority":
        def priority(plant):
            status = get_watering_status(plant, manual_mode, now)
            return (status["days_left"], -status["overdue_days"], plant["name"].lower())
        result.sort(key=priority)

    return result
