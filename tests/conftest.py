import os
import sys
from datetime import datetime, timezone

import pytest
import yaml

# Add tracker modules to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "tracker"))

from clock import FixedClock  # noqa: E402
from config import load_config  # noqa: E402


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path):
    """Config pointing all storage at a temporary directory."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"data_dir": str(tmp_path / "data")},
        "notifications": {"time": "09:00"},
    }))
    return load_config(str(path))


@pytest.fixture
def clock():
    return FixedClock(utc(2024, 1, 5, 12, 0))


@pytest.fixture
def make_plant():
    def _make(plant_id="p1", name="Monstera", last_watered=None, interval=7, **extra):
        plant = {
            "id": plant_id,
            "name": name,
            "scientific_name": "Monstera deliciosa",
            "room": "living-room",
            "image": "https://example.com/monstera.jpg",
            "last_watered": last_watered or utc(2024, 1, 1),
            "watering_interval": interval,
            "notes": "",
        }
        plant.update(extra)
        return plant
    return _make
