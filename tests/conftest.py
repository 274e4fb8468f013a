"""Shared test fixtures."""

import sys
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from debt.domain.models import UserSettings  # noqa: E402
from tests.fakes import InMemorySleepStore  # noqa: E402

UTC_ZONE = ZoneInfo("UTC")
NEW_YORK = ZoneInfo("America/New_York")


@pytest.fixture
def tz():
    return UTC_ZONE


@pytest.fixture
def user_settings():
    """Defaults: 8h goal, 04:00 day boundary."""
    return UserSettings()


@pytest.fixture
def store():
    return InMemorySleepStore()
