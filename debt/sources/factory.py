"""Source factory: returns the fixture or live interval source based on config."""

from debt.sources.protocol import IntervalSource
from shared.config import settings


def get_source() -> IntervalSource:
    """Return the interval source for ``settings.source_mode``.

    - fixture mode: revisioned change log read from ``settings.fixture_path``
    - live mode: HTTP bridge at ``settings.source_base_url``
    """
    if settings.source_mode == "live":
        from debt.sources.http_source import HttpIntervalSource

        return HttpIntervalSource()

    from debt.sources.fixture_source import FixtureIntervalSource

    return FixtureIntervalSource(settings.fixture_path)
