import pytest
from structlog.testing import capture_logs


@pytest.fixture(autouse=True)
def captured_logs(monkeypatch):
    """Keep structlog uncached and in memory; entry points would otherwise bind loggers to a test's stdout."""
    monkeypatch.setattr("predvenue.cli.app.configure_logging", lambda settings: None)
    monkeypatch.setattr("predvenue.api.main.configure_logging", lambda settings: None)
    with capture_logs() as entries:
        yield entries
