import io
import logging
import pytest
from rich.console import Console
from rich.logging import RichHandler

from unified_ledger.config.settings import AppSettings
from unified_ledger.logging_setup import LEVEL_ENV_VAR, PACKAGE_LOGGER, configure_logging, resolve_level


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200)


@pytest.fixture(autouse=True)
def restore_loggers():
    """Undo whatever configure_logging did to the package loggers."""
    yield
    package = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package.handlers):
        if isinstance(handler, RichHandler):
            package.removeHandler(handler)
    package.setLevel(logging.NOTSET)
    package.propagate = True
    logging.getLogger("unified_ledger.sync").setLevel(logging.NOTSET)


@pytest.mark.unit
class TestResolveLevel:

    @pytest.mark.parametrize("name, expected", [
        ("info", logging.INFO),
        (" DEBUG ", logging.DEBUG),
        ("15", 15),
        ("loud", logging.WARNING),
        ("", logging.WARNING),
        (None, logging.WARNING),
    ])
    def test_names(self, name, expected):
        assert resolve_level(name) == expected


@pytest.mark.unit
class TestConfigureLogging:

    def test_settings_level(self, console, monkeypatch):
        monkeypatch.delenv(LEVEL_ENV_VAR, raising=False)

        logger = configure_logging(AppSettings(log_level="ERROR"), console=console)

        assert logger.level == logging.ERROR
        assert logger.propagate is False

    def test_env_beats_settings_and_verbose_beats_env(self, console, monkeypatch):
        monkeypatch.setenv(LEVEL_ENV_VAR, "info")

        assert configure_logging(AppSettings(log_level="ERROR"), console=console).level == logging.INFO
        assert configure_logging(AppSettings(log_level="ERROR"), verbose=True, console=console).level == logging.DEBUG

    def test_module_levels(self, console, monkeypatch):
        # Arrange
        monkeypatch.delenv(LEVEL_ENV_VAR, raising=False)
        settings = AppSettings(log_level="WARNING", log_levels={"unified_ledger.sync": "INFO"})
        configure_logging(settings, console=console)

        # Act
        logging.getLogger("unified_ledger.sync.coordinator").info("Refreshing trading212")
        logging.getLogger("unified_ledger.parsers.trading212_csv").info("Parsed 3 rows")

        # Assert
        output = console.file.getvalue()
        assert "Refreshing trading212" in output
        assert "unified_ledger.sync.coordinator" in output
        assert "Parsed 3 rows" not in output

    def test_reconfiguring_replaces_the_handler(self, console):
        configure_logging(console=console)
        configure_logging(console=console)

        handlers = logging.getLogger(PACKAGE_LOGGER).handlers

        assert len([h for h in handlers if isinstance(h, RichHandler)]) == 1
        assert not any(isinstance(h, logging.NullHandler) for h in handlers)
