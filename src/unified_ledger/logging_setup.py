"""
Logging for the unified_ledger package.

Modules log through ``logging.getLogger(__name__)``. Nothing is emitted until
the CLI calls `configure_logging`, which routes the package logger through a
rich console on stderr.
"""
import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from unified_ledger.config.settings import AppSettings

PACKAGE_LOGGER = "unified_ledger"
LEVEL_ENV_VAR = "UNIFIED_LEDGER_LOG_LEVEL"

_handler: Optional[logging.Handler] = None

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def resolve_level(name: Optional[str], default: int = logging.WARNING) -> int:
    """Level number for a name like "info" or "10"; unknown names give `default`."""
    if not name or not name.strip():
        return default
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def configure_logging(
    settings: Optional[AppSettings] = None,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Route package logs to the console.

    The package level comes from `verbose` (DEBUG), then the
    UNIFIED_LEDGER_LOG_LEVEL environment variable, then settings.log_level.
    settings.log_levels then sets single loggers, e.g.
    {"unified_ledger.sync": "INFO"} to follow background refreshes only.

    Calling it again replaces the handler the previous call installed.

    Returns:
        The package logger
    """
    global _handler
    settings = settings or AppSettings()
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler) or handler is _handler:
            logger.removeHandler(handler)

    if verbose:
        level = logging.DEBUG
    else:
        level = resolve_level(os.getenv(LEVEL_ENV_VAR), resolve_level(settings.log_level))

    _handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    _handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(_handler)
    logger.setLevel(level)
    # Records stop here; the root logger would print them twice.
    logger.propagate = False

    for name, module_level in settings.log_levels.items():
        logging.getLogger(name).setLevel(resolve_level(module_level, level))

    return logger
