import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Logger that every dpuplan module hangs off via getLogger(__name__).
ENGINE_LOGGER = "dpuplan"


def _level(value: str | None, fallback: int) -> int:
    if value is None:
        return fallback
    numeric = getattr(logging, str(value).upper(), None)
    if not isinstance(numeric, int):
        print(f"Invalid log level: {value}, defaulting to {logging.getLevelName(fallback)}")
        return fallback
    return numeric


def configure_logging(level: str = "INFO", *, engine_level: str | None = None) -> None:
    """Send log records to stdout, one line each.

    ``level`` applies to the root logger. ``engine_level`` sets the
    ``dpuplan`` logger on its own, so the allocator and forecaster can run at
    DEBUG while pandas and numpy stay at ``level``. Left as None, the engine
    follows the root level.
    """
    root_level = _level(level, logging.INFO)

    # "2025-10-01 10:00:00 [WARNING] dpuplan.targets.allocator: Baseline Sep-25 has..."
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    # main() may run more than once per process (tests, notebooks)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    engine = logging.getLogger(ENGINE_LOGGER)
    engine.setLevel(_level(engine_level, logging.NOTSET))

    logging.getLogger("numexpr").setLevel(logging.WARNING)
