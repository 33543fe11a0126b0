import logging
import sys

from planning_config import PLANNING_LOG_LEVEL


def configure_logging(level: str = PLANNING_LOG_LEVEL) -> None:
    """Configures the root logger for the planning engine."""
    numeric_level = getattr(logging, str(level).upper(), None)
    invalid_level = not isinstance(numeric_level, int)
    if invalid_level:
        numeric_level = logging.INFO

    # Format: "2026-02-04 10:00:00 [INFO] planning_totals_service: Base plan ..."
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # stderr keeps stdout clean for the CLI's JSON output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates on repeated calls
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    root_logger.addHandler(handler)

    # Quiet down noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    if invalid_level:
        logging.getLogger(__name__).warning("Invalid log level %s, defaulting to INFO", level)
