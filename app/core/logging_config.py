import logging
import sys

from app import config


def setup_logging() -> None:
    """Configure root logging once at application startup."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # SQL statements are noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
