import logging

from app.core.config import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or config.log_level).upper(),
        format=LOG_FORMAT,
    )
    # the scheduler reports every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
