import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the root logger unless one is configured already."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("splitstats").setLevel(level.upper())
