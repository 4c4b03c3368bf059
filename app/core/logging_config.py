import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def configure_logging(level: str = None) -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)
    # boto is chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
