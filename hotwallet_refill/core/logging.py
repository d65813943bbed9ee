import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if any(getattr(h, "_refill_handler", False) for h in root.handlers):
        root.setLevel(level.upper())
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._refill_handler = True
    root.addHandler(handler)
    root.setLevel(level.upper())
    # httpx logs every request at INFO, including signed URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
