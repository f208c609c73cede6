import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for a harness run."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # uvicorn access logs drown the session lifecycle messages
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "aioice", "aiortc"):
        logging.getLogger(name).setLevel(logging.WARNING)
