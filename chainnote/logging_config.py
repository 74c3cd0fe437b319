"""Process-wide logging setup."""

import logging

_configured = False

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``chainnote`` logger.

    Idempotent: later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger("chainnote")
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    _configured = True
