from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the process.

    Calling it again only adjusts the level, so tests and the uvicorn entry
    point can both call it without duplicating handlers.
    """

    root = logging.getLogger()
    if not any(getattr(h, "_clinic_api", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._clinic_api = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
