from __future__ import annotations

import logging
import os
import sys

_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Safe to call more than once; later calls only change the level.
    """
    level_name = (level or os.getenv("ORCH_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger("agent_orchestrator")
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if not any(getattr(handler, "_orchestrator", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._orchestrator = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.propagate = False
    return root
