from __future__ import annotations

import logging
import os
import sys


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def debug_enabled() -> bool:
    return os.environ.get("DEBUG", "").strip() == "1"


def configure_logging(debug: bool | None = None) -> logging.Logger:
    """Send ``txauth`` logs to stderr; DEBUG=1 in the environment turns on debug output."""
    if debug is None:
        debug = debug_enabled()

    root = logging.getLogger("txauth")
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    if not any(getattr(handler, "_txauth_handler", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._txauth_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root
