from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .io import ensure_dir

ROOT_LOGGER = "gridlab"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def get_logger(
    name: str = ROOT_LOGGER,
    level: str = "INFO",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger once (console + optional file) and return `name`.
    Children such as "gridlab.rl" propagate to the configured root.
    """
    root = logging.getLogger(ROOT_LOGGER)
    lvl = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(lvl)
    # Avoid adding multiple handlers on repeated calls
    if not root.handlers:
        fmt = logging.Formatter(LOG_FORMAT)
        ch = logging.StreamHandler()
        ch.setLevel(lvl)
        ch.setFormatter(fmt)
        root.addHandler(ch)
        if log_file:
            ensure_dir(Path(log_file).parent)
            fh = logging.FileHandler(log_file)
            fh.setLevel(lvl)
            fh.setFormatter(fmt)
            root.addHandler(fh)
    else:
        for h in root.handlers:
            h.setLevel(lvl)
    return logging.getLogger(name)
