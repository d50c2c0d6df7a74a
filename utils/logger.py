"""
===============================================================================
  Logging: console + rotating file output for the setup engine
===============================================================================
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import config as cfg


def setup_logging(name: Optional[str] = None) -> logging.Logger:
    """Configure the engine's root logger (default ``cfg.LOG_NAME``) once."""
    name = name or cfg.LOG_NAME
    cfg.LOG_DIR.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO))

    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s %(name)-22s │ %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # ── Console handler ──────────────────────────────────────────────────
    # stderr keeps stdout clean for the CLI's JSON output
    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # ── File handler (10 MB, 5 backups) ──────────────────────────────────
    fh = RotatingFileHandler(
        cfg.LOG_DIR / f"{name}.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


def get_logger(module: str) -> logging.Logger:
    """Return a child logger for *module*."""
    parent = logging.getLogger(cfg.LOG_NAME)
    if not parent.handlers:
        setup_logging()
    return parent.getChild(module)
