from __future__ import annotations
import logging
import logging.config
from pathlib import Path
from typing import Optional

import yaml

ROOT_LOGGER = "marketo_archive"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(config_path: Optional[str] = "configs/logging.yaml", level: Optional[str] = None) -> None:
    """
    Configure logging from a dictConfig YAML file.

    Falls back to basicConfig when the file is missing. `level` overrides the
    package logger level after the file has been applied.
    """
    path = Path(config_path) if config_path else None
    if path is None or not path.exists():
        logging.basicConfig(level=logging.INFO, format=DEFAULT_FORMAT)
    else:
        with path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
        logging.config.dictConfig(cfg)

    if level:
        logging.getLogger(ROOT_LOGGER).setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
