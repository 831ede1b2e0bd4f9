"""Logging setup, manifest JSON and input fingerprints for smoothmap runs."""

from __future__ import annotations

import hashlib
import json
import logging
from functools import partial
from pathlib import Path
from typing import Any, Iterable

import numpy as np


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME = "smoothmap.log"

# third-party loggers that flood DEBUG output during rendering and GeoJSON IO
_NOISY_LOGGERS = ("matplotlib", "PIL", "pyogrio", "fiona", "pyproj")


def setup_logging(logs_dir: Path | None = None, verbose: bool = False) -> Path | None:
    """Log to the console and, with ``logs_dir``, to ``smoothmap.log`` inside it.

    Python warnings (``UnknownOutputFormat``, ``GraticuleUnavailable``) are
    routed through logging. Returns the log file path, if any.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = None
    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / LOG_FILE_NAME
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def ensure_directories(paths: Iterable[Path]) -> None:
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_json(path: Path, payload: Any) -> None:
    """Write a run manifest; numpy scalars, arrays and paths are converted."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=_to_jsonable)
    path.write_text(text + "\n", encoding="utf-8")


def sha256_file(path: Path, chunk_size: int = 1 << 20) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(partial(fh.read, chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
