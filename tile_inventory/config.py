"""Environment-driven settings and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DATA_DIR = "./data"
STOCK_FILE_NAME = "stocks.json"


def _env(*names: str, default: str = "") -> str:
    """
    Return the first non-empty value among the given environment variables.
    """
    for n in names:
        v = (os.getenv(n) or "").strip()
        if v:
            return v
    return (default or "").strip()


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    upload_dir: Path
    stock_file: Path
    log_level: str


def load_settings() -> Settings:
    load_dotenv()

    data_dir = Path(_env("DATA_DIR", default=DEFAULT_DATA_DIR))
    upload_dir = Path(_env("UPLOAD_DIR", default=str(data_dir / "uploads")))
    stock_file = Path(_env("STOCK_FILE", default=str(data_dir / STOCK_FILE_NAME)))

    return Settings(
        data_dir=data_dir,
        upload_dir=upload_dir,
        stock_file=stock_file,
        log_level=_env("LOG_LEVEL", default="INFO").upper(),
    )


def setup_logging(level: str | None = None) -> None:
    level = (level or _env("LOG_LEVEL", default="INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
