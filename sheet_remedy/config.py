"""Environment-driven settings and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from sheet_remedy.errors import InputError

DEFAULT_AI_MODEL = "claude-sonnet-4-20250514"
DEFAULT_AI_MAX_TOKENS = 2048
DEFAULT_AI_TIMEOUT = 60
DEFAULT_REFERENCE_TIMEOUT = 30
DEFAULT_WORKDIR = "sheet-remedy-work"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    anthropic_api_key: str | None = None
    ai_model: str = DEFAULT_AI_MODEL
    ai_max_tokens: int = DEFAULT_AI_MAX_TOKENS
    ai_timeout: int = DEFAULT_AI_TIMEOUT
    snow_instance: str | None = None
    snow_username: str | None = None
    snow_password: str | None = None
    reference_timeout: int = DEFAULT_REFERENCE_TIMEOUT
    workdir: Path = Path(DEFAULT_WORKDIR)
    log_level: str = "INFO"
    output_stamp: str | None = None

    @property
    def ai_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def reference_configured(self) -> bool:
        return bool(self.snow_instance and self.snow_username and self.snow_password)


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise InputError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise InputError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
        ai_model=env.get("SHEET_REMEDY_AI_MODEL") or DEFAULT_AI_MODEL,
        ai_max_tokens=_int_setting(env, "SHEET_REMEDY_AI_MAX_TOKENS", DEFAULT_AI_MAX_TOKENS),
        ai_timeout=_int_setting(env, "SHEET_REMEDY_AI_TIMEOUT", DEFAULT_AI_TIMEOUT),
        snow_instance=env.get("SNOW_INSTANCE") or None,
        snow_username=env.get("SNOW_USERNAME") or None,
        snow_password=env.get("SNOW_PASSWORD") or None,
        reference_timeout=_int_setting(env, "SHEET_REMEDY_REFERENCE_TIMEOUT", DEFAULT_REFERENCE_TIMEOUT),
        workdir=Path(env.get("SHEET_REMEDY_WORKDIR") or DEFAULT_WORKDIR),
        log_level=(env.get("SHEET_REMEDY_LOG_LEVEL") or "INFO").upper(),
        output_stamp=env.get("SHEET_REMEDY_OUTPUT_STAMP") or None,
    )


def timestamp_token(settings: Settings | None = None) -> str:
    if settings is not None and settings.output_stamp:
        return settings.output_stamp
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("sheet_remedy").setLevel(level)
