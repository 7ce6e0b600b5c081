"""
config.py

Typed configuration loading and validation for stepjudge.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Config file location
- If STEPJUDGE_CONFIG_PATH is set, that file is used.
- Otherwise stepjudge searches these paths in order and uses the first one that exists:
  1) ./stepjudge_config.json (current working directory)
  2) <user config dir>/stepjudge/stepjudge_config.json
- When no file exists, the built-in defaults are used.

Example config file (stepjudge_config.json)
{
  "judgment": {
    "marvelous_ms": 22.5,
    "perfect_ms": 45,
    "great_ms": 90,
    "good_ms": 135,
    "boo_ms": 180,
    "hold_release_grace_ms": 200
  },
  "scoring": {
    "initial_health": 50
  },
  "parser": {
    "strict_subdivisions": false
  },
  "timing": {
    "audio_offset_ms": 0
  },
  "logging": {
    "level": "WARNING"
  }
}
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

import judge

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a config file exists but cannot be read, parsed or validated."""


class JudgmentConfig(BaseModel):
    marvelous_ms: float = Field(default=22.5, gt=0, description="Marvelous window, +/- ms.")
    perfect_ms: float = Field(default=45.0, gt=0, description="Perfect window, +/- ms.")
    great_ms: float = Field(default=90.0, gt=0, description="Great window, +/- ms.")
    good_ms: float = Field(default=135.0, gt=0, description="Good window, +/- ms.")
    boo_ms: float = Field(default=180.0, gt=0, description="Boo window, +/- ms. Outer matching tolerance.")
    hold_release_grace_ms: float = Field(default=200.0, ge=0, description="Early release allowed on hold tails.")

    @model_validator(mode="after")
    def validate_ascending(self) -> "JudgmentConfig":
        windows = [self.marvelous_ms, self.perfect_ms, self.great_ms, self.good_ms, self.boo_ms]
        if any(later <= earlier for earlier, later in zip(windows, windows[1:])):
            raise ValueError("judgment windows must be strictly ascending from marvelous to boo")
        return self

    def to_windows(self) -> judge.JudgementWindows:
        return judge.JudgementWindows(
            marvelous_ms=self.marvelous_ms,
            perfect_ms=self.perfect_ms,
            great_ms=self.great_ms,
            good_ms=self.good_ms,
            boo_ms=self.boo_ms,
        )


class ScoringConfig(BaseModel):
    initial_health: float = Field(default=50.0, gt=0, le=100, description="Lifebar value at song start.")


class ParserConfig(BaseModel):
    strict_subdivisions: bool = Field(default=False, description="Reject measures with non-standard row counts.")


class TimingConfig(BaseModel):
    audio_offset_ms: float = Field(default=0.0, description="Added to player time to obtain song time.")


class LoggingConfig(BaseModel):
    level: str = Field(default="WARNING", description="DEBUG, INFO, WARNING or ERROR")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if normalized not in allowed:
            raise ValueError("level must be one of: DEBUG, INFO, WARNING, ERROR")
        return normalized


class AppConfig(BaseModel):
    judgment: JudgmentConfig = Field(default_factory=JudgmentConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("stepjudge", appauthor=False))
    return [
        Path.cwd() / "stepjudge_config.json",
        config_directory / "stepjudge_config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("STEPJUDGE_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path
    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as exception:
        raise ConfigError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ConfigError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ConfigError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - STEPJUDGE_STRICT_SUBDIVISIONS
    - STEPJUDGE_INITIAL_HEALTH
    - STEPJUDGE_AUDIO_OFFSET_MS
    - STEPJUDGE_LOG_LEVEL
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            section = dict(section)
        else:
            section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    scoring_section = ensure_nested(updated_config, "scoring")
    parser_section = ensure_nested(updated_config, "parser")
    timing_section = ensure_nested(updated_config, "timing")
    logging_section = ensure_nested(updated_config, "logging")

    def override_string(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "")
        if value_text.strip():
            target_dict[key_name] = value_text.strip()

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a number", env_name, value_text)

    def override_bool(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip().lower()
        if not value_text:
            return
        truthy = {"1", "true", "yes", "on"}
        falsy = {"0", "false", "no", "off"}
        if value_text in truthy:
            target_dict[key_name] = True
        elif value_text in falsy:
            target_dict[key_name] = False

    override_bool("STEPJUDGE_STRICT_SUBDIVISIONS", parser_section, "strict_subdivisions")
    override_float("STEPJUDGE_INITIAL_HEALTH", scoring_section, "initial_health")
    override_float("STEPJUDGE_AUDIO_OFFSET_MS", timing_section, "audio_offset_ms")
    override_string("STEPJUDGE_LOG_LEVEL", logging_section, "level")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    if resolved_path is None:
        logger.debug("No config file found, using defaults")
        json_dict: Dict[str, Any] = {}
    else:
        json_dict = _read_json_file_utf8(Path(resolved_path))
        logger.info("Loaded config from %s", resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source = resolved_path if resolved_path is not None else "defaults"
        raise ConfigError(f"Config validation failed for {source}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Optional[Path]]:
    return load_config()


def to_json(config: AppConfig) -> str:
    return json.dumps(config.model_dump(), ensure_ascii=False, indent=2)
