"""Configuration loader for the coordinator."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "coordinator" / "config.yaml"

TRUTHY = ("true", "1", "yes")


class ConfigError(ValueError):
    """Raised at startup when configuration values are unusable."""


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_number(name: str, cast):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return cast(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def load_config(
    default_path: Path | None = None,
    user_path: Path | None = None,
) -> Dict[str, Any]:
    default_path = default_path or DEFAULT_CONFIG_PATH
    user_path = user_path or USER_CONFIG_PATH
    data: Dict[str, Any] = {}
    if default_path.exists():
        data = yaml.safe_load(default_path.read_text()) or {}
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)

    # Environment overrides - Server
    host = os.getenv("COORDINATOR_HOST")
    if host:
        data.setdefault("server", {})["host"] = host
    port = _env_number("COORDINATOR_PORT", int)
    if port is not None:
        data.setdefault("server", {})["port"] = port

    # Environment overrides - Cascade policy
    max_attempts = _env_number("MAX_FALLBACK_ATTEMPTS", int)
    if max_attempts is not None:
        data.setdefault("cascade", {})["max_fallback_attempts"] = max_attempts
    min_quality = _env_number("MIN_QUALITY_SCORE", float)
    if min_quality is not None:
        data.setdefault("cascade", {})["min_quality_score"] = min_quality
    stop_on_first = os.getenv("STOP_ON_FIRST_SUCCESS")
    if stop_on_first is not None and stop_on_first.strip():
        data.setdefault("cascade", {})["stop_on_first_success"] = stop_on_first
    attempt_timeout = _env_number("ATTEMPT_TIMEOUT", int)
    if attempt_timeout is not None:
        data.setdefault("cascade", {})["attempt_timeout_ms"] = attempt_timeout

    # Environment overrides - Ranking
    provider = os.getenv("COORDINATOR_RANKING_PROVIDER")
    if provider:
        data.setdefault("ranking", {})["provider"] = provider.strip().lower()

    # Environment overrides - Service registry file
    registry = os.getenv("COORDINATOR_REGISTRY")
    if registry:
        data.setdefault("services", {})["registry_path"] = registry

    log_level = os.getenv("COORDINATOR_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level.upper()

    return data


@dataclass(frozen=True)
class CascadeSettings:
    max_fallback_attempts: int = 5
    min_quality_score: float = 0.5
    stop_on_first_success: bool = True
    attempt_timeout_ms: int = 3000

    @property
    def attempt_timeout(self) -> float:
        """Per-attempt timeout in seconds."""
        return self.attempt_timeout_ms / 1000.0

    @classmethod
    def from_config(cls, section: Dict[str, Any] | None) -> "CascadeSettings":
        section = section or {}
        try:
            max_attempts = int(section.get("max_fallback_attempts", 5))
            min_quality = float(section.get("min_quality_score", 0.5))
            timeout_ms = int(section.get("attempt_timeout_ms", 3000))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid cascade configuration: {exc}") from exc
        stop_on_first = section.get("stop_on_first_success", True)
        if isinstance(stop_on_first, str):
            stop_on_first = stop_on_first.strip().lower() in TRUTHY
        if max_attempts <= 0:
            raise ConfigError(f"max_fallback_attempts must be positive, got {max_attempts}")
        if not 0.0 <= min_quality <= 1.0:
            raise ConfigError(f"min_quality_score must be within [0, 1], got {min_quality}")
        if timeout_ms <= 0:
            raise ConfigError(f"attempt_timeout_ms must be positive, got {timeout_ms}")
        return cls(
            max_fallback_attempts=max_attempts,
            min_quality_score=min_quality,
            stop_on_first_success=bool(stop_on_first),
            attempt_timeout_ms=timeout_ms,
        )


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {}) or {}

    @property
    def cascade(self) -> CascadeSettings:
        return CascadeSettings.from_config(self.raw.get("cascade"))

    @property
    def ranking(self) -> Dict[str, Any]:
        return self.raw.get("ranking", {}) or {}

    @property
    def services(self) -> Dict[str, Any]:
        return self.raw.get("services", {}) or {}

    @property
    def log_level(self) -> str:
        return str((self.raw.get("logging", {}) or {}).get("level", "INFO")).upper()


def get_config() -> Config:
    return Config(load_config())
