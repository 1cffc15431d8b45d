"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from cloudplane.models.config import CloudPlaneConfig, KubernetesConfig, LogConfig


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"CLOUDPLANE_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> CloudPlaneConfig:
    """Load configuration from CLOUDPLANE_* environment variables."""
    return CloudPlaneConfig(
        kubernetes=KubernetesConfig(
            kubeconfig_path=_env("KUBECONFIG", ""),
            request_timeout_seconds=_env_int("REQUEST_TIMEOUT", 30, min_val=1, max_val=300),
            log_tail_lines=_env_int("LOG_TAIL_LINES", 500, min_val=1, max_val=10000),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
