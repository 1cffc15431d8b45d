"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubernetesConfig:
    """Kubernetes provider configuration."""

    kubeconfig_path: str = ""
    request_timeout_seconds: int = 30
    log_tail_lines: int = 500


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class CloudPlaneConfig:
    """Top-level cloudplane configuration."""

    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    log: LogConfig = field(default_factory=LogConfig)
