"""Core primitives for edge-agent."""

from .downstream import (
    DOWNSTREAM_SERVICES,
    DownstreamConfig,
    ExportConfig,
    config_ready_subject,
    is_known_service,
    notify_config_ready,
    persist_service_config,
)
from .services import Service, ServiceRegistry

__all__ = [
    "DOWNSTREAM_SERVICES",
    "DownstreamConfig",
    "ExportConfig",
    "Service",
    "ServiceRegistry",
    "config_ready_subject",
    "is_known_service",
    "notify_config_ready",
    "persist_service_config",
]
