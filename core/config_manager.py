#!/usr/bin/env python3
"""
Centralized configuration manager

Resolves per-service runtime settings (port, log level, debug, event bus)
on top of the platform-wide settings in core.config.

USAGE:
    from core.config_manager import ConfigManager

    config_manager = ConfigManager("marketplace_service")
    config = config_manager.get_service_config()
    host, port = config_manager.discover_service(
        service_name="postgres_service",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.config import PlatformConfig, get_settings

logger = logging.getLogger(__name__)


class Environment(Enum):
    """Deployment environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_value(cls, value: str) -> "Environment":
        aliases = {"dev": "development", "test": "testing", "prod": "production"}
        value = aliases.get(value.lower(), value.lower())
        for member in cls:
            if member.value == value:
                return member
        return cls.DEVELOPMENT


@dataclass
class ServiceConfig:
    """Runtime settings for a single microservice"""
    service_name: str
    service_host: str = "0.0.0.0"
    service_port: int = 8000
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"
    nats_enabled: bool = True


# Default ports for the services hosted in this repository
DEFAULT_SERVICE_PORTS = {
    "marketplace_service": 8240,
}


class ConfigManager:
    """Per-service view over the platform settings"""

    def __init__(self, service_name: str, settings: Optional[PlatformConfig] = None):
        self.service_name = service_name
        self.settings = settings or get_settings()
        self.environment = Environment.from_value(self.settings.environment)

    def get_service_config(self) -> ServiceConfig:
        """Build the runtime config for this service"""
        prefix = self.service_name.upper()
        default_port = DEFAULT_SERVICE_PORTS.get(self.service_name, self.settings.default_port)
        port_value = os.getenv(f"{prefix}_PORT") or os.getenv("PORT")
        try:
            service_port = int(port_value) if port_value else default_port
        except ValueError:
            logger.warning(f"Invalid port '{port_value}' for {self.service_name}, using {default_port}")
            service_port = default_port

        return ServiceConfig(
            service_name=self.service_name,
            service_host=os.getenv(f"{prefix}_HOST", self.settings.default_host),
            service_port=service_port,
            environment=self.environment,
            debug=self.settings.debug,
            log_level=self.settings.logging.log_level,
            nats_enabled=self.settings.infrastructure.nats_enabled,
        )

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve a peer service endpoint.

        Priority: environment variable → default fallback
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port_value = os.getenv(env_port_key) if env_port_key else None

        port = default_port
        if port_value:
            try:
                port = int(port_value)
            except ValueError:
                logger.warning(f"Invalid port '{port_value}' for {service_name}, using {default_port}")

        resolved_host = host or default_host
        logger.debug(f"Resolved {service_name} at {resolved_host}:{port}")
        return resolved_host, port

    def print_config_summary(self, show_secrets: bool = False):
        """Log the effective configuration (development aid)"""
        config = self.get_service_config()
        infra = self.settings.infrastructure
        services = self.settings.services

        def _secret(value: Optional[str]) -> str:
            if not value:
                return "<unset>"
            return value if show_secrets else "****"

        logger.info(f"=== {self.service_name} configuration ===")
        logger.info(f"  environment: {config.environment.value}")
        logger.info(f"  listen: {config.service_host}:{config.service_port}")
        logger.info(f"  log level: {config.log_level}")
        logger.info(f"  postgres: {infra.postgres_host}:{infra.postgres_port}/{infra.postgres_db}")
        logger.info(f"  postgres password: {_secret(infra.postgres_password)}")
        logger.info(f"  nats: {infra.resolved_nats_url} (enabled={infra.nats_enabled})")
        logger.info(f"  route service: {services.route_service_url}")
        logger.info(f"  route api key: {_secret(services.route_api_key)}")
        logger.info(f"  geocoding service: {services.geocoding_service_url}")
        logger.info(f"  email api key: {_secret(services.email_api_key)}")
