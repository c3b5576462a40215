#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components for the marketplace microservices.

COMPONENTS:
    - config/: Dataclass configuration loaded from the environment
    - config_manager.py: Per-service configuration and endpoint discovery
    - logger.py: Service logger setup
    - postgres_client.py: asyncpg connection pool wrapper
    - nats_client.py: NATS event bus for event-driven architecture
    - jwt_manager.py / auth_dependencies.py: Request identity

USAGE:
    from core.config_manager import ConfigManager

    # Initialize configuration for a service
    config = ConfigManager("service_name")
"""

from .config_manager import ConfigManager, Environment, ServiceConfig

# Export public API
__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceConfig",
]

__version__ = "1.0.0"
