"""
Infrastructure orchestration.

Module Contents
---------------
- ApplicationContext: builds and tears down the config, event bus, Engine
  adapters and domain services in dependency order
"""

from src.core.infra.application_context import ApplicationContext

__all__ = ["ApplicationContext"]
