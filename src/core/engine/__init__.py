"""
Engine adapters: REST client and push-channel socket.
"""

from src.core.engine.client import EngineApiClient
from src.core.engine.socket import EngineSocket

__all__ = ["EngineApiClient", "EngineSocket"]
