"""
Shared Module

Purpose
-------
Domain-level foundations shared by the server's modules.

Architecture
------------
- BaseService: Foundation for service classes (logging, config, events,
  handler-table subscription)

Usage
-----
    from src.modules.shared import BaseService
"""

from __future__ import annotations

from .base_service import BaseService

__all__ = ["BaseService"]
