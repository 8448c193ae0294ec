"""
Adapters Layer - External Interfaces

This package contains all adapters for external systems:
- AI data provider (rate acquisition)
- Persistence (storage)
"""

__all__ = []
