# src/dinarlive/__init__.py
"""
DinarLive - Iraqi Dinar Exchange Rate Engine

Fetches the IQD/USD market rate (plus EUR, TRY, GBP and IRT cross rates)
from an AI data provider, validates and caches it on disk, and keeps it
fresh for client applications with periodic and manual refreshes.
"""

__version__ = "1.0.0"
