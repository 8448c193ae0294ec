"""
AI Adapters - AI Data Provider Integration

This package contains the client for the AI data provider and the
parsing pipeline for its free-text replies.
"""

from dinarlive.adapters.ai.parsing import extract_json_block, parse_payload
from dinarlive.adapters.ai.provider_client import ProviderClient

__all__ = ["ProviderClient", "extract_json_block", "parse_payload"]
