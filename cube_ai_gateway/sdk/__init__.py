"""
SDK for the AI gateway.

Provides the outbound client for the external model.
"""

from .gemini_client import GatewayClient, GatewayOutcome, OutcomeKind, select_credential

__all__ = ["GatewayClient", "GatewayOutcome", "OutcomeKind", "select_credential"]
