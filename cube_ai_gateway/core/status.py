"""
Read-only status report for the gateway.
"""

import logging
import sqlite3
from typing import Any, Dict

from .quota import QuotaLedger
from .validation import MAX_PROMPT_LENGTH, MIN_PROMPT_LENGTH
from cube_ai_gateway.config.loader import GatewayConfig
from cube_ai_gateway.sdk.gemini_client import PROVIDER_NAME

logger = logging.getLogger(__name__)


class StatusReporter:
    """Reports configuration and quota consumption without mutating either."""

    def __init__(self, config: GatewayConfig, ledger: QuotaLedger, route_prefix: str = "/api/ai"):
        self.config = config
        self.ledger = ledger
        self.route_prefix = route_prefix

    def report(self) -> Dict[str, Any]:
        """Build the status payload.

        A ledger that cannot be read is reported as ``used: None`` rather
        than failing, so health checks keep answering.
        """
        try:
            used = self.ledger.current_usage()
        except sqlite3.Error as e:
            logger.warning("Could not read usage counter for status report: %s", e)
            used = None

        remaining = max(self.config.daily_limit - used, 0) if used is not None else None

        return {
            "status": "ok",
            "provider": PROVIDER_NAME,
            "model": self.config.model,
            "server_key_configured": self.config.has_server_key,
            "endpoints": {
                f"POST {self.route_prefix}/generate": "Generate a query with Gemini (rate limited without user key)",
                f"POST {self.route_prefix}/explain/analyze": "Analyze an EXPLAIN plan with AI recommendations",
                f"GET {self.route_prefix}/health": "This endpoint",
            },
            "rateLimit": {
                "dailyLimit": self.config.daily_limit,
                "used": used,
                "remaining": remaining,
                "note": "Rate limit applies only when using server API key. Bypass by providing X-API-Key header.",
            },
            "validation": {
                "maxPromptLength": MAX_PROMPT_LENGTH,
                "minPromptLength": MIN_PROMPT_LENGTH,
                "sanitization": "HTML tags, control characters, and suspicious patterns are filtered",
            },
        }
