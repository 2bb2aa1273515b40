"""
Natural-language-to-query generation flow.

Flow Order:
1. Select credential - caller key first, then the shared server key
2. Check quota - shared key only; consumes one call before anything else
3. Check body - the request must carry a ``text`` field
4. Sanitize and validate the prompt
5. Build the schema-aware prompt
6. Call the model once and extract its text

Quota is consumed before validation, so a rejected prompt still costs a
call on the shared key.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import EmptyGeneration, InvalidPrompt, InvalidRequestBody, QuotaExceeded, UpstreamHttpError
from .prompts import build_generation_prompt
from .quota import QuotaLedger
from .sanitizer import sanitize_prompt
from .schema_formatter import format_cube_schema
from .validation import validate_prompt
from cube_ai_gateway.config.loader import GatewayConfig
from cube_ai_gateway.sdk.gemini_client import GatewayClient, GatewayOutcome, OutcomeKind, select_credential
from cube_ai_gateway.semantic.metadata import CubeMetadataProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Raw model text plus the rate-limit context it was produced under."""
    query: str
    using_user_key: bool
    daily_limit: int

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"query": self.query}
        if not self.using_user_key:
            payload["rateLimit"] = {"usingServerKey": True, "dailyLimit": self.daily_limit}
        return payload


def authorize_call(
    config: GatewayConfig,
    ledger: QuotaLedger,
    user_api_key: Optional[str],
    tenant_id: Optional[int] = None
) -> Tuple[str, bool]:
    """Choose a credential and, for the shared key, consume one call.

    A caller-supplied key never touches the ledger.

    Returns:
        Tuple of (api_key, using_user_key)

    Raises:
        NoCredentialAvailable: If no key is available at all
        QuotaExceeded: If the shared key's budget is spent
        LedgerUpdateFailed: If the consumed call could not be recorded
    """
    api_key, using_user_key = select_credential(user_api_key, config.server_api_key)
    if using_user_key:
        return api_key, True

    tenant = tenant_id if tenant_id is not None else config.organisation_id
    decision = ledger.check_and_consume(tenant)
    if not decision.allowed:
        raise QuotaExceeded(used=decision.used, limit=decision.limit)
    return api_key, False


def raise_for_outcome(outcome: GatewayOutcome, using_user_key: bool, empty_error: EmptyGeneration) -> str:
    """Return the outcome's text or raise the matching gateway error."""
    if outcome.kind == OutcomeKind.FAILURE:
        raise UpstreamHttpError(outcome.status_code or 500, outcome.error_body or "", using_user_key)
    if outcome.kind == OutcomeKind.EMPTY or not outcome.text:
        raise empty_error
    return outcome.text


class GenerationFlow:
    """Turns a user question into raw model text describing a query."""

    def __init__(
        self,
        config: GatewayConfig,
        ledger: QuotaLedger,
        metadata_provider: CubeMetadataProvider,
        client: GatewayClient
    ):
        self.config = config
        self.ledger = ledger
        self.metadata_provider = metadata_provider
        self.client = client

    def run(
        self,
        text: Optional[str],
        user_api_key: Optional[str] = None,
        tenant_id: Optional[int] = None
    ) -> GenerationResult:
        """Execute the flow for one request.

        Args:
            text: The ``text`` field of the request body; None when absent
            user_api_key: Caller-supplied key from the request header
            tenant_id: Organisation for the quota row (defaults to config)

        Returns:
            GenerationResult with the model's text; parsing it is the caller's job

        Raises:
            GatewayError: Any failure, already carrying its HTTP status
        """
        api_key, using_user_key = authorize_call(self.config, self.ledger, user_api_key, tenant_id)

        if text is None:
            raise InvalidRequestBody('Invalid request body. Please provide "text" field with your prompt.')

        sanitized = sanitize_prompt(text)
        validation = validate_prompt(sanitized)
        if not validation.is_valid:
            logger.info("Rejected prompt: %s", validation.message)
            raise InvalidPrompt(validation.message)

        cube_schema = format_cube_schema(self.metadata_provider)
        final_prompt = build_generation_prompt(cube_schema, sanitized)

        outcome = self.client.call(final_prompt, api_key, using_user_key=using_user_key)
        query_text = raise_for_outcome(outcome, using_user_key, EmptyGeneration())

        return GenerationResult(
            query=query_text,
            using_user_key=using_user_key,
            daily_limit=self.config.daily_limit
        )
