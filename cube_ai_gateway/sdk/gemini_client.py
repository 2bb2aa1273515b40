"""
Gemini gateway client.

Performs the single outbound model call for a request and classifies the
result. Gemini is reached through its OpenAI-compatible endpoint, so the
``openai`` SDK does the HTTP work. SDK retries are disabled: one logical
request makes exactly one upstream call.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import openai
from openai import OpenAI

from cube_ai_gateway.config.loader import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT_SECONDS
from cube_ai_gateway.core.errors import NoCredentialAvailable, UpstreamRequestFailed

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Google Gemini"


class OutcomeKind(Enum):
    """Classification of one upstream call."""
    SUCCESS = "success"
    EMPTY = "empty"
    FAILURE = "failure"


@dataclass(frozen=True)
class GatewayOutcome:
    """Result of one model call; never carries the credential."""
    kind: OutcomeKind
    text: Optional[str] = None
    status_code: Optional[int] = None
    error_body: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


def select_credential(
    user_api_key: Optional[str],
    server_api_key: Optional[str]
) -> Tuple[str, bool]:
    """Pick the credential for a request.

    Args:
        user_api_key: Key supplied by the caller, if any
        server_api_key: Shared key configured on the server, if any

    Returns:
        Tuple of (api_key, using_user_key)

    Raises:
        NoCredentialAvailable: If neither key is present
    """
    if user_api_key:
        return user_api_key, True
    if server_api_key:
        return server_api_key, False
    raise NoCredentialAvailable()


class GatewayClient:
    """Calls the external model and normalizes its answer."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        """
        Args:
            model: Gemini model name
            base_url: OpenAI-compatible endpoint root
            timeout: Request timeout in seconds

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

    def _client(self, api_key: str) -> OpenAI:
        # A client per call: the key differs between callers
        return OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0
        )

    def call(self, prompt: str, api_key: str, using_user_key: bool = False) -> GatewayOutcome:
        """Send the prompt as the only message and classify the response.

        Args:
            prompt: Complete prompt text
            api_key: Credential chosen by ``select_credential``
            using_user_key: Whether the credential came from the caller

        Returns:
            GatewayOutcome: SUCCESS with text, EMPTY when no text came back,
            FAILURE with the upstream status and body for non-2xx answers

        Raises:
            UpstreamRequestFailed: If the endpoint could not be reached
        """
        if not api_key:
            raise NoCredentialAvailable()

        try:
            response = self._client(api_key).chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}]
            )
        except openai.APIStatusError as e:
            body = e.response.text if e.response is not None else str(e)
            logger.warning(
                "Model call failed with status %s (user key: %s)", e.status_code, using_user_key
            )
            return GatewayOutcome(
                kind=OutcomeKind.FAILURE,
                status_code=e.status_code,
                error_body=body
            )
        except openai.APIConnectionError as e:
            logger.error("Model endpoint unreachable: %s", e)
            raise UpstreamRequestFailed(str(e), using_user_key) from e

        text = _first_choice_text(response)
        if not text:
            logger.warning("Model returned no text for model %s", self.model)
            return GatewayOutcome(kind=OutcomeKind.EMPTY)

        return GatewayOutcome(kind=OutcomeKind.SUCCESS, text=text)


def _first_choice_text(response) -> Optional[str]:
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    if message is None:
        return None
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        return None
    return content
