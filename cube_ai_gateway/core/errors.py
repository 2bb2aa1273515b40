"""
Gateway error taxonomy.

Every failure a flow can produce is a ``GatewayError`` carrying the HTTP
status and JSON body the API returns for it.
"""

from http import HTTPStatus
from typing import Any, Dict, Optional

QUOTA_RESET_NOTE = "Daily at midnight"
API_KEY_URL = "https://makersuite.google.com/app/apikey"
RAW_RESPONSE_EXCERPT_LENGTH = 500


class GatewayError(Exception):
    """Base class for failures reported to the caller as JSON."""

    status_code: int = 500

    def __init__(self, error: str, **fields: Any):
        super().__init__(error)
        self.error = error
        self.fields = {k: v for k, v in fields.items() if v is not None}

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.error, **self.fields}


class NoCredentialAvailable(GatewayError):
    status_code = 400

    def __init__(self):
        super().__init__(
            "No API key available. Either provide X-API-Key header or ensure "
            "server has GEMINI_API_KEY configured.",
            suggestion="Add your own Gemini API key to bypass daily limits."
        )


class QuotaExceeded(GatewayError):
    status_code = 429

    def __init__(self, used: int, limit: int):
        super().__init__(
            "Daily quota exceeded",
            message=(
                f"You've used all {limit} free AI requests for today. Try again "
                "tomorrow or add your own Gemini API key for unlimited access."
            ),
            quotaInfo={"used": used, "limit": limit, "resetTime": QUOTA_RESET_NOTE},
            suggestion=f"Get your free Gemini API key at {API_KEY_URL}"
        )
        self.used = used
        self.limit = limit


class LedgerUpdateFailed(GatewayError):
    """The usage counter could not be written; the paid call must not run."""

    status_code = 500

    def __init__(self, details: str):
        super().__init__(
            "Failed to update usage counter",
            message="Unable to track API usage. Please try again.",
            details=details
        )


class InvalidRequestBody(GatewayError):
    status_code = 400


class InvalidPrompt(GatewayError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(
            "Invalid prompt",
            message=message,
            suggestion="Please shorten your prompt and try again."
        )
        self.message = message


class UpstreamHttpError(GatewayError):
    """The model endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, using_user_key: bool):
        try:
            phrase = HTTPStatus(status_code).phrase
        except ValueError:
            phrase = ""
        super().__init__(
            f"Failed to generate content: {status_code} {phrase}".rstrip(),
            details=body,
            usingUserKey=using_user_key
        )
        self.status_code = status_code
        self.body = body


class UpstreamRequestFailed(GatewayError):
    """The model endpoint could not be reached at all."""

    status_code = 500

    def __init__(self, details: str, using_user_key: bool):
        super().__init__(
            "Failed to generate content with Gemini API",
            details=details,
            usingUserKey=using_user_key
        )


class EmptyGeneration(GatewayError):
    status_code = 500

    def __init__(self, error: str = "No query generated by AI",
                 details: Optional[str] = "AI response did not contain a valid query"):
        super().__init__(error, details=details)


class ResponseParseError(GatewayError):
    """Model text could not be coerced into the expected JSON object."""

    status_code = 500

    def __init__(self, raw_text: str):
        excerpt = (raw_text or "")[:RAW_RESPONSE_EXCERPT_LENGTH]
        super().__init__("Failed to parse AI response", rawResponse=excerpt)
        self.raw_excerpt = excerpt
