"""
Request models for the AI gateway API.

Fields are optional at this layer so that a missing field is reported by
the flows with the gateway's own error body instead of a schema error.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class GenerateRequest(BaseModel):
    """Body of ``POST /generate``."""
    text: Optional[str] = None


class ExplainAnalyzeRequest(BaseModel):
    """Body of ``POST /explain/analyze``."""
    explainResult: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
