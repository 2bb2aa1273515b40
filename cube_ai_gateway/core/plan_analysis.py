"""
Execution-plan analysis flow.

Takes a plan that was already produced elsewhere, adds index metadata for
the tables it touches, asks the model for a critique and coerces the free
text answer back into a JSON object.

Flow Order:
1. Credential and quota gating (shared with generation)
2. Body check - ``explainResult`` and ``query`` are both required
3. Table extraction from the plan's SQL and index lookup
4. Prompt assembly and a single model call
5. Response repair: strip Markdown fences, parse, require an object
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import EmptyGeneration, InvalidRequestBody, ResponseParseError
from .generation import authorize_call, raise_for_outcome
from .prompts import build_explain_analysis_prompt
from .quota import QuotaLedger
from .schema_formatter import format_cube_schema
from cube_ai_gateway.config.loader import GatewayConfig
from cube_ai_gateway.sdk.gemini_client import GatewayClient
from cube_ai_gateway.semantic.indexes import IndexMetadataProvider, format_index_info
from cube_ai_gateway.semantic.metadata import CubeMetadataProvider

logger = logging.getLogger(__name__)

MAX_RAW_EXPLAIN_CHARS = 4000

_IDENTIFIER = r'(?:"[^"]+"|`[^`]+`|\w+)'
_TABLE_REFERENCE = re.compile(
    rf"\b(?:FROM|JOIN)\s+({_IDENTIFIER}(?:\s*\.\s*{_IDENTIFIER})?)",
    re.IGNORECASE
)
_FENCE_OPEN = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```$")


@dataclass(frozen=True)
class ExplainPlan:
    """A previously computed execution plan."""
    database: str
    sql: str
    operations: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    raw: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExplainPlan":
        """Build from the ``explainResult`` request field.

        Raises:
            InvalidRequestBody: If the plan has no SQL text or a field has
                the wrong shape
        """
        summary = data.get("summary") or {}
        if not isinstance(summary, Mapping):
            raise InvalidRequestBody("Invalid request body. explainResult.summary must be an object.")

        sql_field = data.get("sql")
        sql = sql_field.get("sql") if isinstance(sql_field, Mapping) else sql_field
        if not isinstance(sql, str) or not sql.strip():
            raise InvalidRequestBody("Invalid request body. explainResult.sql must contain the SQL text.")

        operations = data.get("operations") or []
        _check_operations(operations, "explainResult.operations")

        raw = data.get("raw") or ""
        if not isinstance(raw, str):
            raise InvalidRequestBody("Invalid request body. explainResult.raw must be text.")

        return cls(
            database=str(summary.get("database") or "unknown"),
            sql=sql,
            operations=list(operations),
            summary=dict(summary),
            raw=raw
        )


def _check_operations(operations: Any, path: str) -> None:
    if not isinstance(operations, list):
        raise InvalidRequestBody(f"Invalid request body. {path} must be a list.")
    for position, op in enumerate(operations):
        if not isinstance(op, Mapping):
            raise InvalidRequestBody(f"Invalid request body. {path}[{position}] must be an object.")
        children = op.get("children")
        if children:
            _check_operations(children, f"{path}[{position}].children")


def extract_table_names(sql: str) -> List[str]:
    """Find table names referenced in FROM and JOIN clauses.

    Schema prefixes and identifier quotes are dropped; each table appears
    once, in first-seen order.
    """
    if not sql:
        return []

    tables: List[str] = []
    for match in _TABLE_REFERENCE.finditer(sql):
        reference = match.group(1)
        name = re.split(r"\s*\.\s*", reference)[-1].strip('"`')
        if name and name not in tables:
            tables.append(name)
    return tables


def format_operations(operations: List[Mapping[str, Any]], depth: int = 0) -> str:
    """Render plan operations as an indented bullet list."""
    if not operations and depth == 0:
        return "No operations reported."

    lines = []
    for op in operations:
        parts = [str(op.get("type", "Unknown"))]
        if op.get("table"):
            parts.append(f"on {op['table']}")
        if op.get("index"):
            parts.append(f"using {op['index']}")
        details = []
        if op.get("estimatedRows") is not None:
            details.append(f"rows={op['estimatedRows']}")
        if op.get("estimatedCost") is not None:
            details.append(f"cost={op['estimatedCost']}")
        if details:
            parts.append(f"({', '.join(details)})")
        if op.get("filter"):
            parts.append(f"filter: {op['filter']}")
        lines.append("  " * depth + "- " + " ".join(parts))

        children = op.get("children") or []
        if children:
            lines.append(format_operations([c for c in children if isinstance(c, Mapping)], depth + 1))
    return "\n".join(lines)


def format_plan_summary(summary: Mapping[str, Any]) -> str:
    if not summary:
        return "No summary reported."
    return "\n".join(f"- {key}: {value}" for key, value in summary.items())


def parse_analysis_response(text: str) -> Dict[str, Any]:
    """Coerce the model's answer into a JSON object.

    Markdown code fences (```json or ```) around the object are removed
    before parsing. Nothing else is guessed at.

    Args:
        text: Raw model text

    Returns:
        The parsed object

    Raises:
        ResponseParseError: If the text is not a JSON object after fence removal
    """
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned).strip()

    try:
        parsed = json.loads(cleaned)
    except ValueError as e:
        logger.warning("Could not parse AI analysis response: %s", e)
        raise ResponseParseError(text) from e

    if not isinstance(parsed, dict):
        logger.warning("AI analysis response was JSON but not an object")
        raise ResponseParseError(text)
    return parsed


class PlanAnalysisFlow:
    """Asks the model to critique a query execution plan."""

    def __init__(
        self,
        config: GatewayConfig,
        ledger: QuotaLedger,
        metadata_provider: CubeMetadataProvider,
        index_provider: IndexMetadataProvider,
        client: GatewayClient
    ):
        self.config = config
        self.ledger = ledger
        self.metadata_provider = metadata_provider
        self.index_provider = index_provider
        self.client = client

    def _describe_indexes(self, tables: List[str]) -> str:
        if not tables:
            return "No tables could be identified in the SQL."
        try:
            return format_index_info(self.index_provider.list_indexes(tables))
        except Exception:
            logger.exception("Failed to load index metadata for %s", ", ".join(tables))
            return "Index information is unavailable."

    def run(
        self,
        explain_result: Optional[Mapping[str, Any]],
        query: Optional[Mapping[str, Any]],
        user_api_key: Optional[str] = None,
        tenant_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Execute the flow for one request.

        Args:
            explain_result: Plan summary, operations, raw output and SQL
            query: The semantic query that produced the plan
            user_api_key: Caller-supplied key from the request header
            tenant_id: Organisation for the quota row (defaults to config)

        Returns:
            The model's assessment object plus ``_meta``

        Raises:
            GatewayError: Any failure, already carrying its HTTP status
        """
        api_key, using_user_key = authorize_call(self.config, self.ledger, user_api_key, tenant_id)

        if not isinstance(explain_result, Mapping) or not isinstance(query, Mapping):
            raise InvalidRequestBody(
                'Invalid request body. Please provide "explainResult" and "query" fields.'
            )

        plan = ExplainPlan.from_dict(explain_result)
        tables = extract_table_names(plan.sql)
        logger.debug("Plan references tables: %s", tables)

        prompt = build_explain_analysis_prompt(
            database_type=plan.database,
            cube_schema=format_cube_schema(self.metadata_provider),
            semantic_query=json.dumps(query, indent=2, default=str),
            sql_query=plan.sql,
            plan_operations=format_operations(plan.operations),
            plan_summary=format_plan_summary(plan.summary),
            raw_explain=plan.raw[:MAX_RAW_EXPLAIN_CHARS] or "Not provided.",
            existing_indexes=self._describe_indexes(tables)
        )

        outcome = self.client.call(prompt, api_key, using_user_key=using_user_key)
        text = raise_for_outcome(
            outcome,
            using_user_key,
            EmptyGeneration("No analysis generated by AI", "AI response did not contain an analysis")
        )

        analysis = parse_analysis_response(text)
        analysis["_meta"] = {"model": self.client.model, "usingUserKey": using_user_key}
        return analysis
