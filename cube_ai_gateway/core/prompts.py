"""
Prompt templates and builders.

Templates are static; only the placeholder blocks vary. Substitution is a
single pass, so braces or placeholder names inside the schema or user text
are inserted literally and never re-expanded.
"""

import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\{([A-Z_]+)\}")

GENERATION_PROMPT_TEMPLATE = """You are a helpful AI assistant for analyzing business data using a Cube.js-compatible semantic layer.

Given the following cube schema and user query, generate a valid JSON query for the Cube.js API and choose the best chart to display it.

CUBE SCHEMA:
{CUBE_SCHEMA}

RESPONSE FORMAT:
Return a single JSON object with exactly these keys:
  {
    "query": { ... },          // a Cube.js query as described below
    "chartType": string,       // 'line'|'area'|'bar'|'pie'|'scatter'|'bubble'|'table'
    "chartConfig": {
      "xAxis"?: string[],      // dimensions or time dimensions for the x axis
      "yAxis"?: string[],      // measures plotted on the y axis
      "series"?: string[],     // dimensions that split the data into series
      "sizeField"?: string,    // bubble charts only: measure controlling bubble size
      "colorField"?: string    // bubble charts only: dimension controlling colour
    }
  }

Valid query structure:
  {
    dimensions?: string[], // dimension names from CUBE SCHEMA
    measures?: string[], // measure names from CUBE SCHEMA
    timeDimensions?: [{
      dimension: string, // time dimension from CUBE SCHEMA
      granularity?: 'second'|'minute'|'hour'|'day'|'week'|'month'|'quarter'|'year',
      dateRange?: [string, string] | string // 'last year' 'this year' ['2024-01-01','2024-12-31'] or lowercase relative strings below
    }],
    filters?: [{
      member: string, // dimension/measure from CUBE SCHEMA
      operator: 'equals'|'notEquals'|'contains'|'notContains'|'startsWith'|'endsWith'|'gt'|'gte'|'lt'|'lte'|'inDateRange'|'notInDateRange'|'beforeDate'|'afterDate'|'set'|'notSet',
      values?: any[] // required unless set/notSet
    }],
    order?: {[member: string]: 'asc'|'desc'}, // member from dimensions/measures/timeDimensions
    limit?: number,
    offset?: number
  }
  Valid dateRange strings (MUST be lower case): 'today'|'yesterday'|'tomorrow'|'last 7 days'|'last 30 days'|'last week'|'last month'|'last quarter'|'last year'|'this week'|'this month'|'this quarter'|'this year'|'next week'|'next month'|'next quarter'|'next year'
  CRITICAL: All dateRange strings must be lowercase. Never capitalize (e.g., use 'last 7 days' NOT 'Last 7 days').
  Rules: At least one measure/dimension/timeDimension required. Members must exist in CUBE SCHEMA. Date operators need YYYY-MM-DD values. Set/notSet have no values.

CHART TYPE SELECTION:
1. Data over time (a timeDimension with granularity) -> 'line', or 'area' for cumulative totals
2. Comparing measures across categories -> 'bar'
3. Parts of a whole / proportions of a single measure -> 'pie'
4. Correlation between exactly 2 measures -> 'scatter'
5. Correlation between 3 or more measures -> 'bubble' (third measure as sizeField)
6. Anything else, or detailed row listings -> 'table'

CORRELATION KEYWORDS:
If the user query contains any of: 'correlation', 'correlate', 'relationship', 'vs', 'versus', 'against', 'compare to', 'impact of', 'affect', 'relate'
then you MUST choose 'scatter' (2 measures) or 'bubble' (3+ measures), and include a descriptive dimension (for example a .name field) so each point is identifiable.

RULES:
1. Only use measures, dimensions, and time dimensions that exist in the schema above
2. Return ONLY valid JSON - no explanations or markdown
3. Use proper Cube.js query format with measures, dimensions, timeDimensions, filters, etc.
4. For time-based queries, always specify appropriate granularity (day, week, month, year)
5. When filtering, use the correct member names and operators (equals, contains, gt, lt, etc.)
6. When a user asks just for a thing - like 'Employee' or 'Employees' - default to a .name field if it exists over any other field.
7. Prefer descriptive dimensions (.name, .title, .description) over .id or foreign-key fields (fields ending in Id) unless the user explicitly asks for identifiers.

USER QUERY:
{USER_PROMPT}

Return the JSON object:"""

EXPLAIN_ANALYSIS_PROMPT_TEMPLATE = """You are a database performance expert reviewing the execution plan of a query generated by a Cube.js-compatible semantic layer.

DATABASE ENGINE: {DATABASE_TYPE}

CUBE SCHEMA:
{CUBE_SCHEMA}

SEMANTIC QUERY (what the user asked for):
{SEMANTIC_QUERY}

GENERATED SQL:
{SQL_QUERY}

EXECUTION PLAN OPERATIONS:
{PLAN_OPERATIONS}

PLAN SUMMARY:
{PLAN_SUMMARY}

RAW EXPLAIN OUTPUT:
{RAW_EXPLAIN}

EXISTING INDEXES ON REFERENCED TABLES:
{EXISTING_INDEXES}

Analyze the plan and return ONLY a JSON object (no markdown, no commentary) with this structure:
{
  "summary": string,                       // one or two sentences describing how the query executes
  "assessment": "good"|"warning"|"critical",
  "assessmentReason": string,              // why this assessment was chosen
  "queryUnderstanding": string,            // what the query is computing, in business terms
  "issues": [{
    "type": "sequential_scan"|"missing_index"|"expensive_join"|"sort"|"aggregation"|"other",
    "severity": "high"|"medium"|"low",
    "description": string,
    "affectedTables"?: string[]
  }],
  "recommendations": [{
    "type": "index"|"table"|"cube"|"general",
    "severity": "critical"|"warning"|"suggestion",
    "title": string,
    "description": string,
    "sql"?: string,                        // e.g. a CREATE INDEX statement for index recommendations
    "cubeCode"?: string,                   // suggested change to the cube definition, if relevant
    "affectedTables": string[],
    "estimatedImpact": string
  }]
}

RULES:
1. Do not recommend an index that already exists in EXISTING INDEXES.
2. Sequential scans on small tables are acceptable; only flag them when they are likely to be costly.
3. Every CREATE INDEX statement must reference tables and columns that appear in the GENERATED SQL.
4. If the plan is already efficient, return assessment "good" with an empty or minimal recommendations list.
"""


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{NAME}`` placeholders in one pass.

    Placeholders without a value are left untouched so literal braces in the
    template survive.
    """
    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def build_generation_prompt(cube_schema: str, user_prompt: str) -> str:
    """Build the natural-language-to-query instruction text.

    Args:
        cube_schema: JSON schema description of the semantic model
        user_prompt: Sanitized, validated user question

    Returns:
        Final prompt text
    """
    return render_template(GENERATION_PROMPT_TEMPLATE, {
        "CUBE_SCHEMA": cube_schema,
        "USER_PROMPT": user_prompt,
    })


def build_explain_analysis_prompt(
    database_type: str,
    cube_schema: str,
    semantic_query: str,
    sql_query: str,
    plan_operations: str,
    plan_summary: str,
    raw_explain: str,
    existing_indexes: str
) -> str:
    """Build the execution-plan critique prompt."""
    return render_template(EXPLAIN_ANALYSIS_PROMPT_TEMPLATE, {
        "DATABASE_TYPE": database_type,
        "CUBE_SCHEMA": cube_schema,
        "SEMANTIC_QUERY": semantic_query,
        "SQL_QUERY": sql_query,
        "PLAN_OPERATIONS": plan_operations,
        "PLAN_SUMMARY": plan_summary,
        "RAW_EXPLAIN": raw_explain,
        "EXISTING_INDEXES": existing_indexes,
    })
