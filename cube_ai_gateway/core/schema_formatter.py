"""
Schema description for the model.

Renders registered cubes as JSON, moving time-typed dimensions into a
separate ``timeDimensions`` map so the model can tell them apart.
"""

import json
import logging
from typing import Any, Dict, List

from cube_ai_gateway.semantic.metadata import CubeMeta, CubeMetadataProvider, MemberMeta

logger = logging.getLogger(__name__)

TIME_DIMENSION_TYPE = "time"

# Used when the semantic layer cannot be read; the request still proceeds
FALLBACK_SCHEMA: Dict[str, Any] = {
    "cubes": {
        "Employees": {
            "measures": {"count": {"type": "count", "title": "Employee Count"}},
            "dimensions": {"name": {"type": "string", "title": "Employee Name"}}
        }
    }
}


def _member_entry(member: MemberMeta) -> Dict[str, Any]:
    return {
        "type": member.type,
        "title": member.title,
        "description": member.description
    }


def build_schema_description(cubes: List[CubeMeta]) -> Dict[str, Any]:
    """Build the schema mapping for a list of cubes.

    Args:
        cubes: Registered cubes

    Returns:
        ``{"cubes": {name: {...}}}``; ``timeDimensions`` is present only on
        cubes that have at least one time dimension
    """
    described: Dict[str, Any] = {}
    for cube in cubes:
        dimensions: Dict[str, Any] = {}
        time_dimensions: Dict[str, Any] = {}
        for dimension in cube.dimensions:
            target = time_dimensions if dimension.type == TIME_DIMENSION_TYPE else dimensions
            target[dimension.name] = _member_entry(dimension)

        entry: Dict[str, Any] = {
            "title": cube.title,
            "description": cube.description,
            "measures": {m.name: _member_entry(m) for m in cube.measures},
            "dimensions": dimensions,
        }
        if time_dimensions:
            entry["timeDimensions"] = time_dimensions
        described[cube.name] = entry

    return {"cubes": described}


def format_cube_schema(provider: CubeMetadataProvider) -> str:
    """Render the live semantic model as indented JSON.

    Falls back to a minimal single-cube schema when metadata cannot be
    loaded, so generation degrades instead of failing.

    Args:
        provider: Semantic-layer metadata source

    Returns:
        JSON text for the prompt's schema block
    """
    try:
        description = build_schema_description(provider.get_metadata())
    except Exception:
        logger.exception("Error loading cube schema for AI; using fallback schema")
        description = FALLBACK_SCHEMA
    return json.dumps(description, indent=2)
