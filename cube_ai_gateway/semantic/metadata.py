"""
Semantic-layer metadata.

Cube definitions are kept in YAML and exposed through
``CubeMetadataProvider`` with fully qualified member names
(``Employees.count``), the form the query grammar expects.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import yaml

DEFAULT_CUBES_PATH = Path(__file__).parent / "cubes.yaml"


@dataclass(frozen=True)
class MemberMeta:
    """A measure or dimension of a cube."""
    name: str
    type: str
    title: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class CubeMeta:
    """A registered cube with its members."""
    name: str
    title: Optional[str] = None
    description: Optional[str] = None
    measures: List[MemberMeta] = field(default_factory=list)
    dimensions: List[MemberMeta] = field(default_factory=list)


class CubeMetadataProvider:
    """Lists the cubes registered with the semantic layer."""

    def get_metadata(self) -> List[CubeMeta]:
        raise NotImplementedError


class StaticCubeMetadataProvider(CubeMetadataProvider):
    """Serves a fixed, in-memory list of cubes."""

    def __init__(self, cubes: Sequence[CubeMeta]):
        self._cubes = list(cubes)

    def get_metadata(self) -> List[CubeMeta]:
        return list(self._cubes)


class YamlCubeMetadataProvider(CubeMetadataProvider):
    """Reads cube definitions from a YAML file on every call.

    Re-reading keeps the prompt in step with edits to the model file; the
    file is small enough that no caching is warranted.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = str(path or DEFAULT_CUBES_PATH)

    def get_metadata(self) -> List[CubeMeta]:
        return load_cube_definitions(self.path)


def load_cube_definitions(path: str) -> List[CubeMeta]:
    """Load and validate cube definitions from YAML.

    Expected layout::

        cubes:
          Employees:
            title: Employee Analytics
            measures:
              count: {type: count, title: Total Employees}
            dimensions:
              createdAt: {type: time, title: Hire Date}

    Args:
        path: Path to YAML file

    Returns:
        Cubes in file order, member names qualified with the cube name

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the definitions are malformed
    """
    cubes_path = Path(path)
    if not cubes_path.exists():
        raise FileNotFoundError(f"Cube definitions file not found: {path}")

    with open(cubes_path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in cube definitions {path}: {e}")

    if not raw or not isinstance(raw, dict) or 'cubes' not in raw:
        raise ValueError("Cube definitions must contain a 'cubes' mapping")

    cubes_data = raw['cubes']
    if not isinstance(cubes_data, dict):
        raise ValueError("'cubes' must be a dictionary")

    cubes = []
    for cube_name, cube_data in cubes_data.items():
        if not isinstance(cube_data, dict):
            raise ValueError(f"Cube '{cube_name}' must be a dictionary")

        unknown_keys = set(cube_data.keys()) - {'title', 'description', 'measures', 'dimensions'}
        if unknown_keys:
            raise ValueError(f"Unknown keys in cube '{cube_name}': {unknown_keys}")

        cubes.append(CubeMeta(
            name=cube_name,
            title=cube_data.get('title'),
            description=cube_data.get('description'),
            measures=_parse_members(cube_name, cube_data.get('measures') or {}, "measures"),
            dimensions=_parse_members(cube_name, cube_data.get('dimensions') or {}, "dimensions"),
        ))
    return cubes


def _parse_members(cube_name: str, data: Dict, section: str) -> List[MemberMeta]:
    if not isinstance(data, dict):
        raise ValueError(f"'{section}' in cube '{cube_name}' must be a dictionary")

    members = []
    for member_name, member_data in data.items():
        path = f"{cube_name}.{section}.{member_name}"
        if not isinstance(member_data, dict):
            raise ValueError(f"Member '{path}' must be a dictionary")
        if 'type' not in member_data:
            raise ValueError(f"Missing required 'type' in {path}")
        members.append(MemberMeta(
            name=f"{cube_name}.{member_name}",
            type=str(member_data['type']),
            title=member_data.get('title'),
            description=member_data.get('description'),
        ))
    return members
