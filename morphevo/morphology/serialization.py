from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from morphevo.exceptions import SessionFormatError
from morphevo.morphology.graph import MorphologyGraph

CREATURE_EXTENSION = "json"


def dumps_creature(graph: MorphologyGraph) -> str:
    return graph.model_dump_json(indent=2)


def loads_creature(text: str, source: str = "<string>") -> MorphologyGraph:
    try:
        return MorphologyGraph.model_validate_json(text)
    except PydanticValidationError as e:
        raise SessionFormatError(f"Malformed creature record {source}: {e}") from e


def write_creature(path: Path, graph: MorphologyGraph) -> None:
    path.write_text(dumps_creature(graph), encoding="utf-8")


def read_creature(path: Path) -> MorphologyGraph:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SessionFormatError(f"Could not read creature record {path}: {e}") from e
    return loads_creature(text, source=str(path))
