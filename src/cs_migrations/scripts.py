"""Migration scripts — discovery and ordering.

A script is a Python module in the migrations directory. Its file stem is the
migration name (e.g. "002_create_content_items") and it exposes STATEMENTS, a
sequence of SQL statements executed in order inside one transaction. Files
whose name starts with "_" are ignored.

Names sort lexicographically, so zero-pad numeric prefixes.
"""

import importlib.util
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from src.cs_common.errors import MigrationFailedError


@dataclass(frozen=True)
class MigrationScript:
    name: str
    statements: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise MigrationFailedError(None, "migration name must not be empty")
        if not self.statements:
            raise MigrationFailedError(self.name, "migration has no statements")


def order_scripts(scripts: Iterable[MigrationScript]) -> list[MigrationScript]:
    """Lexicographic order by name; duplicate names are rejected."""
    ordered = sorted(scripts, key=lambda s: s.name)
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.name == cur.name:
            raise MigrationFailedError(cur.name, "duplicate migration name")
    return ordered


def _load_module_statements(path: Path) -> Sequence[str]:
    spec = importlib.util.spec_from_file_location(f"_cs_migration_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise MigrationFailedError(path.stem, f"cannot load {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as err:
        raise MigrationFailedError(path.stem, f"import error: {err}") from err

    statements = getattr(module, "STATEMENTS", None)
    if not isinstance(statements, (list, tuple)) or not all(
        isinstance(s, str) for s in statements
    ):
        raise MigrationFailedError(path.stem, "STATEMENTS must be a list or tuple of SQL strings")
    return statements


def load_scripts(directory: str | Path) -> list[MigrationScript]:
    """Load every migration module in `directory`, ordered by name."""
    root = Path(directory)
    if not root.is_dir():
        raise MigrationFailedError(None, f"migrations directory not found: {root}")

    scripts = []
    for path in root.glob("*.py"):
        if path.name.startswith("_"):
            continue
        statements = _load_module_statements(path)
        scripts.append(
            MigrationScript(
                name=path.stem,
                statements=tuple(s.strip() for s in statements if s.strip()),
            )
        )
    return order_scripts(scripts)
