from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


def class_name(names: Optional[Sequence[str]], class_id: int) -> str:
    """
    Name for `class_id`, or `class_<id>` when no table is loaded or the id is out of range.
    """

    if names is not None and 0 <= class_id < len(names):
        return names[class_id]
    return f"class_{class_id}"


def _parse_names_mapping(lines: Sequence[str]) -> Dict[int, str]:
    """
    Parse the lightweight `metadata.yaml` layout:

        names:
          0: person
          1: bicycle
          ...

    Only the `names:` block is read, so no YAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue

        # Parse "id: label"
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        right = right.strip().strip("'").strip('"')
        if not left.isdigit():
            continue
        names[int(left)] = right
    return names


def load_class_names(path: Union[str, Path]) -> List[str]:
    """
    Load an ordered class-name table.

    - `.yaml` / `.yml`: the `names:` id mapping above; gaps are filled with `class_<id>`.
    - anything else: one name per line; a blank line keeps its slot as `class_<line>`.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Class names file not found: {path}")
    lines = path.read_text(encoding="utf-8").splitlines()

    if path.suffix.lower() in (".yaml", ".yml"):
        mapping = _parse_names_mapping(lines)
        size = max(mapping) + 1 if mapping else 0
        names = [mapping.get(i, f"class_{i}") for i in range(size)]
    else:
        names = [line.rstrip() or f"class_{i}" for i, line in enumerate(lines)]

    if not names:
        raise ValueError(f"No class names found in {path}")
    logger.info("Loaded %d class names from %s", len(names), path)
    return names
