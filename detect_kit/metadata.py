from __future__ import annotations

from pathlib import Path
from typing import Dict, Union


def load_class_names(path: Union[str, Path]) -> Dict[int, str]:
    """
    Load class names for labelling detections.

    Two formats are understood:

    - Darknet `.names` files: one label per line, the line index is the class id.
    - A small YAML-like metadata file with a `names:` block:

          names:
            0: person
            1: bicycle

    No YAML dependency is needed for either.
    """

    path = Path(path)
    lines = path.read_text(encoding="utf-8").splitlines()

    if path.suffix.lower() == ".names":
        return {i: line.strip() for i, line in enumerate(lines) if line.strip()}

    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names or ":" not in line:
            continue

        left, right = line.split(":", 1)
        left = left.strip()
        if not left.isdigit():
            # Next top-level key ends the block.
            if not raw.startswith((" ", "\t")):
                in_names = False
            continue
        names[int(left)] = right.strip().strip("'").strip('"')

    return names
