from __future__ import annotations

import ast
from typing import Dict


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Load class names from a lightweight `metadata.yaml` next to the model.

        names:
          0: person
          1: bicycle
          ...

    Only the `names:` block is read, so no YAML parser is needed.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # a new top-level key ends the block
            if not raw[:1].isspace() and not line[:1].isdigit():
                break

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    return names


def parse_names_metadata(raw: str) -> Dict[int, str]:
    """
    Parse the `names` entry YOLO ONNX exports keep in model metadata,
    e.g. "{0: 'person', 1: 'bicycle'}". Returns {} if it is not a dict literal.
    """

    try:
        value = ast.literal_eval(raw)
    except (ValueError, SyntaxError):
        return {}
    if isinstance(value, dict):
        return {int(k): str(v) for k, v in value.items() if isinstance(k, int) or str(k).isdigit()}
    if isinstance(value, (list, tuple)):
        return {i: str(v) for i, v in enumerate(value)}
    return {}
