from __future__ import annotations

import re
from typing import Tuple

_NUM = re.compile(r"\d+")


def parse_version(raw: str) -> Tuple[int, int, int]:
    """
    Parse `major.minor.patch` leniently (missing/garbled parts count as 0).

    Examples: "0.4.11" -> (0, 4, 11); "v1.2" -> (1, 2, 0); "" -> (0, 0, 0)
    """
    parts = []
    for piece in (raw or "").strip().lstrip("vV").split(".")[:3]:
        m = _NUM.search(piece)
        parts.append(int(m.group(0)) if m else 0)
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def version_greater_than(a: str, b: str) -> bool:
    return parse_version(a) > parse_version(b)


def version_great_or_equal_than(a: str, b: str) -> bool:
    return parse_version(a) >= parse_version(b)
