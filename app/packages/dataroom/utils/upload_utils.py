"""Upload helpers: node name validation, human readable sizes and free-name suggestion.

Rules shared by folder creation, rename and upload:
- names are trimmed before storage and comparison;
- empty names, names longer than MAX_NODE_NAME_LENGTH and names containing '/' are rejected;
- uniqueness is checked case-insensitively (see ``resolver.name_key``).
"""

from __future__ import annotations

import os
from typing import Iterable

from app.packages.dataroom.core.constants import MAX_NODE_NAME_LENGTH
from app.packages.dataroom.core.exceptions import InvalidNameError
from app.packages.dataroom.tree.resolver import name_key


def normalize_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name:
        raise InvalidNameError("名称不能为空")
    if len(name) > MAX_NODE_NAME_LENGTH:
        raise InvalidNameError(f"名称长度不能超过 {MAX_NODE_NAME_LENGTH} 个字符")
    if "/" in name or name in {".", ".."}:
        raise InvalidNameError("名称不能包含 '/'，也不能为 '.' 或 '..'")
    return name


def format_file_size(size: int) -> str:
    """1536 -> '1.5 KB'; values below 1 KB keep the byte count."""
    value = float(max(size, 0))
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"  # pragma: no cover


def generate_unique_file_name(name: str, existing: Iterable[str]) -> str:
    """Return ``name`` or the first free ``"base (n).ext"`` among ``existing``."""
    taken = {name_key(item) for item in existing}
    if name_key(name) not in taken:
        return name
    base, ext = os.path.splitext(name)
    counter = 1
    while True:
        candidate = f"{base} ({counter}){ext}"
        if name_key(candidate) not in taken:
            return candidate
        counter += 1
