"""Hash-based task identifiers.

IDs are derived from random UUIDs instead of a counter so that agents working
offline on different branches never hand out the same ID.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Collection
from typing import Any
from uuid import uuid4

DEFAULT_PREFIX = "tl"
MIN_HASH_LENGTH = 4
MAX_HASH_LENGTH = 8
CONTENT_HASH_LENGTH = 16

_ID_PATTERN = re.compile(
    rf"^[a-z]+-[a-f0-9]{{{MIN_HASH_LENGTH},{MAX_HASH_LENGTH}}}(\.\d+)*$",
    re.IGNORECASE,
)


def generate_id(
    existing_ids: Collection[str] = (),
    *,
    prefix: str = DEFAULT_PREFIX,
    min_length: int = MIN_HASH_LENGTH,
    max_length: int = MAX_HASH_LENGTH,
) -> str:
    """Return a fresh ``<prefix>-<hex>`` ID not present in ``existing_ids``.

    The short form is used only for the very first ID; once anything exists the
    full length keeps the collision probability negligible.
    """

    length = min_length if not existing_ids else max(min_length, max_length)
    taken = existing_ids if isinstance(existing_ids, (set, frozenset)) else set(existing_ids)
    while True:
        digest = hashlib.sha256(str(uuid4()).encode("utf-8")).hexdigest()
        candidate = f"{prefix}-{digest[:length]}"
        if candidate not in taken:
            return candidate


def generate_child_id(parent_id: str, index: int) -> str:
    return f"{parent_id}.{index}"


def parent_id_of(child_id: str) -> str | None:
    """Strip the last dotted suffix, or return None for a top-level ID."""

    if "." not in child_id:
        return None
    return child_id.rsplit(".", 1)[0]


def child_index_of(child_id: str, parent_id: str) -> int | None:
    """Return N when ``child_id`` is exactly ``<parent_id>.N``."""

    prefix = f"{parent_id}."
    if not child_id.startswith(prefix):
        return None
    suffix = child_id[len(prefix) :]
    if not suffix.isdigit():
        return None
    return int(suffix)


def is_valid_id(value: str | None) -> bool:
    if not value:
        return False
    return _ID_PATTERN.match(value) is not None


def content_hash(data: Any) -> str:
    """Stable digest over the canonical JSON form of ``data``."""

    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]
