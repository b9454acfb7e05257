"""Identifier helpers."""

from __future__ import annotations

import itertools
import uuid

_counter = itertools.count(1)


def generate_id(prefix: str = "id") -> str:
    """Generate a short unique identifier such as ``exec-12-3f9a1c2b``."""
    return f"{prefix}-{next(_counter)}-{uuid.uuid4().hex[:8]}"
