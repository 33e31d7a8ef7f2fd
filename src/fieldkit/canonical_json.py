"""Canonical JSON for event and command payloads.

Payloads travel between the coordinators, the outbox and the HTTP layer as
plain dicts. They must hold JSON primitives only, so that a payload recorded
in command history can be serialized and compared as plain JSON.
"""

from __future__ import annotations

import math
from typing import Any, List, Tuple


class CanonicalJsonTypeError(TypeError):
    """A payload holds something JSON cannot represent."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(f"{message} at {path}")
        self.path = path


class CanonicalJsonValueError(ValueError):
    """A payload holds NaN or an infinity."""

    def __init__(self, value: float, path: str) -> None:
        super().__init__(f"Non-finite float at {path}: {value!r}")
        self.path = path


_SCALARS = (str, int, bool)


def ensure_canonical(obj: Any, root: str = "$") -> None:
    """Raise with the offending path if obj is not made of JSON primitives."""
    pending: List[Tuple[Any, str]] = [(obj, root)]
    while pending:
        value, path = pending.pop()
        if value is None or isinstance(value, _SCALARS):
            continue
        if isinstance(value, float):
            if not math.isfinite(value):
                raise CanonicalJsonValueError(value, path)
            continue
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise CanonicalJsonTypeError(f"Key of type {type(key).__name__}", path)
                pending.append((item, f"{path}.{key}"))
            continue
        if isinstance(value, (list, tuple)):
            pending.extend((item, f"{path}[{idx}]") for idx, item in enumerate(value))
            continue
        raise CanonicalJsonTypeError(f"Value of type {type(value).__name__}", path)

