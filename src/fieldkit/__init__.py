"""Field kit kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, CanonicalJsonValueError, ensure_canonical
from .identifiers import IdMinter

__all__ = [
    "CanonicalJsonTypeError",
    "CanonicalJsonValueError",
    "IdMinter",
    "ensure_canonical",
]
