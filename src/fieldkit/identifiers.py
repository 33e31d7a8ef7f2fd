"""Store-wide unique identifier minting."""

from __future__ import annotations

import uuid
from typing import Callable, Iterable, Set


def _uuid_suffix() -> str:
    return uuid.uuid4().hex[:12]


class IdMinter:
    """Mint identifiers that never collide with a known set of ids.

    The minter is seeded with every id already present in the store; each
    minted id is added to the taken set so siblings minted in the same
    operation cannot collide either.
    """

    def __init__(
        self,
        taken: Iterable[str] = (),
        prefix: str = "field-",
        suffix_factory: Callable[[], str] | None = None,
        max_attempts: int = 100,
    ) -> None:
        self.prefix = prefix
        self._taken: Set[str] = set(taken)
        self._suffix = suffix_factory or _uuid_suffix
        self._max_attempts = max_attempts

    def reserve(self, ids: Iterable[str]) -> None:
        self._taken.update(ids)

    def is_taken(self, value: str) -> bool:
        return value in self._taken

    def mint(self, prefix: str | None = None) -> str:
        head = self.prefix if prefix is None else prefix
        for _ in range(self._max_attempts):
            candidate = f"{head}{self._suffix()}"
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
        raise RuntimeError(f"Unable to mint unique id with prefix {head!r}")
