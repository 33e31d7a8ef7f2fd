import itertools
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from fieldkit.identifiers import IdMinter


class TestIdMinter(unittest.TestCase):
    def test_skips_taken_ids(self) -> None:
        counter = itertools.count()
        minter = IdMinter(["field-0", "field-1"], suffix_factory=lambda: str(next(counter)))
        self.assertEqual(minter.mint(), "field-2")

    def test_minted_ids_are_reserved(self) -> None:
        suffixes = iter(["a", "a", "b"])
        minter = IdMinter([], suffix_factory=lambda: next(suffixes))
        self.assertEqual(minter.mint(), "field-a")
        self.assertEqual(minter.mint(), "field-b")
        self.assertTrue(minter.is_taken("field-a"))

    def test_custom_prefix_per_call(self) -> None:
        minter = IdMinter([], prefix="x-", suffix_factory=lambda: "1")
        self.assertEqual(minter.mint("owner-group-0-"), "owner-group-0-1")
        self.assertEqual(minter.mint(), "x-1")

    def test_gives_up_after_max_attempts(self) -> None:
        minter = IdMinter(["field-1"], suffix_factory=lambda: "1", max_attempts=3)
        with self.assertRaises(RuntimeError):
            minter.mint()

    def test_default_suffix_is_unique(self) -> None:
        minter = IdMinter([])
        ids = {minter.mint() for _ in range(50)}
        self.assertEqual(len(ids), 50)
        self.assertTrue(all(i.startswith("field-") for i in ids))


if __name__ == "__main__":
    unittest.main()
