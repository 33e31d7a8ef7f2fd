import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from field_model import ComplexField, Field, FieldRef, Group
from field_store import FieldNotFound, FieldStoreError, InMemoryFieldStore
from outbox import UPDATE_FIELD, make_command


def _tabbed(field_id: str, groups: list) -> ComplexField:
    return ComplexField(id=field_id, type="complex", layout="tabbed-horizontal", value=groups)


class TestInMemoryFieldStore(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryFieldStore()

    def test_reads_return_copies(self) -> None:
        self.store.add_fields({"f1": Field(id="f1", type="text", value="a")})
        record = self.store.get_field_by_id("f1")
        record.value = "changed"
        self.assertEqual(self.store.get_field_by_id("f1").value, "a")

    def test_add_fields_accepts_dicts(self) -> None:
        self.store.add_fields({"f1": {"kind": "field", "id": "f1", "type": "text"}})
        self.assertIsInstance(self.store.get_field_by_id("f1"), Field)

    def test_add_fields_key_must_match_id(self) -> None:
        with self.assertRaises(FieldStoreError):
            self.store.add_fields({"f1": Field(id="f2", type="text")})

    def test_unknown_field_raises_not_found(self) -> None:
        with self.assertRaises(FieldNotFound):
            self.store.get_field_by_id("nope")
        with self.assertRaises(FieldNotFound):
            self.store.is_field_tabbed("nope")

    def test_tabbed_field_gets_first_group_active(self) -> None:
        groups = [Group(name="row", id="g1"), Group(name="row", id="g2")]
        self.store.add_fields({"c1": _tabbed("c1", groups)})
        self.assertTrue(self.store.is_field_tabbed("c1"))
        self.assertEqual(self.store.get_active_tab("c1"), "g1")

    def test_untabbed_field_has_no_active_tab(self) -> None:
        self.store.add_fields({"c1": ComplexField(id="c1", type="complex", value=[Group(name="row", id="g1")])})
        self.assertFalse(self.store.is_field_tabbed("c1"))
        self.assertIsNone(self.store.get_active_tab("c1"))

    def test_receive_complex_group_appends(self) -> None:
        self.store.add_fields({"c1": _tabbed("c1", [])})
        self.store.receive_complex_group("c1", Group(name="row", id="g1", fields=[FieldRef(id="f1", type="text")]))
        self.store.receive_complex_group("c1", {"id": "g2", "name": "row", "fields": []})
        record = self.store.get_field_by_id("c1")
        self.assertEqual([g.id for g in record.value], ["g1", "g2"])
        self.assertEqual(self.store.get_active_tab("c1"), "g1")

    def test_receive_group_requires_complex_owner(self) -> None:
        self.store.add_fields({"f1": Field(id="f1", type="text")})
        with self.assertRaises(FieldStoreError):
            self.store.receive_complex_group("f1", Group(name="row", id="g1"))

    def test_update_to_empty_value_clears_tab(self) -> None:
        self.store.add_fields({"c1": _tabbed("c1", [Group(name="row", id="g1")])})
        self.store.update_field("c1", {"value": []})
        self.assertIsNone(self.store.get_active_tab("c1"))

    def test_remove_fields_drops_tab_state(self) -> None:
        self.store.add_fields({"c1": _tabbed("c1", [Group(name="row", id="g1")])})
        self.store.remove_fields(["c1", "missing"])
        self.assertFalse(self.store.has_field("c1"))
        self.assertIsNone(self.store.get_active_tab("c1"))

    def test_apply_update_command(self) -> None:
        self.store.add_fields({"f1": Field(id="f1", type="file")})
        self.store.apply_command(make_command(UPDATE_FIELD, {"field_id": "f1", "patch": {"value": 7, "file_name": "a.pdf"}}))
        record = self.store.get_field_by_id("f1")
        self.assertEqual(record.value, 7)
        self.assertEqual(record.attrs["file_name"], "a.pdf")

    def test_apply_unknown_command_raises(self) -> None:
        with self.assertRaises(FieldStoreError):
            self.store.apply_command({"name": "nope", "payload": {}})


if __name__ == "__main__":
    unittest.main()
