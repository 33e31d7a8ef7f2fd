import itertools
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
from fieldkit.identifiers import IdMinter
from group_tree import (
    GroupTreeError,
    assign_identifiers,
    collect_field_ids,
    detach_group,
    flatten_group,
    group_field_ids,
    key_by_id,
    restore_field,
    unresolved_nodes,
)


def _minter(taken=()) -> IdMinter:
    counter = itertools.count()
    return IdMinter(taken, suffix_factory=lambda: str(next(counter)))


def _nested_group() -> Group:
    inner = ComplexField(
        id="",
        type="complex",
        base_name="cells",
        value=[Group(name="cell", fields=[Field(id="", type="text", base_name="body")])],
        groups=[Group(name="cell", fields=[Field(id="", type="text", base_name="body")])],
    )
    return Group(name="row", fields=[Field(id="", type="text", base_name="title"), inner])


class TestAssignIdentifiers(unittest.TestCase):
    def test_group_and_fields_get_fresh_ids(self) -> None:
        owner = ComplexField(id="rows", type="complex", base_name="rows", name="rows")
        group = _nested_group()
        assign_identifiers(owner, group, 3, _minter(["field-0"]))

        self.assertTrue(group.id.startswith("rows-group-3-"))
        title, inner = group.fields
        self.assertNotEqual(title.id, "field-0")
        self.assertEqual(title.name, "rows[3][title]")
        self.assertEqual(title.parent_id, "rows")
        self.assertEqual(inner.name, "rows[3][cells]")
        cell = inner.value[0]
        self.assertTrue(cell.id.startswith(f"{inner.id}-group-0-"))
        self.assertEqual(cell.fields[0].name, "rows[3][cells][0][body]")
        self.assertEqual(cell.fields[0].parent_id, inner.id)

    def test_ids_unique_across_tree(self) -> None:
        owner = ComplexField(id="rows", type="complex")
        group = _nested_group()
        taken = ["field-0", "field-1", "field-2"]
        assign_identifiers(owner, group, 0, _minter(taken))
        ids = group_field_ids(group)
        self.assertEqual(len(ids), 3)
        self.assertEqual(len(set(ids)), 3)
        self.assertFalse(set(ids) & set(taken))

    def test_unnamed_owner_keeps_base_names(self) -> None:
        owner = ComplexField(id="rows", type="complex")
        group = Group(name="row", fields=[Field(id="", type="text", base_name="title")])
        assign_identifiers(owner, group, 0, _minter())
        self.assertEqual(group.fields[0].name, "title")


class TestFlattenGroup(unittest.TestCase):
    def setUp(self) -> None:
        self.owner = ComplexField(id="rows", type="complex")
        self.group = _nested_group()
        assign_identifiers(self.owner, self.group, 0, _minter())

    def test_flatten_covers_exactly_assigned_ids(self) -> None:
        records = flatten_group(self.group)
        self.assertEqual({r.id for r in records}, set(group_field_ids(self.group)))

    def test_flattened_complex_holds_references(self) -> None:
        records = key_by_id(flatten_group(self.group))
        inner = records[self.group.fields[1].id]
        self.assertIsInstance(inner, ComplexField)
        self.assertIsInstance(inner.value[0].fields[0], FieldRef)

    def test_flatten_does_not_mutate_group(self) -> None:
        flatten_group(self.group)
        self.assertIsInstance(self.group.fields[1].value[0].fields[0], Field)

    def test_empty_group(self) -> None:
        self.assertEqual(flatten_group(Group(name="row")), [])

    def test_complex_without_value_contributes_itself(self) -> None:
        group = Group(name="row", fields=[ComplexField(id="c9", type="complex")])
        self.assertEqual([r.id for r in flatten_group(group)], ["c9"])

    def test_detach_group_uses_references(self) -> None:
        detached = detach_group(self.group)
        self.assertEqual(detached.id, self.group.id)
        self.assertTrue(all(isinstance(node, FieldRef) for node in detached.fields))
        self.assertEqual(detached.field_ids(), self.group.field_ids())

    def test_key_by_id_rejects_duplicates(self) -> None:
        with self.assertRaises(GroupTreeError):
            key_by_id([Field(id="a", type="text"), Field(id="a", type="text")])


class TestRestoreAndCollect(unittest.TestCase):
    def setUp(self) -> None:
        owner = ComplexField(id="rows", type="complex")
        self.group = _nested_group()
        assign_identifiers(owner, self.group, 0, _minter())
        self.all_fields = key_by_id(flatten_group(self.group))
        self.live = detach_group(self.group)

    def test_restore_returns_live_copy(self) -> None:
        title_ref = self.live.fields[0]
        restored = restore_field(title_ref, self.all_fields)
        self.assertIsInstance(restored, Field)
        self.assertEqual(restored, self.all_fields[title_ref.id])
        restored.value = "edited"
        self.assertIsNone(self.all_fields[title_ref.id].value)

    def test_restore_recurses_into_complex(self) -> None:
        restored = restore_field(self.live.fields[1], self.all_fields)
        self.assertIsInstance(restored.value[0].fields[0], Field)
        self.assertEqual(unresolved_nodes([restored]), [])

    def test_unresolved_reference_left_untouched(self) -> None:
        missing = FieldRef(id="gone", type="text", base_name="title")
        self.assertIs(restore_field(missing, self.all_fields), missing)
        self.assertEqual(unresolved_nodes([missing]), [missing])

    def test_unresolved_reference_is_materialized_by_flatten(self) -> None:
        group = Group(name="row", fields=[FieldRef(id="gone", type="complex", base_name="cells")])
        assign_identifiers(ComplexField(id="rows", type="complex"), group, 0, _minter())
        records = flatten_group(group)
        self.assertEqual(len(records), 1)
        self.assertIsInstance(records[0], ComplexField)
        self.assertEqual(records[0].id, group.fields[0].id)

    def test_collect_field_ids_follows_store(self) -> None:
        ids = collect_field_ids(self.live.fields, self.all_fields)
        self.assertEqual(sorted(ids), sorted(self.all_fields.keys()))
        self.assertEqual(len(ids), len(set(ids)))

    def test_collect_skips_complex_missing_from_store(self) -> None:
        ids = collect_field_ids([FieldRef(id="ghost", type="complex")], {})
        self.assertEqual(ids, ["ghost"])


if __name__ == "__main__":
    unittest.main()
