"""Pure algorithms over complex-group field trees.

Four passes cooperate when groups are added, cloned or removed:

- assign_identifiers: stamp a fresh group id and store-wide unique field ids
  onto a copied group and everything nested below it.
- flatten_group: collect every field record in a group tree, in the shape the
  flat store keeps them (nested groups hold references only).
- restore_field: swap a group's field reference for a copy of the live record
  it points at, recursively, so a clone starts from current values.
- collect_field_ids: list every field id owned by a live group, following
  complex fields through the store.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Sequence

from field_model import TYPE_COMPLEX, ComplexField, Field, FieldNode, FieldRef, Group, node_ref
from fieldkit.identifiers import IdMinter


logger = logging.getLogger("fieldkit.tree")


@dataclass
class GroupTreeError(Exception):
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (path={self.path})" if self.path else self.message


def _child_name(owner: Field, index: int, base_name: str) -> str:
    if not owner.name:
        return base_name
    return f"{owner.name}[{index}][{base_name}]"


def _group_id(owner: Field, index: int, minter: IdMinter) -> str:
    # Unique within the owner's value and across the store.
    return minter.mint(f"{owner.id}-group-{index}-")


def assign_identifiers(owner: Field, group: Group, index: int, minter: IdMinter) -> None:
    """Stamp ids onto group and its nested tree in place.

    Must run once per copied group; a second call would rewrite the ids again.
    """
    group.id = _group_id(owner, index, minter)
    group.fields = [_assign_node(owner, node, index, minter) for node in group.fields]


def _assign_node(owner: Field, node: FieldNode, index: int, minter: IdMinter) -> FieldNode:
    if isinstance(node, FieldRef):
        # Unresolved reference: keep its shape, give it a fresh identity.
        return replace(node, id=minter.mint(), name=_child_name(owner, index, node.base_name))
    node.id = minter.mint()
    node.name = _child_name(owner, index, node.base_name)
    node.parent_id = owner.id
    if isinstance(node, ComplexField):
        for child_index, child_group in enumerate(node.value):
            assign_identifiers(node, child_group, child_index, minter)
    return node


def _stored_record(node: FieldNode) -> Field:
    if isinstance(node, FieldRef):
        if node.type == TYPE_COMPLEX:
            return ComplexField(id=node.id, type=node.type, base_name=node.base_name, name=node.name)
        return Field(id=node.id, type=node.type, base_name=node.base_name, name=node.name)
    record = copy.deepcopy(node)
    if isinstance(record, ComplexField):
        record.value = [detach_group(group) for group in record.value]
    return record


def detach_group(group: Group) -> Group:
    """Copy of group whose fields are references into the flat store."""
    return replace(copy.deepcopy(group), fields=[node_ref(node) for node in group.fields])


def flatten_group(group: Group) -> List[Field]:
    """Depth-first list of every field record under group, nested levels included."""
    records: List[Field] = []
    _flatten_nodes(group.fields, records)
    return records


def _flatten_nodes(nodes: Sequence[FieldNode], records: List[Field]) -> None:
    for node in nodes:
        records.append(_stored_record(node))
        if isinstance(node, ComplexField):
            for child_group in node.value:
                _flatten_nodes(child_group.fields, records)


def restore_field(node: FieldNode, all_fields: Mapping[str, Field]) -> FieldNode:
    """Resolve node against the live store, returning a detached copy of the record.

    Unresolvable nodes come back unchanged.
    """
    record = all_fields.get(node.id)
    if record is None:
        logger.debug("reference_unresolved field_id=%s", node.id)
        return node
    restored = copy.deepcopy(record)
    if isinstance(restored, ComplexField):
        restored.value = [
            replace(child_group, fields=[restore_field(child, all_fields) for child in child_group.fields])
            for child_group in restored.value
        ]
    return restored


def unresolved_nodes(nodes: Sequence[FieldNode]) -> List[FieldRef]:
    """References left behind by restore_field, at any depth."""
    found: List[FieldRef] = []
    for node in nodes:
        if isinstance(node, FieldRef):
            found.append(node)
        elif isinstance(node, ComplexField):
            for child_group in node.value:
                found.extend(unresolved_nodes(child_group.fields))
    return found


def collect_field_ids(nodes: Sequence[FieldNode], all_fields: Mapping[str, Field], accumulator: List[str] | None = None) -> List[str]:
    """Every field id owned by nodes, following complex fields through all_fields."""
    ids = accumulator if accumulator is not None else []
    for node in nodes:
        ids.append(node.id)
        if node.type != TYPE_COMPLEX:
            continue
        record = all_fields.get(node.id)
        if not isinstance(record, ComplexField):
            continue
        for child_group in record.value:
            collect_field_ids(child_group.fields, all_fields, ids)
    return ids


def group_field_ids(group: Group) -> List[str]:
    """Ids assigned within a freshly built group tree (before flattening)."""
    ids: List[str] = []
    for node in group.fields:
        ids.append(node.id)
        if isinstance(node, ComplexField):
            for child_group in node.value:
                ids.extend(group_field_ids(child_group))
    return ids


def key_by_id(records: Sequence[Field]) -> Dict[str, Field]:
    keyed: Dict[str, Field] = {}
    for record in records:
        if record.id in keyed:
            raise GroupTreeError("Duplicate field id in group tree", record.id)
        keyed[record.id] = record
    return keyed
