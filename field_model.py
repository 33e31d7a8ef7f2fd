"""Field tree data model: leaf fields, complex fields, groups and field references."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from typing import Any, Dict, List, Union


TYPE_COMPLEX = "complex"
TABBED_LAYOUTS = {"tabbed-horizontal", "tabbed-vertical"}

KIND_FIELD = "field"
KIND_REF = "ref"


@dataclass
class FieldModelError(Exception):
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (path={self.path})" if self.path else self.message


@dataclass(frozen=True)
class FieldRef:
    """Pointer to a materialized field record, as held inside a live group."""

    id: str
    type: str
    base_name: str = ""
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": KIND_REF,
            "id": self.id,
            "type": self.type,
            "base_name": self.base_name,
            "name": self.name,
        }


@dataclass
class Field:
    id: str
    type: str
    base_name: str = ""
    name: str = ""
    value: Any = None
    parent_id: str | None = None
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complex(self) -> bool:
        return False

    def ref(self) -> FieldRef:
        return FieldRef(id=self.id, type=self.type, base_name=self.base_name, name=self.name)

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.attrs)
        data.update(
            {
                "kind": KIND_FIELD,
                "id": self.id,
                "type": self.type,
                "base_name": self.base_name,
                "name": self.name,
                "value": copy.deepcopy(self.value),
                "parent_id": self.parent_id,
            }
        )
        return data


@dataclass
class Group:
    """A group template (no id) or a live group instance attached to a complex field."""

    name: str
    fields: List["FieldNode"] = field(default_factory=list)
    id: str | None = None
    label: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)

    def field_ids(self) -> List[str]:
        return [node.id for node in self.fields]

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.meta)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "label": self.label,
                "fields": [node.to_dict() for node in self.fields],
            }
        )
        return data


@dataclass
class ComplexField(Field):
    value: List[Group] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    layout: str = "grid"

    @property
    def is_complex(self) -> bool:
        return True

    @property
    def is_tabbed(self) -> bool:
        return is_tabbed_layout(self.layout)

    def find_template(self, name: str) -> Group | None:
        for group in self.groups:
            if group.name == name:
                return group
        return None

    def find_group(self, group_id: str) -> Group | None:
        for group in self.value:
            if group.id == group_id:
                return group
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["value"] = [group.to_dict() for group in self.value]
        data["groups"] = [group.to_dict() for group in self.groups]
        data["layout"] = self.layout
        return data


FieldNode = Union[Field, FieldRef]

_FIELD_KEYS = {"kind", "id", "type", "base_name", "name", "value", "parent_id"}
_COMPLEX_KEYS = _FIELD_KEYS | {"groups", "layout"}
_GROUP_KEYS = {"id", "name", "label", "fields"}


def is_tabbed_layout(layout: Any) -> bool:
    return layout in TABBED_LAYOUTS


def _require_str(data: dict, key: str, path: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise FieldModelError(f"{key} must be non-empty string", f"{path}.{key}")
    return value


def group_from_dict(data: Any, path: str = "$") -> Group:
    if not isinstance(data, dict):
        raise FieldModelError("group must be object", path)
    name = _require_str(data, "name", path)
    raw_fields = data.get("fields") or []
    if not isinstance(raw_fields, list):
        raise FieldModelError("fields must be list", f"{path}.fields")
    group_id = data.get("id")
    if group_id is not None and not isinstance(group_id, str):
        raise FieldModelError("id must be string or null", f"{path}.id")
    return Group(
        name=name,
        fields=[node_from_dict(item, f"{path}.fields[{idx}]") for idx, item in enumerate(raw_fields)],
        id=group_id,
        label=data.get("label") or "",
        meta={k: copy.deepcopy(v) for k, v in data.items() if k not in _GROUP_KEYS},
    )


def _groups_from_list(items: Any, path: str) -> List[Group]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise FieldModelError("groups must be list", path)
    return [group_from_dict(item, f"{path}[{idx}]") for idx, item in enumerate(items)]


def field_from_dict(data: Any, path: str = "$") -> Field:
    """Parse a field definition or record; definitions may omit the id."""
    if not isinstance(data, dict):
        raise FieldModelError("field must be object", path)
    kind = data.get("kind", KIND_FIELD)
    if kind != KIND_FIELD:
        raise FieldModelError("expected field, got reference", f"{path}.kind")
    field_type = _require_str(data, "type", path)
    field_id = data.get("id") or ""
    if not isinstance(field_id, str):
        raise FieldModelError("id must be string", f"{path}.id")
    base_name = data.get("base_name") or data.get("name") or ""
    common = {
        "id": field_id,
        "type": field_type,
        "base_name": base_name,
        "name": data.get("name") or base_name,
        "parent_id": data.get("parent_id"),
    }
    if field_type == TYPE_COMPLEX:
        return ComplexField(
            value=_groups_from_list(data.get("value"), f"{path}.value"),
            groups=_groups_from_list(data.get("groups"), f"{path}.groups"),
            layout=data.get("layout") or "grid",
            attrs={k: copy.deepcopy(v) for k, v in data.items() if k not in _COMPLEX_KEYS},
            **common,
        )
    return Field(
        value=copy.deepcopy(data.get("value")),
        attrs={k: copy.deepcopy(v) for k, v in data.items() if k not in _FIELD_KEYS},
        **common,
    )


def node_from_dict(data: Any, path: str = "$") -> FieldNode:
    if isinstance(data, dict) and data.get("kind") == KIND_REF:
        return FieldRef(
            id=_require_str(data, "id", path),
            type=_require_str(data, "type", path),
            base_name=data.get("base_name") or "",
            name=data.get("name") or "",
        )
    return field_from_dict(data, path)


def node_ref(node: FieldNode) -> FieldRef:
    return node if isinstance(node, FieldRef) else node.ref()


def apply_patch(record: Field, patch: dict) -> Field:
    """Return a copy of record with patch merged in; unknown keys land in attrs."""
    if not isinstance(patch, dict):
        raise FieldModelError("patch must be object", "patch")
    known = {f.name for f in dataclass_fields(record)} - {"attrs", "id", "type"}
    changes: Dict[str, Any] = {}
    attrs = copy.deepcopy(record.attrs)
    for key, value in patch.items():
        if key in {"id", "type", "kind"}:
            raise FieldModelError(f"{key} cannot be patched", f"patch.{key}")
        if key not in known:
            attrs[key] = copy.deepcopy(value)
            continue
        if isinstance(record, ComplexField) and key in {"value", "groups"}:
            changes[key] = [
                item if isinstance(item, Group) else group_from_dict(item, f"patch.{key}[{idx}]")
                for idx, item in enumerate(value or [])
            ]
        else:
            changes[key] = copy.deepcopy(value)
    return replace(copy.deepcopy(record), attrs=attrs, **changes)
