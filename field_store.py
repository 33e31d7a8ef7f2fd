"""In-memory flat field store keyed by field id, plus complex-field tab state."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List

from field_model import ComplexField, Field, Group, apply_patch, field_from_dict, group_from_dict


logger = logging.getLogger("fieldkit.store")


@dataclass
class FieldStoreError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class FieldNotFound(FieldStoreError):
    field_id: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (field_id={self.field_id!r})"


def _as_field(value: Any, path: str) -> Field:
    return value if isinstance(value, Field) else field_from_dict(value, path)


def _as_group(value: Any) -> Group:
    return value if isinstance(value, Group) else group_from_dict(value, "group")


class InMemoryFieldStore:
    """Single source of truth for field records.

    Reads hand out deep copies; writes copy their input. Not thread-safe:
    mutations are expected from one dispatch cycle at a time.
    """

    def __init__(self) -> None:
        self._fields: Dict[str, Field] = {}
        self._tabs: Dict[str, str | None] = {}

    # ---- reads ----

    def get_fields(self) -> Dict[str, Field]:
        return copy.deepcopy(self._fields)

    def get_field_by_id(self, field_id: str) -> Field:
        record = self._fields.get(field_id)
        if record is None:
            raise FieldNotFound("Field not found", field_id)
        return copy.deepcopy(record)

    def has_field(self, field_id: str) -> bool:
        return field_id in self._fields

    def field_ids(self) -> List[str]:
        return list(self._fields.keys())

    def is_field_tabbed(self, field_id: str) -> bool:
        record = self._fields.get(field_id)
        if record is None:
            raise FieldNotFound("Field not found", field_id)
        return isinstance(record, ComplexField) and record.is_tabbed

    def get_active_tab(self, field_id: str) -> str | None:
        return self._tabs.get(field_id)

    # ---- writes ----

    def add_fields(self, records: Dict[str, Any]) -> None:
        for field_id, value in records.items():
            record = _as_field(value, f"fields.{field_id}")
            if record.id != field_id:
                raise FieldStoreError(f"Field key {field_id!r} does not match record id {record.id!r}")
            self._fields[field_id] = copy.deepcopy(record)
            self._ensure_active_tab(field_id)
        logger.debug("fields_added count=%s", len(records))

    def remove_fields(self, field_ids: Iterable[str]) -> None:
        removed = 0
        for field_id in field_ids:
            if self._fields.pop(field_id, None) is not None:
                removed += 1
            self._tabs.pop(field_id, None)
        logger.debug("fields_removed count=%s", removed)

    def update_field(self, field_id: str, patch: dict) -> None:
        record = self._fields.get(field_id)
        if record is None:
            raise FieldNotFound("Field not found", field_id)
        self._fields[field_id] = apply_patch(record, patch)
        self._reconcile_active_tab(field_id)

    def receive_complex_group(self, field_id: str, group: Any) -> None:
        record = self._complex(field_id)
        incoming = copy.deepcopy(_as_group(group))
        self._fields[field_id] = replace(record, value=list(record.value) + [incoming])
        self._ensure_active_tab(field_id)

    def switch_complex_tab(self, field_id: str, group_id: str | None) -> None:
        self._complex(field_id)
        self._tabs[field_id] = group_id

    def apply_command(self, command: dict) -> None:
        """Apply one emitted command envelope to the store."""
        name = command.get("name")
        payload = command.get("payload") or {}
        if name == "fields.add":
            self.add_fields(payload["fields"])
        elif name == "fields.remove":
            self.remove_fields(payload["ids"])
        elif name == "field.update":
            self.update_field(payload["field_id"], payload["patch"])
        elif name == "complex.receive_group":
            self.receive_complex_group(payload["field_id"], payload["group"])
        elif name == "complex.switch_tab":
            self.switch_complex_tab(payload["field_id"], payload.get("group_id"))
        else:
            raise FieldStoreError(f"Unknown command: {name}")

    def clear(self) -> None:
        self._fields.clear()
        self._tabs.clear()

    # ---- helpers ----

    def _complex(self, field_id: str) -> ComplexField:
        record = self._fields.get(field_id)
        if record is None:
            raise FieldNotFound("Field not found", field_id)
        if not isinstance(record, ComplexField):
            raise FieldStoreError(f"Field {field_id!r} is not complex")
        return record

    def _ensure_active_tab(self, field_id: str) -> None:
        record = self._fields.get(field_id)
        if not isinstance(record, ComplexField) or not record.is_tabbed:
            return
        if self._tabs.get(field_id) is None and record.value:
            self._tabs[field_id] = record.value[0].id

    def _reconcile_active_tab(self, field_id: str) -> None:
        record = self._fields.get(field_id)
        if not isinstance(record, ComplexField) or not record.is_tabbed:
            return
        if not record.value:
            self._tabs[field_id] = None
        elif record.find_group(self._tabs.get(field_id) or "") is None:
            self._tabs[field_id] = record.value[0].id
