"""Form runtime: routes lifecycle events to the coordinators and applies emitted commands in order."""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List

from event_bus import ADD_GROUP, CLONE_GROUP, REMOVE_GROUP, SWITCH_TAB, EventBus, make_event
from field_model import ComplexField, Field, FieldModelError, field_from_dict
from field_store import InMemoryFieldStore
from fieldkit.identifiers import IdMinter
from group_lifecycle import add_or_clone_group, remove_group, switch_tab
from group_tree import assign_identifiers, detach_group, flatten_group, key_by_id
from outbox import ADD_FIELDS, Outbox, make_command


Issue = Dict[str, Any]

logger = logging.getLogger("fieldkit.runtime")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


class FormRuntime:
    """Owns the store and outbox for one editing session.

    Events are handled one at a time: a handler enqueues its commands and the
    runtime applies them to the store before the next event is dispatched.
    Picker events are async and go to MediaPickerCoordinator.handle instead;
    the coordinator writes back through emit.
    """

    def __init__(
        self,
        store: InMemoryFieldStore | None = None,
        bus: EventBus | None = None,
        outbox: Outbox | None = None,
        id_prefix: str = "field-",
        minter_factory: Callable[[List[str]], IdMinter] | None = None,
        history_limit: int = 500,
    ) -> None:
        self.store = store or InMemoryFieldStore()
        self.bus = bus or EventBus()
        self.outbox = outbox or Outbox()
        self.id_prefix = id_prefix
        self._minter_factory = minter_factory
        self._history: List[dict] = []
        self._history_limit = history_limit
        self.bus.subscribe(ADD_GROUP, self._handle_add_or_clone)
        self.bus.subscribe(CLONE_GROUP, self._handle_add_or_clone)
        self.bus.subscribe(REMOVE_GROUP, self._handle_remove)
        self.bus.subscribe(SWITCH_TAB, self._handle_switch_tab)

    @property
    def deps(self) -> dict:
        return {
            "store": self.store,
            "outbox": self.outbox,
            "id_prefix": self.id_prefix,
            "minter_factory": self._minter_factory,
        }

    def _handle_add_or_clone(self, event: dict) -> dict:
        return add_or_clone_group(event, self.deps)

    def _handle_remove(self, event: dict) -> dict:
        return remove_group(event, self.deps)

    def _handle_switch_tab(self, event: dict) -> dict:
        return switch_tab(event, self.deps)

    def dispatch(self, name: str, payload: dict, meta: dict | None = None) -> dict:
        """Publish one event, then apply whatever its handlers emitted."""
        event = make_event(name, payload, meta)
        results = self.bus.publish(event)
        applied = self.flush()
        if not results:
            if self.bus.has_subscribers(name):
                issue = _issue("EVENT_HANDLER_FAILED", f"Handler failed for event: {name}", "name")
            else:
                issue = _issue("EVENT_UNHANDLED", f"No handler for event: {name}", "name")
            return {
                "ok": False,
                "errors": [issue],
                "warnings": [],
                "group": None,
                "commands": [],
            }
        result = results[0]
        if applied["errors"]:
            result = {**result, "ok": False, "errors": result.get("errors", []) + applied["errors"]}
        return result

    def emit(self, command: dict) -> dict:
        self.outbox.enqueue(command)
        return self.flush()

    def flush(self) -> dict:
        """Apply pending commands in emission order; a failed command does not stop later ones."""
        errors: List[Issue] = []
        applied: List[str] = []
        for command in self.outbox.drain():
            try:
                self.store.apply_command(command)
            except Exception as exc:
                logger.warning("command_apply_failed command=%s command_id=%s error=%s", command["name"], command["command_id"], exc)
                errors.append(
                    _issue("COMMAND_APPLY_FAILED", str(exc), "command", {"name": command["name"], "command_id": command["command_id"]})
                )
                continue
            logger.debug("command_applied command=%s command_id=%s", command["name"], command["command_id"])
            applied.append(command["command_id"])
            self._remember(command)
        return {"ok": not errors, "errors": errors, "applied": applied}

    def history(self) -> List[dict]:
        return copy.deepcopy(self._history)

    def _remember(self, command: dict) -> None:
        self._history.append(copy.deepcopy(command))
        overflow = len(self._history) - self._history_limit
        if overflow > 0:
            del self._history[:overflow]

    def load_fields(self, definitions: List[Any]) -> List[str]:
        """Hydrate top-level field definitions, materializing any pre-populated groups."""
        taken = self.store.field_ids()
        minter = self._minter_factory(taken) if self._minter_factory else IdMinter(taken, prefix=self.id_prefix)
        records: Dict[str, Field] = {}
        top_level: List[str] = []
        for idx, definition in enumerate(definitions):
            record = definition if isinstance(definition, Field) else field_from_dict(definition, f"fields[{idx}]")
            record = copy.deepcopy(record)
            if not record.id:
                record.id = minter.mint()
            elif record.id in records:
                raise FieldModelError("Duplicate field id in definitions", f"fields[{idx}].id")
            elif self.store.has_field(record.id):
                raise FieldModelError("Field id already loaded", f"fields[{idx}].id")
            else:
                minter.reserve([record.id])
            if isinstance(record, ComplexField):
                for group_index, group in enumerate(record.value):
                    assign_identifiers(record, group, group_index, minter)
                    records.update(key_by_id(flatten_group(group)))
                record.value = [detach_group(group) for group in record.value]
            records[record.id] = record
            top_level.append(record.id)
        self.emit(make_command(ADD_FIELDS, {"fields": {field_id: item.to_dict() for field_id, item in records.items()}}))
        logger.info("fields_loaded top_level=%s total=%s", len(top_level), len(records))
        return top_level
