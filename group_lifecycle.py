"""Complex group lifecycle: add, clone and remove groups as ordered store commands.

Every operation re-reads the owner field, the flat store and the tab state at
invocation time; lookups finish before the first command is enqueued so a
failed lookup leaves the outbox untouched.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Sequence

from event_bus import ADD_GROUP, CLONE_GROUP
from field_model import ComplexField, Field, Group
from field_store import FieldNotFound
from fieldkit.identifiers import IdMinter
from group_tree import (
    assign_identifiers,
    collect_field_ids,
    detach_group,
    flatten_group,
    key_by_id,
    restore_field,
    unresolved_nodes,
)
from outbox import (
    ADD_FIELDS,
    RECEIVE_COMPLEX_GROUP,
    REMOVE_FIELDS,
    SWITCH_COMPLEX_TAB,
    UPDATE_FIELD,
    make_command,
)


Issue = Dict[str, Any]

logger = logging.getLogger("fieldkit.lifecycle")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _result(ok: bool, errors: List[Issue], warnings: List[Issue], group: Group | None = None, commands: List[str] | None = None) -> dict:
    return {
        "ok": ok,
        "errors": errors,
        "warnings": warnings,
        "group": group.to_dict() if group is not None else None,
        "commands": commands or [],
    }


def _load_owner(store, field_id: Any, errors: List[Issue]) -> ComplexField | None:
    if not isinstance(field_id, str) or not field_id:
        errors.append(_issue("FIELD_ID_INVALID", "field_id must be non-empty string", "payload.field_id"))
        return None
    try:
        owner = store.get_field_by_id(field_id)
    except FieldNotFound:
        errors.append(_issue("FIELD_NOT_FOUND", "Field not found", "payload.field_id", {"field_id": field_id}))
        return None
    if not isinstance(owner, ComplexField):
        errors.append(_issue("FIELD_NOT_COMPLEX", "Field is not a complex field", "payload.field_id", {"field_id": field_id}))
        return None
    return owner


def _taken_ids(all_fields: Dict[str, Field]) -> List[str]:
    taken = list(all_fields.keys())
    for record in all_fields.values():
        if isinstance(record, ComplexField):
            taken.extend(group.id for group in record.value if group.id)
    return taken


def _minter(all_fields: Dict[str, Field], deps: dict) -> IdMinter:
    factory = deps.get("minter_factory")
    taken = _taken_ids(all_fields)
    if factory is not None:
        return factory(taken)
    return IdMinter(taken, prefix=deps.get("id_prefix") or "field-")


def _enqueue(outbox, commands: Sequence[dict]) -> List[str]:
    for command in commands:
        outbox.enqueue(command)
    return [command["command_id"] for command in commands]


def add_or_clone_group(event: dict, deps: dict) -> dict:
    """Append a new group to a complex field, built from a template or a live group."""
    errors: List[Issue] = []
    warnings: List[Issue] = []

    store = deps.get("store")
    outbox = deps.get("outbox")
    if store is None or outbox is None:
        errors.append(_issue("LIFECYCLE_DEPS_MISSING", "store and outbox deps required", "$"))
        return _result(False, errors, warnings)

    name = event.get("name")
    payload = event.get("payload") or {}
    is_add = name == ADD_GROUP
    is_clone = name == CLONE_GROUP
    if not is_add and not is_clone:
        errors.append(_issue("EVENT_UNSUPPORTED", f"Unsupported event: {name}", "name"))
        return _result(False, errors, warnings)

    field_id = payload.get("field_id")
    owner = _load_owner(store, field_id, errors)
    if owner is None:
        return _result(False, errors, warnings)
    is_tabbed = store.is_field_tabbed(field_id)

    if is_add:
        blueprint = owner.find_template(payload.get("group_name") or "")
        if blueprint is None:
            errors.append(
                _issue("TEMPLATE_NOT_FOUND", "Group template not found", "payload.group_name", {"group_name": payload.get("group_name")})
            )
            return _result(False, errors, warnings)
    else:
        blueprint = owner.find_group(payload.get("group_id") or "")
        if blueprint is None:
            errors.append(_issue("GROUP_NOT_FOUND", "Group not found", "payload.group_id", {"group_id": payload.get("group_id")}))
            return _result(False, errors, warnings)

    group = copy.deepcopy(blueprint)
    all_fields = store.get_fields()

    if is_clone:
        group.fields = [restore_field(node, all_fields) for node in group.fields]
        for ref in unresolved_nodes(group.fields):
            warnings.append(
                _issue("REFERENCE_UNRESOLVED", "Cloned field reference could not be resolved", "group.fields", {"field_id": ref.id})
            )

    assign_identifiers(owner, group, len(owner.value), _minter(all_fields, deps))
    records = key_by_id(flatten_group(group))
    stored_group = detach_group(group)

    commands = [
        make_command(ADD_FIELDS, {"fields": {record_id: record.to_dict() for record_id, record in records.items()}}),
        make_command(RECEIVE_COMPLEX_GROUP, {"field_id": field_id, "group": stored_group.to_dict()}),
    ]
    if is_tabbed:
        commands.append(make_command(SWITCH_COMPLEX_TAB, {"field_id": field_id, "group_id": stored_group.id}))
    command_ids = _enqueue(outbox, commands)

    logger.info(
        "group_%s field_id=%s group_id=%s fields=%s tabbed=%s",
        "added" if is_add else "cloned",
        field_id,
        stored_group.id,
        len(records),
        is_tabbed,
    )
    return _result(True, errors, warnings, stored_group, command_ids)


def next_active_tab(groups: Sequence[Group], group_id: str) -> str | None:
    """Tab to activate once group_id is gone: previous group, else the next one, else none."""
    if len(groups) <= 1:
        return None
    index = next((idx for idx, group in enumerate(groups) if group.id == group_id), -1)
    if index > 0:
        return groups[index - 1].id
    return groups[1].id


def remove_group(event: dict, deps: dict) -> dict:
    """Detach a group from its complex field and delete its whole field subtree."""
    errors: List[Issue] = []
    warnings: List[Issue] = []

    store = deps.get("store")
    outbox = deps.get("outbox")
    if store is None or outbox is None:
        errors.append(_issue("LIFECYCLE_DEPS_MISSING", "store and outbox deps required", "$"))
        return _result(False, errors, warnings)

    payload = event.get("payload") or {}
    field_id = payload.get("field_id")
    group_id = payload.get("group_id")

    all_fields = store.get_fields()
    owner = _load_owner(store, field_id, errors)
    if owner is None:
        return _result(False, errors, warnings)
    group = owner.find_group(group_id or "")
    if group is None:
        errors.append(_issue("GROUP_NOT_FOUND", "Group not found", "payload.group_id", {"group_id": group_id}))
        return _result(False, errors, warnings)
    doomed = collect_field_ids(group.fields, all_fields)
    is_tabbed = store.is_field_tabbed(field_id)

    commands = []
    if is_tabbed:
        commands.append(
            make_command(SWITCH_COMPLEX_TAB, {"field_id": field_id, "group_id": next_active_tab(owner.value, group_id)})
        )
    remaining = [item.to_dict() for item in owner.value if item.id != group_id]
    commands.append(make_command(UPDATE_FIELD, {"field_id": field_id, "patch": {"value": remaining}}))
    commands.append(make_command(REMOVE_FIELDS, {"ids": doomed}))
    command_ids = _enqueue(outbox, commands)

    logger.info("group_removed field_id=%s group_id=%s fields=%s tabbed=%s", field_id, group_id, len(doomed), is_tabbed)
    return _result(True, errors, warnings, group, command_ids)


def switch_tab(event: dict, deps: dict) -> dict:
    """Make an existing group the active tab of its complex field."""
    errors: List[Issue] = []
    warnings: List[Issue] = []

    store = deps.get("store")
    outbox = deps.get("outbox")
    if store is None or outbox is None:
        errors.append(_issue("LIFECYCLE_DEPS_MISSING", "store and outbox deps required", "$"))
        return _result(False, errors, warnings)

    payload = event.get("payload") or {}
    field_id = payload.get("field_id")
    owner = _load_owner(store, field_id, errors)
    if owner is None:
        return _result(False, errors, warnings)
    group = owner.find_group(payload.get("group_id") or "")
    if group is None:
        errors.append(_issue("GROUP_NOT_FOUND", "Group not found", "payload.group_id", {"group_id": payload.get("group_id")}))
        return _result(False, errors, warnings)
    if not owner.is_tabbed:
        warnings.append(_issue("FIELD_NOT_TABBED", "Field is not displayed as tabs", "payload.field_id"))

    command_ids = _enqueue(outbox, [make_command(SWITCH_COMPLEX_TAB, {"field_id": field_id, "group_id": group.id})])
    return _result(True, errors, warnings, group, command_ids)
