"""Ordered outbox of store-mutation commands emitted by the coordinators."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List

from fieldkit.canonical_json import CanonicalJsonTypeError, CanonicalJsonValueError, ensure_canonical


Command = Dict[str, Any]

ADD_FIELDS = "fields.add"
REMOVE_FIELDS = "fields.remove"
UPDATE_FIELD = "field.update"
RECEIVE_COMPLEX_GROUP = "complex.receive_group"
SWITCH_COMPLEX_TAB = "complex.switch_tab"

_REQUIRED_KEYS = {
    ADD_FIELDS: ("fields",),
    REMOVE_FIELDS: ("ids",),
    UPDATE_FIELD: ("field_id", "patch"),
    RECEIVE_COMPLEX_GROUP: ("field_id", "group"),
    SWITCH_COMPLEX_TAB: ("field_id", "group_id"),
}


@dataclass
class CommandValidationError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def validate_command(command: Any) -> None:
    if not isinstance(command, dict):
        raise CommandValidationError("COMMAND_INVALID", "command must be object")
    name = command.get("name")
    if name not in _REQUIRED_KEYS:
        raise CommandValidationError("COMMAND_NAME_INVALID", f"unknown command: {name!r}", "name")
    if not isinstance(command.get("command_id"), str):
        raise CommandValidationError("COMMAND_ID_INVALID", "command_id must be string", "command_id")
    payload = command.get("payload")
    if not isinstance(payload, dict):
        raise CommandValidationError("PAYLOAD_INVALID", "payload must be an object", "payload")
    for key in _REQUIRED_KEYS[name]:
        if key not in payload:
            raise CommandValidationError("PAYLOAD_INVALID", f"{key} required", f"payload.{key}")
    try:
        ensure_canonical(payload, "payload")
    except (CanonicalJsonTypeError, CanonicalJsonValueError) as exc:
        raise CommandValidationError("PAYLOAD_INVALID", str(exc), exc.path) from exc


def make_command(name: str, payload: dict) -> Command:
    command = {
        "name": name,
        "payload": copy.deepcopy(payload),
        "command_id": str(uuid.uuid4()),
    }
    validate_command(command)
    return command


class Outbox:
    def __init__(self) -> None:
        self._commands: List[Command] = []

    def enqueue(self, command: dict) -> None:
        validate_command(command)
        self._commands.append(copy.deepcopy(command))

    def pending(self) -> list[dict]:
        return list(self._commands)

    def ack(self, command_id: str) -> bool:
        for idx, command in enumerate(self._commands):
            if command.get("command_id") == command_id:
                del self._commands[idx]
                return True
        return False

    def drain(self) -> list[dict]:
        drained = self._commands
        self._commands = []
        return drained

    def clear(self) -> None:
        self._commands.clear()
