"""Triggering events for complex groups and media pickers, and the bus that routes them."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from fieldkit.canonical_json import CanonicalJsonTypeError, CanonicalJsonValueError, ensure_canonical


Event = Dict[str, Any]
Handler = Callable[[Event], Any]

ADD_GROUP = "complex.add_group"
CLONE_GROUP = "complex.clone_group"
REMOVE_GROUP = "complex.remove_group"
SWITCH_TAB = "complex.switch_tab"
SETUP_PICKER = "media.setup_picker"
OPEN_PICKER = "media.open_picker"

SCHEMA_VERSION = "1"

# Every payload names its field; these events also name a group or template.
_GROUP_KEYS = {
    ADD_GROUP: "group_name",
    CLONE_GROUP: "group_id",
    REMOVE_GROUP: "group_id",
    SWITCH_TAB: "group_id",
}

logger = logging.getLogger("fieldkit.events")


@dataclass
class EventError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class EventValidationError(EventError):
    code: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _fail(code: str, message: str, path: str | None = None) -> None:
    raise EventValidationError(code=code, message=message, path=path)


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_payload(name: str, payload: Any) -> None:
    if not isinstance(payload, dict):
        _fail("PAYLOAD_INVALID", "payload must be an object", "payload")
    try:
        ensure_canonical(payload, "payload")
    except (CanonicalJsonTypeError, CanonicalJsonValueError) as exc:
        _fail("PAYLOAD_INVALID", str(exc), exc.path)

    field_id = payload.get("field_id")
    if not isinstance(field_id, str) or not field_id:
        _fail("PAYLOAD_FIELD_ID_INVALID", "field_id must be non-empty string", "payload.field_id")
    group_key = _GROUP_KEYS.get(name)
    if group_key and not isinstance(payload.get(group_key), str):
        _fail("PAYLOAD_GROUP_INVALID", f"{group_key} must be string", f"payload.{group_key}")


def _check_meta(meta: Any) -> None:
    if not isinstance(meta, dict):
        _fail("META_INVALID", "meta must be object", "meta")
    if not isinstance(meta.get("event_id"), str):
        _fail("META_EVENT_ID_INVALID", "event_id must be string", "meta.event_id")

    occurred_at = meta.get("occurred_at")
    if not isinstance(occurred_at, str) or not occurred_at.endswith("Z"):
        _fail("META_OCCURRED_AT_INVALID", "occurred_at must be a UTC timestamp ending with 'Z'", "meta.occurred_at")
    try:
        datetime.fromisoformat(occurred_at[:-1] + "+00:00")
    except ValueError:
        _fail("META_OCCURRED_AT_INVALID", "occurred_at must be ISO8601", "meta.occurred_at")

    actor = meta.get("actor")
    if actor is not None:
        roles = actor.get("roles") if isinstance(actor, dict) else None
        if not isinstance(actor, dict) or not isinstance(actor.get("id"), str):
            _fail("META_ACTOR_INVALID", "actor must be object with string id", "meta.actor")
        if not isinstance(roles, list) or not all(isinstance(role, str) for role in roles):
            _fail("META_ACTOR_INVALID", "actor.roles must be list of strings", "meta.actor.roles")

    trace_id = meta.get("trace_id")
    if trace_id is not None and not isinstance(trace_id, str):
        _fail("META_TRACE_ID_INVALID", "trace_id must be string or null", "meta.trace_id")
    if meta.get("schema_version") != SCHEMA_VERSION:
        _fail("META_SCHEMA_VERSION_INVALID", f"schema_version must be {SCHEMA_VERSION!r}", "meta.schema_version")


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        _fail("EVENT_INVALID", "event must be object")
    name = event.get("name")
    if not isinstance(name, str) or not name:
        _fail("EVENT_NAME_INVALID", "name must be non-empty string", "name")
    _check_payload(name, event.get("payload"))
    _check_meta(event.get("meta"))


def make_event(name: str, payload: dict, meta: dict | None = None) -> Event:
    if meta is not None and not isinstance(meta, dict):
        _fail("META_INVALID", "meta must be object", "meta")
    envelope_meta = {
        "event_id": str(uuid.uuid4()),
        "occurred_at": _utc_stamp(),
        "schema_version": SCHEMA_VERSION,
        **copy.deepcopy(meta or {}),
    }
    event = {"name": name, "payload": copy.deepcopy(payload), "meta": envelope_meta}
    validate_event(event)
    return event


class EventBus:
    """Synchronous fan-out of events to handlers registered by name."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._handlers.get(name) or []
        if handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            self._handlers.pop(name, None)
        return True

    def has_subscribers(self, name: str) -> bool:
        return bool(self._handlers.get(name))

    def publish(self, event: dict) -> List[Any]:
        """Run every handler for the event in subscription order.

        A failing handler is logged and skipped; the remaining handlers still run.
        """
        validate_event(event)
        results: List[Any] = []
        for handler in list(self._handlers.get(event["name"], [])):
            try:
                results.append(handler(event))
            except Exception as exc:
                logger.warning(
                    "event_handler_failed event=%s event_id=%s error=%s",
                    event["name"],
                    event["meta"]["event_id"],
                    exc,
                )
        return results
