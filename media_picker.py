"""Media picker coordination: one setup per field, then a selection loop that writes the chosen attachment back."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

import anyio
from anyio.abc import ObjectReceiveStream, TaskGroup

from event_bus import OPEN_PICKER, SETUP_PICKER, validate_event
from field_model import Field
from field_store import FieldNotFound
from outbox import UPDATE_FIELD, make_command


logger = logging.getLogger("fieldkit.media")

ChannelFactory = Callable[[dict], Awaitable[ObjectReceiveStream]]
ThumbnailResolver = Callable[[dict], Any]


def attachment_thumbnail(attachment: dict) -> str | None:
    """Preview url for an attachment: image thumbnail size, then full url, else its icon."""
    if not isinstance(attachment, dict):
        return None
    if attachment.get("type") == "image":
        sizes = attachment.get("sizes") or {}
        thumbnail = sizes.get("thumbnail") if isinstance(sizes, dict) else None
        if isinstance(thumbnail, dict) and thumbnail.get("url"):
            return thumbnail["url"]
        return attachment.get("url") or None
    return attachment.get("icon") or None


def picker_options(field: Field) -> dict:
    attrs = field.attrs
    return {
        "title": attrs.get("window_label") or "",
        "library": {"type": attrs.get("type_filter") or ""},
        "button": {"text": attrs.get("window_button_label") or ""},
        "multiple": True,
    }


@dataclass
class PickerBinding:
    field_id: str
    picker: Any
    selections: ObjectReceiveStream
    listening: bool = False


class MediaPickerCoordinator:
    """Binds one picker instance per field and turns its selections into field updates.

    The selection loop for a field starts on the first open request and runs
    until the surrounding task group is cancelled.
    """

    def __init__(
        self,
        store,
        emit: Callable[[dict], Any],
        create_channel: ChannelFactory,
        task_group: TaskGroup,
        resolve_thumbnail: ThumbnailResolver = attachment_thumbnail,
    ) -> None:
        self.store = store
        self._emit = emit
        self._create_channel = create_channel
        self._task_group = task_group
        self._resolve_thumbnail = resolve_thumbnail
        self._bindings: Dict[str, PickerBinding] = {}

    def binding(self, field_id: str) -> PickerBinding | None:
        return self._bindings.get(field_id)

    async def handle(self, event: dict) -> None:
        validate_event(event)
        field_id = event["payload"]["field_id"]
        if event["name"] == SETUP_PICKER:
            await self.setup(field_id)
        elif event["name"] == OPEN_PICKER:
            await self.open(field_id)
        else:
            raise ValueError(f"Unsupported event: {event['name']}")

    async def setup(self, field_id: str) -> PickerBinding:
        field = self.store.get_field_by_id(field_id)
        selections = await self._create_channel(picker_options(field))
        first = await selections.receive()
        picker = first.get("browser") if isinstance(first, dict) else None
        if picker is None:
            raise RuntimeError(f"Picker channel for {field_id!r} did not announce a picker instance")
        binding = PickerBinding(field_id=field_id, picker=picker, selections=selections)
        self._bindings[field_id] = binding
        logger.info("picker_ready field_id=%s", field_id)
        return binding

    async def open(self, requested_field_id: str) -> None:
        for binding in list(self._bindings.values()):
            await self._open_binding(binding, requested_field_id)

    async def _open_binding(self, binding: PickerBinding, requested_field_id: str) -> None:
        if requested_field_id != binding.field_id:
            return
        await _maybe_await(binding.picker.open())
        if not binding.listening:
            binding.listening = True
            self._task_group.start_soon(self._selection_loop, binding)

    async def _selection_loop(self, binding: PickerBinding) -> None:
        async for message in binding.selections:
            selection = (message or {}).get("selection") or []
            if not selection:
                continue
            # Only the first attachment is used even though the picker allows several.
            attachment = selection[0]
            try:
                await self._apply_attachment(binding.field_id, attachment)
            except FieldNotFound:
                logger.warning("picker_field_missing field_id=%s", binding.field_id)
                self._bindings.pop(binding.field_id, None)
                return
            except Exception as exc:
                logger.warning("attachment_apply_failed field_id=%s error=%s", binding.field_id, exc)

    async def _apply_attachment(self, field_id: str, attachment: dict) -> None:
        thumbnail = await _maybe_await(self._resolve_thumbnail(attachment))
        field = self.store.get_field_by_id(field_id)
        value_type = field.attrs.get("value_type") or "id"
        patch = {
            "file_type": attachment.get("type"),
            "file_name": attachment.get("filename"),
            "thumb_url": thumbnail or field.attrs.get("default_thumb_url"),
            "value": attachment.get(value_type),
        }
        self._emit(make_command(UPDATE_FIELD, {"field_id": field_id, "patch": patch}))
        logger.info("attachment_selected field_id=%s file_name=%s", field_id, patch["file_name"])


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def memory_channel(buffer_size: float = 0):
    """Send/receive pair suitable for wiring a picker to the coordinator."""
    return anyio.create_memory_object_stream(buffer_size)
