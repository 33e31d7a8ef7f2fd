"""FastAPI app exposing a complex-field editing session."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

from event_bus import ADD_GROUP, CLONE_GROUP, REMOVE_GROUP, SWITCH_TAB, EventValidationError
from field_model import FieldModelError
from field_store import FieldNotFound
from form_runtime import FormRuntime


LOG_LEVEL = os.getenv("FIELDKIT_LOG_LEVEL", "INFO").strip().upper() or "INFO"
ID_PREFIX = os.getenv("FIELDKIT_ID_PREFIX", "field-").strip() or "field-"
DEFINITIONS_PATH = os.getenv("FIELDKIT_DEFINITIONS", "").strip()

app = FastAPI(title="Field Kit")
logger = logging.getLogger("fieldkit.http")
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))

runtime = FormRuntime(id_prefix=ID_PREFIX)

_NOT_FOUND_CODES = {"FIELD_NOT_FOUND", "GROUP_NOT_FOUND", "TEMPLATE_NOT_FOUND"}


def _load_definitions_file(path: str) -> None:
    if not path:
        return
    try:
        definitions = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("definitions_load_failed path=%s error=%s", path, exc)
        return
    if not isinstance(definitions, list):
        logger.warning("definitions_load_failed path=%s error=%s", path, "expected a list of fields")
        return
    runtime.load_fields(definitions)


_load_definitions_file(DEFINITIONS_PATH)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _lifecycle_response(result: dict) -> JSONResponse:
    if result.get("ok"):
        return _ok_response({"group": result.get("group"), "commands": result.get("commands", [])}, result.get("warnings"))
    errors = result.get("errors") or []
    status = 404 if any(err.get("code") in _NOT_FOUND_CODES for err in errors) else 400
    body = {"ok": False, "errors": errors, "warnings": result.get("warnings") or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except Exception:
        return {}
    return body if isinstance(body, dict) else {}


def _dispatch(name: str, payload: dict) -> JSONResponse:
    try:
        result = runtime.dispatch(name, payload)
    except EventValidationError as exc:
        return _error_response(exc.code, exc.message, exc.path)
    return _lifecycle_response(result)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.warning("unhandled_error method=%s path=%s error=%s", request.method, request.url.path, exc)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/fields")
async def list_fields() -> JSONResponse:
    fields = {field_id: record.to_dict() for field_id, record in runtime.store.get_fields().items()}
    return _ok_response({"fields": fields})


@app.post("/fields")
async def load_fields(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    definitions = body.get("fields")
    if not isinstance(definitions, list):
        return _error_response("FIELDS_INVALID", "fields must be a list", "fields")
    try:
        field_ids = runtime.load_fields(definitions)
    except FieldModelError as exc:
        return _error_response("FIELD_DEFINITION_INVALID", exc.message, exc.path)
    return _ok_response({"field_ids": field_ids}, status=201)


@app.get("/fields/{field_id}")
async def get_field(field_id: str) -> JSONResponse:
    try:
        record = runtime.store.get_field_by_id(field_id)
    except FieldNotFound:
        return _error_response("FIELD_NOT_FOUND", "Field not found", "field_id", {"field_id": field_id}, status=404)
    payload: dict[str, Any] = {"field": record.to_dict()}
    if record.is_complex:
        payload["active_tab"] = runtime.store.get_active_tab(field_id)
    return _ok_response(payload)


@app.post("/fields/{field_id}/groups")
async def add_group(field_id: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    group_name = body.get("group_name")
    if not isinstance(group_name, str) or not group_name:
        return _error_response("GROUP_NAME_INVALID", "group_name must be non-empty string", "group_name")
    return _dispatch(ADD_GROUP, {"field_id": field_id, "group_name": group_name})


@app.post("/fields/{field_id}/groups/{group_id}/clone")
async def clone_group(field_id: str, group_id: str) -> JSONResponse:
    return _dispatch(CLONE_GROUP, {"field_id": field_id, "group_id": group_id})


@app.delete("/fields/{field_id}/groups/{group_id}")
async def delete_group(field_id: str, group_id: str) -> JSONResponse:
    return _dispatch(REMOVE_GROUP, {"field_id": field_id, "group_id": group_id})


@app.put("/fields/{field_id}/tab")
async def set_tab(field_id: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    group_id = body.get("group_id")
    if not isinstance(group_id, str) or not group_id:
        return _error_response("GROUP_ID_INVALID", "group_id must be non-empty string", "group_id")
    return _dispatch(SWITCH_TAB, {"field_id": field_id, "group_id": group_id})


@app.get("/commands")
async def list_commands() -> JSONResponse:
    return _ok_response({"commands": runtime.history()})
