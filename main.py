from __future__ import annotations

import base64
import logging
import os
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from starlette.concurrency import run_in_threadpool

from payables.errors import PayableError
from payables.firestore_store import FirestoreAuditTrail, FirestorePayableRepository, get_client_info
from payables.journal_client import HttpJournalBridge
from payables.lifecycle import PayableLifecycleManager
from payables.money import coerce_datetime
from payables.reporting import AgingReportBuilder
from payables.sequence import SequenceAllocator
from payables.settings import PayableSettings


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ap-service")

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")

app = FastAPI()


@app.get("/version")
async def version() -> Dict[str, Any]:
    return {
        "status": "ok",
        "revision": os.getenv("K_REVISION"),
        "service": os.getenv("K_SERVICE"),
        "commit": os.getenv("COMMIT_SHA") or os.getenv("REVISION_ID"),
        "app_version": APP_VERSION,
    }


BASIC_USER = os.getenv("BASIC_USER")
BASIC_PASS = os.getenv("BASIC_PASS")

ERROR_STATUS_CODES = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_OPERATION": status.HTTP_400_BAD_REQUEST,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "DEPENDENCY_FAILURE": status.HTTP_502_BAD_GATEWAY,
    "UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Basic"},
    )


def _check_basic_auth(request: Request) -> str:
    if BASIC_USER is None or BASIC_PASS is None:
        logger.error("BASIC_USER/BASIC_PASS not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Auth not configured")

    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.lower().startswith("basic "):
        raise _unauthorized()

    token = auth_header.split(" ", 1)[1].strip()
    try:
        decoded = base64.b64decode(token).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        raise _unauthorized()

    if ":" not in decoded:
        raise _unauthorized()

    username, password = decoded.split(":", 1)
    if username != BASIC_USER or password != BASIC_PASS:
        raise _unauthorized()
    return username


def _actor_id(request: Request, username: str) -> str:
    actor = (request.headers.get("x-actor-id") or "").strip()
    return actor or username


async def _json_object(request: Request, required: bool = True) -> Dict[str, Any]:
    body = await request.body()
    if not body and not required:
        return {}
    try:
        payload = await request.json()
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON payload must be an object")
    return payload


def _error_response(exc: PayableError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.warning("Request failed: %s", exc.message, extra={"kind": exc.kind})
    return HTTPException(status_code=status_code, detail={"status": "error", **exc.to_dict()})


async def _run(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        return await run_in_threadpool(func, *args, **kwargs)
    except PayableError as exc:
        raise _error_response(exc) from exc


@lru_cache(maxsize=1)
def get_settings() -> PayableSettings:
    return PayableSettings.from_env()


@lru_cache(maxsize=1)
def get_repository() -> FirestorePayableRepository:
    return FirestorePayableRepository(get_settings())


@lru_cache(maxsize=1)
def get_journal() -> HttpJournalBridge:
    return HttpJournalBridge()


@lru_cache(maxsize=1)
def get_manager() -> PayableLifecycleManager:
    settings = get_settings()
    repository = get_repository()
    journal = get_journal()
    if not journal.configured:
        logger.warning("JOURNAL_API_BASE not set; payment journal entries are disabled")
    return PayableLifecycleManager(
        repository,
        allocator=SequenceAllocator(repository, settings),
        journal=journal if journal.configured else None,
        audit=FirestoreAuditTrail(settings, client=repository.client),
        settings=settings,
    )


@lru_cache(maxsize=1)
def get_report_builder() -> AgingReportBuilder:
    return AgingReportBuilder(get_repository(), get_settings())


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json")


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/journal/health")
async def journal_health(request: Request) -> Dict[str, Any]:
    _check_basic_auth(request)
    if not get_settings().journal_enabled:
        return {"status": "disabled"}
    return await run_in_threadpool(get_journal().check_health)


@app.get("/firestore-info")
async def firestore_info(request: Request) -> Dict[str, Any]:
    _check_basic_auth(request)
    info = await run_in_threadpool(get_client_info, get_settings())
    return {"status": "ok", "info": info}


@app.post("/payables", status_code=status.HTTP_201_CREATED)
async def create_payable(
    request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    payload = await _json_object(request)
    payable = await _run(manager.create, payload, _actor_id(request, username))
    return {"status": "ok", "payable": _dump(payable)}


@app.get("/payables")
async def list_payables(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor_id: Optional[str] = None,
    manager: PayableLifecycleManager = Depends(get_manager),
) -> Dict[str, Any]:
    _check_basic_auth(request)
    if status_filter:
        records = await _run(manager.list_by_status, status_filter)
    elif vendor_id:
        records = await _run(manager.list_by_vendor, vendor_id)
    else:
        records = await _run(manager.list_all)
    return {"status": "ok", "count": len(records), "records": [_dump(r) for r in records]}


@app.get("/payables/{ap_id}")
async def get_payable(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    _check_basic_auth(request)
    payable = await _run(manager.get, ap_id)
    return {"status": "ok", "payable": _dump(payable)}


@app.post("/payables/{ap_id}/approve")
async def approve_payable(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    payload = await _json_object(request, required=False)
    notes = payload.get("notes")
    payable = await _run(manager.approve, ap_id, _actor_id(request, username), notes)
    logger.info("Approved via API", extra={"ap_id": ap_id})
    return {"status": "ok", "payable": _dump(payable)}


@app.post("/payables/{ap_id}/payments")
async def record_payment(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    payload = await _json_object(request)
    idempotency_key = request.headers.get("idempotency-key")
    if idempotency_key and not payload.get("idempotency_key"):
        payload["idempotency_key"] = idempotency_key.strip()
    payable = await _run(manager.record_payment, ap_id, payload, _actor_id(request, username))
    return {"status": "ok", "payable": _dump(payable)}


@app.post("/payables/{ap_id}/cancel")
async def cancel_payable(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    payload = await _json_object(request, required=False)
    payable = await _run(manager.cancel, ap_id, _actor_id(request, username), payload.get("reason"))
    return {"status": "ok", "payable": _dump(payable)}


@app.post("/payables/{ap_id}/void")
async def void_payable(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    payload = await _json_object(request, required=False)
    payable = await _run(manager.void, ap_id, _actor_id(request, username), payload.get("reason"))
    return {"status": "ok", "payable": _dump(payable)}


@app.get("/payables/{ap_id}/audit")
async def payable_audit(
    ap_id: str, request: Request, manager: PayableLifecycleManager = Depends(get_manager)
) -> Dict[str, Any]:
    _check_basic_auth(request)
    entries = await _run(manager.audit_trail, ap_id)
    return {"status": "ok", "entries": [_dump(e) for e in entries]}


@app.get("/reports/aging")
async def aging_report(
    request: Request,
    as_of: Optional[str] = None,
    builder: AgingReportBuilder = Depends(get_report_builder),
) -> Dict[str, Any]:
    username = _check_basic_auth(request)
    try:
        report_date = coerce_datetime(as_of)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid as_of") from exc

    report = await _run(builder.generate, report_date, _actor_id(request, username))
    return {"status": "ok", "report": _dump(report)}
