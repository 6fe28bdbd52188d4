"""Actions exposed to the presentation layer.

Every action takes a :class:`~services.context.SessionContext` and returns a
plain dictionary with a ``success`` flag. Read actions never raise; write
actions report a displayable ``error`` plus a ``code``:

``NO_CREDENTIALS``
    The spreadsheet is not configured. The app is running local-only and
    callers may hide the message.
``NOT_FOUND``
    The visit id does not exist in the store.
``INVALID``
    The visit payload failed validation; ``errors`` holds per-field messages.
``ERROR``
    The store could not be reached or rejected the call.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .access import AccessScope
from .blobs import upload_photo
from .context import SessionContext
from .customer_stats import (
    SORT_NEWEST,
    aggregate_customer_stats,
    filter_customer_stats,
    newest_first,
    summarize_pharmacy,
)
from .directory import UserDirectory
from .overdue import classify_overdue
from .reconcile import load_reconciled
from .sheet_store import StoreError, StoreNotConfiguredError, VisitNotFoundError
from .visits import UPLOAD_FAILED_SENTINEL, Visit, VisitValidationError, visit_from_payload

LOGGER = logging.getLogger(__name__)

CODE_NO_CREDENTIALS = "NO_CREDENTIALS"
CODE_NOT_FOUND = "NOT_FOUND"
CODE_INVALID = "INVALID"
CODE_ERROR = "ERROR"
CODE_STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

RECENT_VISITS_LIMIT = 5


def _failure(error: str, code: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "error": error, "code": code, **extra}


def _scope_for(ctx: SessionContext, scope_area_code: Optional[str]) -> AccessScope:
    if scope_area_code is None:
        return ctx.scope
    return AccessScope.from_profile(scope_area_code)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def authenticate_user(directory: UserDirectory, pin: str) -> Dict[str, Any]:
    identity = directory.authenticate(pin)
    if identity is None:
        return {"success": False, "error": "Invalid PIN"}
    return {"success": True, "user": identity.to_dict()}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _load_stats_source(ctx: SessionContext) -> List[Visit]:
    """Visits feeding the customer rollups.

    A configured store is trusted on its own: the cache keeps synced visits
    too and has no per-record sync flag, so merging it here would double
    count. Local-only mode falls back to the cache.
    """
    try:
        return ctx.store.load()
    except StoreNotConfiguredError:
        return ctx.cache.read_all()


def get_customer_stats_action(
    ctx: SessionContext,
    scope_area_code: Optional[str] = None,
    user_filter: Optional[str] = None,
    *,
    search: str = "",
    area: str = "",
    rating: str = "All",
    order: str = SORT_NEWEST,
) -> Dict[str, Any]:
    try:
        visits = _load_stats_source(ctx)
    except StoreError as exc:
        LOGGER.error("Stats aggregation could not reach the store: %s", exc)
        return _failure("Failed to load stats", CODE_STORE_UNAVAILABLE, stats=[], users=[])

    try:
        result = aggregate_customer_stats(visits, _scope_for(ctx, scope_area_code), user_filter)
        stats = filter_customer_stats(result.stats, search=search, area=area, rating=rating, order=order)
    except Exception:  # pragma: no cover
        LOGGER.exception("Stats aggregation error")
        return {"success": True, "stats": [], "users": []}
    return {
        "success": True,
        "stats": [entry.to_dict() for entry in stats],
        "users": result.users,
    }


def get_overdue_action(ctx: SessionContext, scope_area_code: Optional[str] = None) -> Dict[str, Any]:
    try:
        visits = _load_stats_source(ctx)
    except StoreError as exc:
        LOGGER.error("Overdue report could not reach the store: %s", exc)
        return _failure("Failed to load overdue pharmacies", CODE_STORE_UNAVAILABLE)
    result = aggregate_customer_stats(visits, _scope_for(ctx, scope_area_code))
    report = classify_overdue(result.stats, ctx.now())
    return {"success": True, "overdue": report.to_dict()}


def get_visits_from_cloud(ctx: SessionContext) -> Dict[str, Any]:
    try:
        visits = ctx.store.load()
    except StoreNotConfiguredError:
        return {"success": True, "data": []}
    except StoreError as exc:
        LOGGER.error("Error fetching from sheets: %s", exc)
        return {"success": False, "data": []}
    return {"success": True, "data": [visit.to_dict() for visit in visits]}


def _reconciled(ctx: SessionContext) -> List[Visit]:
    return ctx.scope.filter(load_reconciled(ctx.store.fetch_all, ctx.cache.read_all))


def get_visit_history(ctx: SessionContext) -> Dict[str, Any]:
    return {"success": True, "data": [visit.to_dict() for visit in _reconciled(ctx)]}


def get_recent_visits(ctx: SessionContext, limit: int = RECENT_VISITS_LIMIT) -> Dict[str, Any]:
    visits = ctx.cache.read_all()[: max(0, limit)]
    return {"success": True, "data": [visit.to_dict() for visit in visits]}


def get_pharmacy_detail(ctx: SessionContext, pharmacy_name: str) -> Dict[str, Any]:
    visits = newest_first([visit for visit in _reconciled(ctx) if visit.matches_pharmacy(pharmacy_name)])
    if not visits:
        return _failure("No visits found", CODE_NOT_FOUND)
    summary = summarize_pharmacy(visits[0].pharmacy_key, visits)
    summary.area_code = visits[0].area_code
    return {
        "success": True,
        "pharmacy": summary.to_dict(),
        "visits": [visit.to_dict() for visit in visits],
    }


def get_visit_by_id_action(ctx: SessionContext, visit_id: str) -> Dict[str, Any]:
    try:
        visit = ctx.store.get_visit(visit_id)
    except StoreNotConfiguredError:
        visit = ctx.cache.get(visit_id)
    except StoreError as exc:
        LOGGER.error("Get visit error: %s", exc)
        return _failure("Failed to fetch visit", CODE_ERROR)
    if visit is None:
        return _failure("Visit not found", CODE_NOT_FOUND)
    return {"success": True, "visit": visit.to_dict()}


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _run_store_write(
    operation: Callable[[], None],
    apply_locally: Callable[[], Any],
    failure_message: str,
) -> Dict[str, Any]:
    """Run a store write; mirror it into the cache on success or local-only mode."""
    try:
        operation()
    except StoreNotConfiguredError:
        apply_locally()
        return _failure("Cloud not configured", CODE_NO_CREDENTIALS)
    except VisitNotFoundError:
        return _failure("Visit ID not found", CODE_NOT_FOUND)
    except StoreError as exc:
        LOGGER.error("%s: %s", failure_message, exc)
        return _failure(failure_message, CODE_ERROR)
    apply_locally()
    return {"success": True}


def _validate(ctx: SessionContext, payload: Dict[str, Any]) -> Visit:
    return visit_from_payload(payload, zone=ctx.settings.tzinfo, clock=ctx.clock)


def upload_photo_action(ctx: SessionContext, data: str, filename: str) -> Dict[str, Any]:
    url = upload_photo(ctx.blobs, data, filename, ctx.settings.blob_limit_bytes)
    if url is None:
        return {"success": False, "error": "Upload failed"}
    return {"success": True, "url": url}


def submit_visit(ctx: SessionContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Record a new visit: cache first, then photo upload, then the store."""
    payload = dict(payload or {})
    if ctx.identity is not None:
        payload.setdefault("user", ctx.identity.name)
    try:
        visit = _validate(ctx, payload)
    except VisitValidationError as exc:
        return _failure("Invalid visit", CODE_INVALID, errors=exc.errors)

    ctx.cache.write_one(visit)

    cloud_visit = visit
    if visit.photo_url and visit.photo_url.startswith("data:"):
        filename = f"visit-{visit.id}.jpg"
        result = upload_photo_action(ctx, visit.photo_url, filename)
        photo_url = result["url"] if result["success"] else UPLOAD_FAILED_SENTINEL
        if not result["success"]:
            LOGGER.warning("Photo upload failed for visit %s; sending sentinel to the sheet", visit.id)
        cloud_visit = replace(visit, photo_url=photo_url)

    try:
        ctx.store.append_one(cloud_visit)
    except StoreNotConfiguredError:
        return _failure("Cloud not configured", CODE_NO_CREDENTIALS, visit=visit.to_dict())
    except StoreError as exc:
        LOGGER.error("Cloud save error: %s", exc)
        return _failure("Failed to save to cloud", CODE_ERROR, visit=visit.to_dict())
    return {"success": True, "message": "Saved to Google Sheet", "visit": cloud_visit.to_dict()}


def update_visit_action(ctx: SessionContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    if not (payload or {}).get("id"):
        return _failure("Visit id is required", CODE_INVALID, errors={"id": "Field is required"})
    try:
        visit = _validate(ctx, payload)
    except VisitValidationError as exc:
        return _failure("Invalid visit", CODE_INVALID, errors=exc.errors)
    return _run_store_write(
        lambda: ctx.store.update_one(visit),
        lambda: ctx.cache.replace_one(visit),
        "Update failed",
    )


def delete_visit_action(ctx: SessionContext, visit_id: str) -> Dict[str, Any]:
    return _run_store_write(
        lambda: ctx.store.delete_one(visit_id),
        lambda: ctx.cache.delete_one(visit_id),
        "Delete failed",
    )


def update_area_code_action(ctx: SessionContext, visit_id: str, area_code: str) -> Dict[str, Any]:
    area_code = (area_code or "").strip()

    def _patch_cache() -> None:
        cached = ctx.cache.get(visit_id)
        if cached is not None:
            ctx.cache.replace_one(cached.with_area_code(area_code))

    return _run_store_write(
        lambda: ctx.store.patch_area_code(visit_id, area_code),
        _patch_cache,
        "Failed to update sheet",
    )
