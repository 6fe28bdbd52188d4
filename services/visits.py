"""Visit records: value type, payload validation and timestamp normalisation."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo as TzInfo
from typing import Any, Callable, Dict, List, Optional

import pytz
from dateutil.parser import parse as dateutil_parse

LOGGER = logging.getLogger(__name__)

LEAD_RATINGS = ("Low", "Medium", "High")
COLD_CALL_ACTION = "Cold Call"
UPLOAD_FAILED_SENTINEL = "Image Upload Failed"

QUICK_ACTIONS = (
    "Stock Check",
    "Product Education",
    "Merchandising",
    "Order Taken",
    "Complaint Handling",
    "Relationship Building",
    "Phone Call",
    COLD_CALL_ACTION,
)

_DIGIT_GROUPS = re.compile(r"\d+")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
# dateutil fills absent date parts from ``default``; parsing against two
# defaults that differ in every date part exposes any filled-in component.
_FILL_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VisitValidationError(Exception):
    """Raised when a visit payload cannot be turned into a Visit."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("Visit validation failed")
        self.errors = errors


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def format_instant(value: datetime) -> str:
    """Render an aware datetime as a UTC ISO-8601 instant with millisecond precision."""
    as_utc = value.astimezone(timezone.utc)
    return as_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _localize(naive: datetime, zone: TzInfo) -> datetime:
    if hasattr(zone, "localize"):
        return zone.localize(naive)
    return naive.replace(tzinfo=zone)


def _parse_instant(text: str, zone: TzInfo) -> Optional[str]:
    """Full-date parse; cells missing a year, month or day are rejected."""
    try:
        parsed = dateutil_parse(text, default=_FILL_DEFAULTS[0])
        if parsed.date() != dateutil_parse(text, default=_FILL_DEFAULTS[1]).date():
            return None
        if parsed.tzinfo is None:
            parsed = _localize(parsed, zone)
        return format_instant(parsed)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_day_first(text: str, zone: TzInfo) -> Optional[str]:
    groups = _DIGIT_GROUPS.findall(text)
    if len(groups) != 3:
        return None
    day, month, year = (int(group) for group in groups)
    if year < 100:
        year += 2000
    try:
        return format_instant(_localize(datetime(year, month, day), zone))
    except (ValueError, OverflowError):
        return None


def normalize_timestamp(
    raw: Any,
    *,
    zone: Optional[TzInfo] = None,
    clock: Optional[Clock] = None,
) -> str:
    """Coerce a spreadsheet timestamp cell into an ISO-8601 instant.

    Values are tried as a regular date/time first, then as three numeric
    groups read day, month, year (two-digit years land in the 2000s). When
    neither works the current instant from ``clock`` is used and a warning
    is logged. Never raises.
    """

    zone = zone or pytz.UTC
    text = "" if raw is None else str(raw).strip()
    if text:
        normalised = _parse_instant(text, zone) or _parse_day_first(text, zone)
        if normalised is not None:
            return normalised
    LOGGER.warning('Invalid date format encountered: "%s". Using current date.', text)
    return format_instant((clock or utc_now)())


def parse_instant(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = dateutil_parse(str(value))
    except (TypeError, ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Visit value
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Visit:
    id: str
    pharmacy_name: str
    timestamp: str
    customer_contact: Optional[str] = None
    actions: List[str] = field(default_factory=list)
    has_order: bool = False
    order_details: Optional[str] = None
    photo_url: Optional[str] = None
    notes: str = ""
    lead_rating: Optional[str] = None
    area_code: Optional[str] = None
    user: Optional[str] = None
    best_days: List[str] = field(default_factory=list)

    @property
    def visited_at(self) -> datetime:
        return parse_instant(self.timestamp) or _EPOCH

    @property
    def pharmacy_key(self) -> str:
        """Grouping key: trimmed, case preserved."""
        return (self.pharmacy_name or "").strip()

    def matches_pharmacy(self, name: str) -> bool:
        return self.pharmacy_key.lower() == (name or "").strip().lower()

    def with_area_code(self, area_code: str) -> "Visit":
        return replace(self, area_code=area_code or None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pharmacyName": self.pharmacy_name,
            "timestamp": self.timestamp,
            "customerContact": self.customer_contact,
            "actions": list(self.actions),
            "hasOrder": self.has_order,
            "orderDetails": self.order_details,
            "photoUrl": self.photo_url,
            "notes": self.notes,
            "leadRating": self.lead_rating,
            "areaCode": self.area_code,
            "user": self.user,
            "bestDays": list(self.best_days),
        }


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _coerce_list(value: Any) -> List[str]:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(entry) for entry in value if entry not in (None, "")]
    raise ValueError("Expected a list of labels")


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "y"}
    return bool(value)


def match_lead_rating(value: Any) -> Optional[str]:
    """Return the canonical rating for ``value`` ignoring case, else ``None``."""
    text = "" if value is None else str(value).strip().lower()
    return next((rating for rating in LEAD_RATINGS if rating.lower() == text), None)


def visit_from_payload(
    payload: Dict[str, Any],
    *,
    zone: Optional[TzInfo] = None,
    clock: Optional[Clock] = None,
) -> Visit:
    """Validate a camelCase visit payload (API body or cache entry)."""

    if not isinstance(payload, dict):
        raise VisitValidationError({"_": "Visit payload must be an object"})

    errors: Dict[str, str] = {}

    pharmacy_name = str(payload.get("pharmacyName") or "").strip()
    if not pharmacy_name:
        errors["pharmacyName"] = "Field is required"

    actions: List[str] = []
    best_days: List[str] = []
    try:
        actions = _coerce_list(payload.get("actions"))
    except ValueError as exc:
        errors["actions"] = str(exc)
    try:
        best_days = _coerce_list(payload.get("bestDays"))
    except ValueError as exc:
        errors["bestDays"] = str(exc)

    lead_rating = _optional_text(payload.get("leadRating"))
    if lead_rating is not None and lead_rating not in LEAD_RATINGS:
        errors["leadRating"] = f"Must be one of {', '.join(LEAD_RATINGS)}"
    if lead_rating is not None and COLD_CALL_ACTION not in actions:
        lead_rating = None

    if errors:
        raise VisitValidationError(errors)

    raw_timestamp = payload.get("timestamp")
    if raw_timestamp in (None, ""):
        timestamp = format_instant((clock or utc_now)())
    else:
        timestamp = normalize_timestamp(raw_timestamp, zone=zone, clock=clock)

    return Visit(
        id=str(payload.get("id") or uuid.uuid4()),
        pharmacy_name=pharmacy_name,
        timestamp=timestamp,
        customer_contact=_optional_text(payload.get("customerContact")),
        actions=actions,
        has_order=_coerce_boolean(payload.get("hasOrder", False)),
        order_details=_optional_text(payload.get("orderDetails")),
        photo_url=_optional_text(payload.get("photoUrl")),
        notes=str(payload.get("notes") or ""),
        lead_rating=lead_rating,
        area_code=_optional_text(payload.get("areaCode")),
        user=_optional_text(payload.get("user")),
        best_days=best_days,
    )


__all__ = [
    "COLD_CALL_ACTION",
    "LEAD_RATINGS",
    "QUICK_ACTIONS",
    "UPLOAD_FAILED_SENTINEL",
    "Visit",
    "VisitValidationError",
    "format_instant",
    "match_lead_rating",
    "normalize_timestamp",
    "parse_instant",
    "utc_now",
    "visit_from_payload",
]
