"""Spreadsheet-backed visit store.

Visits live as rows in a Google Sheet. ``SheetsClient`` opens the sheet with
service-account credentials through gspread; ``VisitSheetStore`` maps rows
to :class:`~services.visits.Visit` values and back. The store accepts any
client exposing the same row-level methods, which keeps the mapping testable
without network access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo as TzInfo
from typing import Any, Callable, List, Optional, Sequence

import gspread
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials

from .settings import AppSettings
from .visits import Clock, Visit, match_lead_rating, normalize_timestamp

LOGGER = logging.getLogger(__name__)

SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)
TOKEN_URI = "https://oauth2.googleapis.com/token"

HEADER_ID = "ID"
COLUMNS = (
    "ID",
    "Timestamp",
    "Pharmacy",
    "Contact",
    "Actions",
    "Order",
    "Order Details",
    "Photo URL",
    "Notes",
    "Lead Rating",
    "Area Code",
    "User",
    "Best Days",
)
AREA_CODE_COLUMN = "K"
LAST_COLUMN = "M"
LIST_SEPARATOR = ", "

# Transport, auth and malformed-response failures all read as an unreachable sheet.
_TRANSPORT_ERRORS = (gspread.exceptions.GSpreadException, GoogleAuthError, requests.RequestException, ValueError)


class StoreError(RuntimeError):
    """Base class for record store failures."""


class StoreNotConfiguredError(StoreError):
    """Credentials or sheet id are missing; the app runs in local-only mode."""


class StoreUnavailableError(StoreError):
    """The backing spreadsheet could not be reached or rejected the call."""


class VisitNotFoundError(StoreError):
    """No row carries the requested visit id."""

    def __init__(self, visit_id: str):
        super().__init__("Visit ID not found")
        self.visit_id = visit_id


class RowDecodeError(ValueError):
    """A sheet row does not fit the positional visit schema."""

    def __init__(self, row_index: int, reason: str):
        super().__init__(f"Row {row_index + 1}: {reason}")
        self.row_index = row_index
        self.reason = reason


# ---------------------------------------------------------------------------
# Sheets client
# ---------------------------------------------------------------------------


def service_account_credentials(email: str, private_key: str) -> Credentials:
    info = {
        "type": "service_account",
        "client_email": email,
        "private_key": private_key,
        "token_uri": TOKEN_URI,
    }
    return Credentials.from_service_account_info(info, scopes=list(SHEETS_SCOPES))


class SheetsClient:
    """Row-level access to one spreadsheet through gspread.

    The spreadsheet is opened on first use, so a bad key or an unreachable
    API surfaces as :class:`StoreUnavailableError` from the call that needed
    it rather than from construction.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        *,
        authorize: Callable[[], gspread.Client],
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._authorize = authorize
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    @classmethod
    def from_service_account(
        cls,
        spreadsheet_id: str,
        email: str,
        private_key: str,
        *,
        timeout: float = 15.0,
    ) -> "SheetsClient":
        def authorize() -> gspread.Client:
            client = gspread.authorize(service_account_credentials(email, private_key))
            client.set_timeout(timeout)
            return client

        return cls(spreadsheet_id, authorize=authorize)

    def _call(self, description: str, operation: Callable[[gspread.Spreadsheet], Any]) -> Any:
        try:
            if self._spreadsheet is None:
                self._spreadsheet = self._authorize().open_by_key(self.spreadsheet_id)
            return operation(self._spreadsheet)
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"Sheets {description} failed: {exc}") from exc

    def get_values(self, range_: str) -> List[List[Any]]:
        payload = self._call(f"read of {range_}", lambda sheet: sheet.values_get(range_))
        return payload.get("values") or []

    def append_values(self, range_: str, rows: Sequence[Sequence[Any]], *, value_input_option: str = "USER_ENTERED") -> None:
        self._call(
            f"append to {range_}",
            lambda sheet: sheet.values_append(
                range_,
                {"valueInputOption": value_input_option},
                {"values": [list(row) for row in rows]},
            ),
        )

    def update_values(self, range_: str, rows: Sequence[Sequence[Any]], *, value_input_option: str = "USER_ENTERED") -> None:
        self._call(
            f"update of {range_}",
            lambda sheet: sheet.values_update(
                range_,
                params={"valueInputOption": value_input_option},
                body={"values": [list(row) for row in rows]},
            ),
        )

    def delete_row(self, tab: str, row_index: int) -> None:
        """Remove the 0-based ``row_index`` from worksheet ``tab``, shifting rows up."""
        self._call(
            f"delete of {tab} row {row_index + 1}",
            lambda sheet: sheet.worksheet(tab).delete_rows(row_index + 1),
        )


# ---------------------------------------------------------------------------
# Row codec
# ---------------------------------------------------------------------------


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def _split_list(value: str) -> List[str]:
    return value.split(LIST_SEPARATOR) if value else []


def encode_visit_row(visit: Visit) -> List[str]:
    return [
        visit.id,
        visit.timestamp,
        visit.pharmacy_name,
        visit.customer_contact or "",
        LIST_SEPARATOR.join(visit.actions),
        "Yes" if visit.has_order else "No",
        visit.order_details or "",
        visit.photo_url or "",
        visit.notes or "",
        visit.lead_rating or "",
        visit.area_code or "",
        visit.user or "",
        LIST_SEPARATOR.join(visit.best_days),
    ]


def decode_visit_row(
    row: Sequence[Any],
    row_index: int,
    *,
    zone: Optional[TzInfo] = None,
    clock: Optional[Clock] = None,
) -> Visit:
    """Decode one positional sheet row.

    ``row_index`` is the 0-based position in the sheet and seeds the
    placeholder id for rows typed in by hand without one.
    """

    if len(row) > len(COLUMNS):
        raise RowDecodeError(row_index, f"expected at most {len(COLUMNS)} columns, got {len(row)}")
    cells = [_cell(value) for value in row] + [""] * (len(COLUMNS) - len(row))
    (
        visit_id,
        timestamp,
        pharmacy,
        contact,
        actions,
        has_order,
        order_details,
        photo_url,
        notes,
        lead_rating,
        area_code,
        user,
        best_days,
    ) = cells

    if not pharmacy.strip():
        raise RowDecodeError(row_index, "pharmacy name is empty")
    rating = match_lead_rating(lead_rating)
    if lead_rating.strip() and rating is None:
        LOGGER.warning("Row %d: ignoring unknown lead rating %r", row_index + 1, lead_rating)

    return Visit(
        id=visit_id or f"generated-{row_index}",
        pharmacy_name=pharmacy,
        timestamp=normalize_timestamp(timestamp, zone=zone, clock=clock),
        customer_contact=contact or None,
        actions=_split_list(actions),
        has_order=has_order == "Yes",
        order_details=order_details or None,
        photo_url=photo_url or None,
        notes=notes,
        lead_rating=rating,
        area_code=area_code or None,
        user=user or None,
        best_days=_split_list(best_days),
    )


@dataclass
class DecodeResult:
    visits: List[Visit]
    errors: List[RowDecodeError]


def decode_visit_rows(
    rows: Sequence[Sequence[Any]],
    *,
    zone: Optional[TzInfo] = None,
    clock: Optional[Clock] = None,
) -> DecodeResult:
    visits: List[Visit] = []
    errors: List[RowDecodeError] = []
    if not rows:
        return DecodeResult(visits, errors)

    start = 1 if rows[0] and _cell(rows[0][0]) == HEADER_ID else 0
    for row_index in range(start, len(rows)):
        row = rows[row_index] or []
        if not any(_cell(value).strip() for value in row):
            continue
        try:
            visit = decode_visit_row(row, row_index, zone=zone, clock=clock)
        except RowDecodeError as exc:
            LOGGER.warning("Skipping malformed visit row: %s", exc)
            errors.append(exc)
            continue
        if visit.id in (HEADER_ID, HEADER_ID.lower()):
            continue
        visits.append(visit)
    return DecodeResult(visits, errors)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class VisitSheetStore:
    """Record store contract over a visit spreadsheet.

    ``fetch_all`` degrades to an empty list when the sheet is unconfigured or
    unreachable; ``load`` raises instead so callers can tell the cases apart.
    Writes raise :class:`StoreNotConfiguredError`, :class:`VisitNotFoundError`
    or :class:`StoreUnavailableError`.
    """

    def __init__(
        self,
        client: Optional[Any],
        *,
        tab: str = "Sheet1",
        range_: str = "Sheet1!A:M",
        zone: Optional[TzInfo] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._client = client
        self._tab = tab
        self._range = range_
        self._zone = zone
        self._clock = clock
        self.last_decode_errors: List[RowDecodeError] = []

    @classmethod
    def from_settings(cls, settings: AppSettings, *, clock: Optional[Clock] = None) -> "VisitSheetStore":
        client = None
        if settings.store_configured:
            client = SheetsClient.from_service_account(
                settings.sheet_id,
                settings.service_account_email,
                settings.private_key,
                timeout=settings.timeout_seconds,
            )
        return cls(client, tab=settings.sheet_tab, range_=settings.sheet_range, zone=settings.tzinfo, clock=clock)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            raise StoreNotConfiguredError("Missing Google Credentials")
        return self._client

    # -- reads ---------------------------------------------------------------

    def load(self) -> List[Visit]:
        rows = self._require_client().get_values(self._range)
        result = decode_visit_rows(rows, zone=self._zone, clock=self._clock)
        self.last_decode_errors = result.errors
        return result.visits

    def fetch_all(self) -> List[Visit]:
        try:
            return self.load()
        except StoreNotConfiguredError:
            return []
        except StoreError as exc:
            LOGGER.error("Error fetching visits from sheet: %s", exc)
            return []

    def get_visit(self, visit_id: str) -> Optional[Visit]:
        for visit in self.load():
            if visit.id == visit_id:
                return visit
        return None

    # -- writes --------------------------------------------------------------

    def _find_row_index(self, client: Any, visit_id: str) -> int:
        rows = client.get_values(f"{self._tab}!A:A")
        for index, row in enumerate(rows):
            if row and _cell(row[0]) == visit_id:
                return index
        if visit_id.startswith("generated-"):
            suffix = visit_id[len("generated-"):]
            if suffix.isdigit():
                index = int(suffix)
                if index < len(rows) and not (rows[index] and _cell(rows[index][0])):
                    return index
        raise VisitNotFoundError(visit_id)

    def append_one(self, visit: Visit) -> None:
        client = self._require_client()
        client.append_values(self._range, [encode_visit_row(visit)])

    def update_one(self, visit: Visit) -> None:
        client = self._require_client()
        sheet_row = self._find_row_index(client, visit.id) + 1
        client.update_values(
            f"{self._tab}!A{sheet_row}:{LAST_COLUMN}{sheet_row}",
            [encode_visit_row(visit)],
        )

    def delete_one(self, visit_id: str) -> None:
        client = self._require_client()
        client.delete_row(self._tab, self._find_row_index(client, visit_id))

    def patch_area_code(self, visit_id: str, area_code: str) -> None:
        client = self._require_client()
        sheet_row = self._find_row_index(client, visit_id) + 1
        client.update_values(
            f"{self._tab}!{AREA_CODE_COLUMN}{sheet_row}",
            [[area_code]],
            value_input_option="RAW",
        )


__all__ = [
    "COLUMNS",
    "DecodeResult",
    "RowDecodeError",
    "SheetsClient",
    "StoreError",
    "StoreNotConfiguredError",
    "StoreUnavailableError",
    "VisitNotFoundError",
    "VisitSheetStore",
    "decode_visit_row",
    "decode_visit_rows",
    "encode_visit_row",
]
