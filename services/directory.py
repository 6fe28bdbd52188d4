"""PIN lookup against the user-directory spreadsheet."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from .access import ALL_AREAS
from .settings import AppSettings
from .sheet_store import SheetsClient, StoreError

LOGGER = logging.getLogger(__name__)

USERS_HEADER = "Area Code"


@dataclass(frozen=True)
class Identity:
    name: str
    area_code: str

    def to_dict(self) -> dict:
        return {"name": self.name, "areaCode": self.area_code}


@dataclass(frozen=True)
class DirectoryEntry:
    area_code: str
    name: str
    pin: str


def parse_directory_rows(rows: Sequence[Sequence[Any]]) -> List[DirectoryEntry]:
    start = 1 if rows and rows[0] and str(rows[0][0]) == USERS_HEADER else 0
    entries = []
    for row in rows[start:]:
        cells = [("" if value is None else str(value)) for value in row] + ["", "", ""]
        area_code, name, pin = cells[0], cells[1], cells[2].strip()
        if name and pin:
            entries.append(DirectoryEntry(area_code=area_code, name=name, pin=pin))
    return entries


class UserDirectory:
    def __init__(self, client: Optional[Any], *, range_: str = "Sheet1!A:C") -> None:
        self._client = client
        self._range = range_

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "UserDirectory":
        client = None
        if settings.directory_configured:
            client = SheetsClient.from_service_account(
                settings.users_sheet_id,
                settings.service_account_email,
                settings.private_key,
                timeout=settings.timeout_seconds,
            )
        return cls(client, range_=settings.users_range)

    def entries(self) -> List[DirectoryEntry]:
        if self._client is None:
            return []
        try:
            return parse_directory_rows(self._client.get_values(self._range))
        except StoreError as exc:
            LOGGER.error("Error fetching users: %s", exc)
            return []

    def authenticate(self, pin: str) -> Optional[Identity]:
        """Resolve a PIN to an identity; rows sharing a PIN merge their area codes."""
        candidate = (pin or "").strip()
        if not candidate:
            return None
        matches = [entry for entry in self.entries() if entry.pin == candidate]
        if not matches:
            return None
        area_codes: List[str] = []
        for entry in matches:
            if entry.area_code not in area_codes:
                area_codes.append(entry.area_code)
        profile = ALL_AREAS if ALL_AREAS in area_codes else ", ".join(area_codes)
        return Identity(name=matches[0].name, area_code=profile)
