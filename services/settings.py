"""Runtime configuration for the visit log service."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import pytz

from data_paths import SETTINGS_FILENAME, ensure_data_root

LOGGER = logging.getLogger(__name__)

DEFAULT_SHEET_RANGE = "Sheet1!A:M"
DEFAULT_SHEET_TAB = "Sheet1"
DEFAULT_USERS_RANGE = "Sheet1!A:C"
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_BLOB_LIMIT_BYTES = 1000 * 1000 * 1000


def read_json_file(file_path: Path) -> Any:
    """Load JSON from ``file_path``; missing, empty or corrupt files read as ``{}``."""
    if not os.path.exists(file_path) or os.path.getsize(file_path) == 0:
        return {}
    with open(file_path, "r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError:
            LOGGER.error("JSONDecodeError for %s", file_path)
            return {}


def write_json_file(file_path: Path, data: Any) -> None:
    with open(file_path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=4)


def _float_env(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _private_key(raw: Optional[str]) -> str:
    # .env files usually carry the PEM block with literal "\n" sequences.
    return (raw or "").strip().replace("\\n", "\n")


def resolve_timezone(name: Optional[str]) -> pytz.BaseTzInfo:
    """Return the pytz zone for ``name``, falling back to UTC."""
    if not name:
        return pytz.UTC
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOGGER.warning("Unknown timezone %r in settings; using UTC", name)
        return pytz.UTC


@dataclass
class AppSettings:
    sheet_id: str = ""
    sheet_range: str = DEFAULT_SHEET_RANGE
    sheet_tab: str = DEFAULT_SHEET_TAB
    users_sheet_id: str = ""
    users_range: str = DEFAULT_USERS_RANGE
    service_account_email: str = ""
    private_key: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    blob_limit_bytes: int = DEFAULT_BLOB_LIMIT_BYTES
    timezone: str = "UTC"

    @property
    def credentials_configured(self) -> bool:
        return bool(self.service_account_email and self.private_key)

    @property
    def store_configured(self) -> bool:
        return self.credentials_configured and bool(self.sheet_id)

    @property
    def directory_configured(self) -> bool:
        return self.credentials_configured and bool(self.users_sheet_id)

    @property
    def tzinfo(self) -> pytz.BaseTzInfo:
        return resolve_timezone(self.timezone)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        file_settings: Optional[Dict[str, Any]] = None,
    ) -> "AppSettings":
        env = os.environ if environ is None else environ
        stored = file_settings if file_settings is not None else load_settings_file()
        return cls(
            sheet_id=(env.get("GOOGLE_SHEET_ID") or "").strip(),
            sheet_range=(env.get("GOOGLE_SHEET_RANGE") or DEFAULT_SHEET_RANGE).strip(),
            sheet_tab=(env.get("GOOGLE_SHEET_TAB") or DEFAULT_SHEET_TAB).strip(),
            users_sheet_id=(env.get("USERS_SHEET_ID") or "").strip(),
            service_account_email=(env.get("GOOGLE_SERVICE_ACCOUNT_EMAIL") or "").strip(),
            private_key=_private_key(env.get("GOOGLE_PRIVATE_KEY")),
            timeout_seconds=_float_env(env, "SHEETS_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            blob_limit_bytes=int(_float_env(env, "BLOB_STORAGE_LIMIT_BYTES", DEFAULT_BLOB_LIMIT_BYTES)),
            timezone=str(stored.get("timezone") or "UTC"),
        )


def load_settings_file() -> Dict[str, Any]:
    settings_blob = read_json_file(ensure_data_root() / SETTINGS_FILENAME)
    return settings_blob if isinstance(settings_blob, dict) else {}
