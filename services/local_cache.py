"""On-device visit cache kept as a JSON document under the data root."""

from __future__ import annotations

import logging
import uuid
from datetime import tzinfo as TzInfo
from pathlib import Path
from typing import Any, Dict, List, Optional

from data_paths import VISITS_CACHE_FILENAME, ensure_data_root

from .settings import read_json_file, write_json_file
from .visits import Clock, Visit, VisitValidationError, visit_from_payload

LOGGER = logging.getLogger(__name__)


class LocalVisitCache:
    """Newest-first list of visits recorded on this device.

    Entries are written before the remote store is contacted, so the cache
    also holds visits that have since been synced.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        zone: Optional[TzInfo] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.path = Path(path) if path else ensure_data_root() / VISITS_CACHE_FILENAME
        self._zone = zone
        self._clock = clock

    def _read_entries(self) -> List[Dict[str, Any]]:
        blob = read_json_file(self.path)
        if isinstance(blob, dict):
            blob = blob.get("visits", [])
        if not isinstance(blob, list):
            LOGGER.error("Visit cache %s does not hold a list; ignoring it", self.path)
            return []
        return blob

    def _write_visits(self, visits: List[Visit]) -> None:
        write_json_file(self.path, {"visits": [visit.to_dict() for visit in visits]})

    def _assign_missing_ids(self, entries: List[Any]) -> None:
        missing = [entry for entry in entries if isinstance(entry, dict) and not entry.get("id")]
        if not missing:
            return
        for entry in missing:
            entry["id"] = str(uuid.uuid4())
        LOGGER.info("Assigned ids to %d cached visit(s) in %s", len(missing), self.path)
        write_json_file(self.path, {"visits": entries})

    def read_all(self) -> List[Visit]:
        entries = self._read_entries()
        self._assign_missing_ids(entries)
        visits: List[Visit] = []
        for entry in entries:
            try:
                visits.append(visit_from_payload(entry, zone=self._zone, clock=self._clock))
            except VisitValidationError as exc:
                LOGGER.warning("Dropping unreadable cached visit: %s", exc.errors)
        return visits

    def get(self, visit_id: str) -> Optional[Visit]:
        return next((visit for visit in self.read_all() if visit.id == visit_id), None)

    def write_one(self, visit: Visit) -> None:
        self._write_visits([visit, *self.read_all()])

    def replace_one(self, visit: Visit) -> bool:
        visits = self.read_all()
        replaced = False
        for index, existing in enumerate(visits):
            if existing.id == visit.id:
                visits[index] = visit
                replaced = True
        if replaced:
            self._write_visits(visits)
        return replaced

    def delete_one(self, visit_id: str) -> bool:
        visits = self.read_all()
        remaining = [visit for visit in visits if visit.id != visit_id]
        if len(remaining) == len(visits):
            return False
        self._write_visits(remaining)
        return True
