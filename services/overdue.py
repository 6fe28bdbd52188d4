"""Overdue-visit classification of pharmacy rollups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Sequence

from dateutil.relativedelta import relativedelta

from .customer_stats import PharmacyStats

URGENT = "urgent"
WARNING = "warning"
SOON = "soon"
BUCKETS = (URGENT, WARNING, SOON)
UNASSIGNED_AREA = "Unassigned"

# Checked in order; a pharmacy lands in the first bucket whose cutoff it is older than.
THRESHOLDS = (
    (URGENT, relativedelta(months=6)),
    (WARNING, relativedelta(months=3)),
    (SOON, relativedelta(months=1)),
)


@dataclass
class OverdueReport:
    urgent: List[PharmacyStats] = field(default_factory=list)
    warning: List[PharmacyStats] = field(default_factory=list)
    soon: List[PharmacyStats] = field(default_factory=list)

    def bucket(self, name: str) -> List[PharmacyStats]:
        return getattr(self, name)

    def grouped_by_area(self) -> Dict[str, Dict[str, List[PharmacyStats]]]:
        return {name: group_by_area(self.bucket(name)) for name in BUCKETS}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name, groups in self.grouped_by_area().items():
            payload[name] = {
                "count": len(self.bucket(name)),
                "areas": [
                    {"areaCode": area, "pharmacies": [entry.to_dict() for entry in entries]}
                    for area, entries in groups.items()
                ],
            }
        return payload


def classify_overdue(stats: Sequence[PharmacyStats], now: datetime) -> OverdueReport:
    """Bucket rollups by time since last visit.

    Anything visited within the last month is left out. Each bucket is sorted
    oldest visit first.
    """

    report = OverdueReport()
    cutoffs = [(name, now - delta) for name, delta in THRESHOLDS]
    for entry in stats:
        for name, cutoff in cutoffs:
            if entry.last_visit < cutoff:
                report.bucket(name).append(entry)
                break
    for name in BUCKETS:
        report.bucket(name).sort(key=lambda entry: entry.last_visit)
    return report


def group_by_area(entries: Sequence[PharmacyStats]) -> Dict[str, List[PharmacyStats]]:
    """Chunk entries by area code, alphabetical with ``Unassigned`` last."""
    groups: Dict[str, List[PharmacyStats]] = {}
    for entry in entries:
        label = (entry.area_code or "").strip() or UNASSIGNED_AREA
        groups.setdefault(label, []).append(entry)
    ordered = sorted(groups, key=lambda label: (label == UNASSIGNED_AREA, label))
    return {label: groups[label] for label in ordered}
