"""Per-pharmacy rollups over a visit set."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .access import AccessScope
from .visits import Visit, format_instant

UNKNOWN_CONTACT = "Unknown"
TOP_ACTIONS_LIMIT = 3
SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"


@dataclass
class PharmacyStats:
    pharmacy_name: str
    total_visits: int
    last_visit: datetime
    last_contact: str = UNKNOWN_CONTACT
    last_user: Optional[str] = None
    top_actions: List[str] = field(default_factory=list)
    lead_rating: Optional[str] = None
    area_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pharmacyName": self.pharmacy_name,
            "totalVisits": self.total_visits,
            "lastVisit": format_instant(self.last_visit),
            "lastContact": self.last_contact,
            "lastUser": self.last_user,
            "topActions": list(self.top_actions),
            "leadRating": self.lead_rating,
            "areaCode": self.area_code,
        }


@dataclass
class AggregationResult:
    stats: List[PharmacyStats] = field(default_factory=list)
    users: List[str] = field(default_factory=list)


def newest_first(visits: Sequence[Visit]) -> List[Visit]:
    return sorted(visits, key=lambda visit: visit.visited_at, reverse=True)


def rank_actions(visits: Sequence[Visit], limit: int = TOP_ACTIONS_LIMIT) -> List[str]:
    """Most frequent action labels; equal counts keep first-seen order."""
    counts: Counter = Counter()
    for visit in visits:
        counts.update(visit.actions)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [label for label, _ in ranked[:limit]]


def summarize_pharmacy(name: str, ordered_visits: Sequence[Visit]) -> PharmacyStats:
    """Roll up visits already sorted newest first."""
    latest = ordered_visits[0]
    rated = next((visit for visit in ordered_visits if visit.lead_rating), None)
    with_area = next((visit for visit in ordered_visits if visit.area_code), None)
    return PharmacyStats(
        pharmacy_name=name,
        total_visits=len(ordered_visits),
        last_visit=latest.visited_at,
        last_contact=latest.customer_contact or UNKNOWN_CONTACT,
        last_user=latest.user,
        top_actions=rank_actions(ordered_visits),
        lead_rating=rated.lead_rating if rated else None,
        area_code=with_area.area_code if with_area else None,
    )


def aggregate_customer_stats(
    visits: Sequence[Visit],
    scope: AccessScope,
    user_filter: Optional[str] = None,
) -> AggregationResult:
    """Group visits by pharmacy and roll each group up.

    The user list covers everyone in scope regardless of ``user_filter`` so
    it can drive filter suggestions. Groups left empty by the user filter
    are dropped. Pharmacy keys are trimmed but keep their case.
    """

    accessible = scope.filter(visits)
    users = sorted({visit.user for visit in accessible if visit.user})

    grouped: Dict[str, List[Visit]] = {}
    for visit in accessible:
        grouped.setdefault(visit.pharmacy_key, []).append(visit)

    stats: List[PharmacyStats] = []
    for name, group in grouped.items():
        ordered = newest_first(group)
        if user_filter:
            ordered = [visit for visit in ordered if visit.user == user_filter]
        if not ordered:
            continue
        stats.append(summarize_pharmacy(name, ordered))

    stats.sort(key=lambda entry: entry.last_visit, reverse=True)
    return AggregationResult(stats=stats, users=users)


def filter_customer_stats(
    stats: Sequence[PharmacyStats],
    *,
    search: str = "",
    area: str = "",
    rating: str = "All",
    order: str = SORT_NEWEST,
) -> List[PharmacyStats]:
    """Customer-list narrowing: name substring, exact area, rating, sort direction."""

    search_text = (search or "").strip().lower()
    area_text = (area or "").strip().lower()
    filtered = []
    for entry in stats:
        if search_text and search_text not in entry.pharmacy_name.lower():
            continue
        if area_text and (entry.area_code or "").strip().lower() != area_text:
            continue
        if rating and rating != "All" and entry.lead_rating != rating:
            continue
        filtered.append(entry)
    filtered.sort(key=lambda entry: entry.last_visit, reverse=order != SORT_OLDEST)
    return filtered
