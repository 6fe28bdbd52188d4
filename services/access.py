"""Area-code access scopes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

from .visits import Visit

ALL_AREAS = "All"


@dataclass(frozen=True)
class AccessScope:
    """The area codes an identity may see; ``unrestricted`` means every area.

    Area codes compare exactly after trimming the profile tokens, unlike
    pharmacy names which compare case-insensitively elsewhere.
    """

    area_codes: FrozenSet[str] = frozenset()
    unrestricted: bool = False

    @classmethod
    def from_profile(cls, profile: Optional[str]) -> "AccessScope":
        """A blank profile carries no restriction, the same as ``All``."""
        if not (profile or "").strip() or profile == ALL_AREAS:
            return cls(unrestricted=True)
        tokens = (token.strip() for token in (profile or "").split(","))
        return cls(area_codes=frozenset(token for token in tokens if token))

    def allows(self, visit: Visit) -> bool:
        if self.unrestricted or not visit.area_code:
            return True
        return visit.area_code in self.area_codes

    def filter(self, visits: Iterable[Visit]) -> List[Visit]:
        return [visit for visit in visits if self.allows(visit)]

    def to_profile(self) -> str:
        if self.unrestricted:
            return ALL_AREAS
        return ", ".join(sorted(self.area_codes))
