"""Per-request session context threaded through every action."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from .access import AccessScope
from .blobs import LocalBlobStore
from .directory import Identity
from .local_cache import LocalVisitCache
from .settings import AppSettings
from .sheet_store import VisitSheetStore
from .visits import Clock, utc_now


@dataclass
class SessionContext:
    store: VisitSheetStore
    cache: LocalVisitCache
    blobs: LocalBlobStore
    settings: AppSettings = field(default_factory=AppSettings)
    identity: Optional[Identity] = None
    clock: Clock = utc_now

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        identity: Optional[Identity] = None,
        clock: Clock = utc_now,
    ) -> "SessionContext":
        return cls(
            store=VisitSheetStore.from_settings(settings, clock=clock),
            cache=LocalVisitCache(zone=settings.tzinfo, clock=clock),
            blobs=LocalBlobStore(),
            settings=settings,
            identity=identity,
            clock=clock,
        )

    def now(self) -> datetime:
        return self.clock()

    @property
    def scope(self) -> AccessScope:
        return AccessScope.from_profile(self.identity.area_code if self.identity else None)

    def with_identity(self, identity: Optional[Identity]) -> "SessionContext":
        return replace(self, identity=identity)
