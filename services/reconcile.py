"""Merge remote visits with the on-device cache."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Sequence, Set, Tuple

from .visits import Visit

LOGGER = logging.getLogger(__name__)


def reconcile_visits(remote: Sequence[Visit], local: Sequence[Visit]) -> List[Visit]:
    """Return remote visits plus cached visits whose id the remote set lacks.

    Remote entries win on id collisions. An empty remote set (store
    unconfigured or unreachable) leaves the cache as the whole result.
    The merged list is ordered newest first; ties keep input order.
    """

    merged: List[Visit] = []
    seen: Set[str] = set()
    for visit in remote:
        if visit.id in seen:
            LOGGER.warning("Duplicate visit id %s in remote store; keeping first row", visit.id)
            continue
        seen.add(visit.id)
        merged.append(visit)

    local_only = 0
    for visit in local:
        if visit.id in seen:
            continue
        seen.add(visit.id)
        merged.append(visit)
        local_only += 1

    if local_only:
        LOGGER.debug("Including %d local-only visit(s) in merged view", local_only)
    merged.sort(key=lambda visit: visit.visited_at, reverse=True)
    return merged


def fetch_pair(
    fetch_remote: Callable[[], Iterable[Visit]],
    fetch_local: Callable[[], Iterable[Visit]],
) -> Tuple[List[Visit], List[Visit]]:
    """Run both reads concurrently and wait for both to finish."""

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="visit-read") as pool:
        remote_future = pool.submit(fetch_remote)
        local_future = pool.submit(fetch_local)
        return list(remote_future.result()), list(local_future.result())


def load_reconciled(
    fetch_remote: Callable[[], Iterable[Visit]],
    fetch_local: Callable[[], Iterable[Visit]],
) -> List[Visit]:
    remote, local = fetch_pair(fetch_remote, fetch_local)
    return reconcile_visits(remote, local)
