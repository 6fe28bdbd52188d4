import pathlib
import sys
import threading
import unittest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.reconcile import fetch_pair, load_reconciled, reconcile_visits
from services.visits import Visit


def visit(visit_id, timestamp, notes=""):
    return Visit(id=visit_id, pharmacy_name="Acme", timestamp=timestamp, notes=notes)


class ReconcileVisitsTests(unittest.TestCase):
    def test_remote_wins_and_local_only_visits_are_kept(self):
        remote = [visit("A", "2025-01-01T00:00:00.000Z", notes="remote")]
        local = [
            visit("A", "2025-01-01T00:00:00.000Z", notes="local"),
            visit("B", "2025-02-01T00:00:00.000Z"),
        ]
        merged = reconcile_visits(remote, local)
        self.assertEqual([entry.id for entry in merged], ["B", "A"])
        self.assertEqual(merged[1].notes, "remote")

    def test_empty_remote_falls_back_to_cache(self):
        local = [visit("L1", "2025-01-01T00:00:00.000Z"), visit("L2", "2025-03-01T00:00:00.000Z")]
        self.assertEqual([entry.id for entry in reconcile_visits([], local)], ["L2", "L1"])

    def test_ids_are_unique(self):
        remote = [visit("A", "2025-01-01T00:00:00.000Z", notes="first"), visit("A", "2025-01-02T00:00:00.000Z")]
        with self.assertLogs("services.reconcile", level="WARNING"):
            merged = reconcile_visits(remote, [visit("A", "2025-01-03T00:00:00.000Z")])
        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].notes, "first")

    def test_equal_timestamps_keep_input_order(self):
        remote = [visit("R", "2025-01-01T00:00:00.000Z")]
        local = [visit("L", "2025-01-01T00:00:00.000Z")]
        self.assertEqual([entry.id for entry in reconcile_visits(remote, local)], ["R", "L"])


class FetchPairTests(unittest.TestCase):
    def test_reads_run_concurrently(self):
        # Each read waits for the other to start; a serial run would time out.
        barrier = threading.Barrier(2, timeout=5)

        def remote():
            barrier.wait()
            return [visit("R", "2025-01-01T00:00:00.000Z")]

        def local():
            barrier.wait()
            return [visit("L", "2025-02-01T00:00:00.000Z")]

        remote_visits, local_visits = fetch_pair(remote, local)
        self.assertEqual([entry.id for entry in remote_visits], ["R"])
        self.assertEqual([entry.id for entry in local_visits], ["L"])

    def test_load_reconciled_merges_both_sources(self):
        merged = load_reconciled(
            lambda: [visit("R", "2025-01-01T00:00:00.000Z")],
            lambda: [visit("L", "2025-02-01T00:00:00.000Z")],
        )
        self.assertEqual([entry.id for entry in merged], ["L", "R"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
