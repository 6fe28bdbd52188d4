import pathlib
import sys
import unittest
from datetime import datetime, timezone

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.customer_stats import PharmacyStats
from services.overdue import UNASSIGNED_AREA, classify_overdue, group_by_area

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def stats(name, last_visit, area_code=None):
    return PharmacyStats(pharmacy_name=name, total_visits=1, last_visit=last_visit, area_code=area_code)


def names(entries):
    return [entry.pharmacy_name for entry in entries]


class ClassifyOverdueTests(unittest.TestCase):
    def test_seven_months_is_urgent_only(self):
        report = classify_overdue([stats("Old", datetime(2024, 11, 1, tzinfo=timezone.utc))], NOW)
        self.assertEqual(names(report.urgent), ["Old"])
        self.assertEqual(report.warning, [])
        self.assertEqual(report.soon, [])

    def test_exactly_six_months_is_warning(self):
        report = classify_overdue([stats("Edge", datetime(2024, 12, 1, 12, tzinfo=timezone.utc))], NOW)
        self.assertEqual(report.urgent, [])
        self.assertEqual(names(report.warning), ["Edge"])

    def test_between_one_and_three_months_is_soon(self):
        report = classify_overdue([stats("Later", datetime(2025, 4, 20, tzinfo=timezone.utc))], NOW)
        self.assertEqual(names(report.soon), ["Later"])

    def test_recent_visits_are_left_out(self):
        report = classify_overdue([stats("Fresh", datetime(2025, 5, 15, tzinfo=timezone.utc))], NOW)
        self.assertEqual(report.urgent + report.warning + report.soon, [])

    def test_buckets_sorted_oldest_first(self):
        entries = [
            stats("B", datetime(2024, 10, 1, tzinfo=timezone.utc)),
            stats("A", datetime(2023, 1, 1, tzinfo=timezone.utc)),
            stats("C", datetime(2024, 11, 1, tzinfo=timezone.utc)),
        ]
        self.assertEqual(names(classify_overdue(entries, NOW).urgent), ["A", "B", "C"])

    def test_to_dict_groups_by_area(self):
        entries = [
            stats("One", datetime(2024, 1, 1, tzinfo=timezone.utc), "3C"),
            stats("Two", datetime(2024, 2, 1, tzinfo=timezone.utc)),
            stats("Three", datetime(2024, 3, 1, tzinfo=timezone.utc), "2A"),
        ]
        payload = classify_overdue(entries, NOW).to_dict()
        self.assertEqual(payload["urgent"]["count"], 3)
        self.assertEqual([area["areaCode"] for area in payload["urgent"]["areas"]], ["2A", "3C", UNASSIGNED_AREA])
        self.assertEqual(payload["warning"], {"count": 0, "areas": []})


class GroupByAreaTests(unittest.TestCase):
    def test_unassigned_sorts_last(self):
        entries = [
            stats("x", NOW, "  "),
            stats("y", NOW, "Zeta"),
            stats("z", NOW, "Alpha"),
        ]
        self.assertEqual(list(group_by_area(entries)), ["Alpha", "Zeta", UNASSIGNED_AREA])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
