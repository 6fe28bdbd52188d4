import pathlib
import sys
import unittest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.access import ALL_AREAS, AccessScope
from services.visits import Visit


def visit(visit_id, area_code=None):
    return Visit(id=visit_id, pharmacy_name="Acme", timestamp="2025-01-01T00:00:00.000Z", area_code=area_code)


class AccessScopeTests(unittest.TestCase):
    def setUp(self):
        self.visits = [visit("a", "2A"), visit("b", "3C"), visit("c", None), visit("d", "2B"), visit("e", "")]

    def test_all_profile_sees_everything(self):
        scope = AccessScope.from_profile(ALL_AREAS)
        self.assertTrue(scope.unrestricted)
        self.assertEqual([v.id for v in scope.filter(self.visits)], ["a", "b", "c", "d", "e"])

    def test_comma_separated_profile_is_trimmed(self):
        scope = AccessScope.from_profile("2A, 2B")
        self.assertEqual(scope.area_codes, frozenset({"2A", "2B"}))
        self.assertEqual([v.id for v in scope.filter(self.visits)], ["a", "c", "d", "e"])

    def test_visits_without_area_are_always_visible(self):
        scope = AccessScope.from_profile("9Z")
        self.assertEqual([v.id for v in scope.filter(self.visits)], ["c", "e"])

    def test_blank_profile_is_unrestricted(self):
        for profile in ("", None, "   "):
            with self.subTest(profile=profile):
                scope = AccessScope.from_profile(profile)
                self.assertTrue(scope.unrestricted)
                self.assertEqual([v.id for v in scope.filter(self.visits)], ["a", "b", "c", "d", "e"])

    def test_profile_of_only_separators_sees_unscoped_visits(self):
        scope = AccessScope.from_profile(" , ")
        self.assertFalse(scope.unrestricted)
        self.assertEqual([v.id for v in scope.filter(self.visits)], ["c", "e"])

    def test_area_codes_compare_exactly(self):
        scope = AccessScope.from_profile("2a")
        self.assertFalse(scope.allows(visit("x", "2A")))

    def test_all_must_be_the_whole_profile(self):
        scope = AccessScope.from_profile("All, 2A")
        self.assertFalse(scope.unrestricted)
        self.assertFalse(scope.allows(visit("x", "3C")))

    def test_to_profile(self):
        self.assertEqual(AccessScope.from_profile("2B,2A").to_profile(), "2A, 2B")
        self.assertEqual(AccessScope.from_profile(ALL_AREAS).to_profile(), ALL_AREAS)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
