import unittest

import tests.helpers  # noqa: F401

from app.core.config.scoring import get_scoring_config, get_scoring_list, get_scoring_value  # noqa: E402
from app.scoring.ats import CATEGORY_MAX  # noqa: E402


class ScoringConfigTests(unittest.TestCase):
    def test_loader_and_value_lookup(self):
        config = get_scoring_config()
        self.assertIsInstance(config, dict)
        self.assertEqual(get_scoring_value("matching.max_jd_chars"), 10000)
        self.assertEqual(get_scoring_value("structure.points.experience"), 6)
        self.assertEqual(get_scoring_value("missing.path", "fallback"), "fallback")
        self.assertIn("developed", get_scoring_list("keywords.action_verbs"))

    def test_structure_points_fit_category_cap(self):
        points = get_scoring_value("structure.points")
        self.assertLessEqual(sum(points.values()), CATEGORY_MAX["structure"])
        for category, cap in CATEGORY_MAX.items():
            self.assertEqual(get_scoring_value(f"{category}.max"), cap)


if __name__ == "__main__":
    unittest.main()
