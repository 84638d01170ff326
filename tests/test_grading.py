"""Tests for speedengine.grading -- display classes."""

import unittest

from speedengine.grading import grade_latency, grade_speed


class TestGradeSpeed(unittest.TestCase):
    def test_classes(self):
        cases = [
            (500.0, "excellent"),
            (100.0, "excellent"),
            (99.9, "good"),
            (50.0, "good"),
            (25.0, "average"),
            (10.0, "below average"),
            (9.9, "poor"),
            (0.0, "poor"),
        ]
        for mbps, label in cases:
            with self.subTest(mbps=mbps):
                self.assertEqual(grade_speed(mbps)[0], label)

    def test_colours(self):
        self.assertEqual(grade_speed(200.0), ("excellent", "green"))
        self.assertEqual(grade_speed(30.0), ("average", "yellow"))
        self.assertEqual(grade_speed(1.0), ("poor", "red"))


class TestGradeLatency(unittest.TestCase):
    def test_classes(self):
        cases = [
            (0.5, "excellent"),
            (19.9, "excellent"),
            (20.0, "good"),
            (50.0, "average"),
            (100.0, "below average"),
            (149.9, "below average"),
            (150.0, "poor"),
        ]
        for ms, label in cases:
            with self.subTest(ms=ms):
                self.assertEqual(grade_latency(ms)[0], label)


if __name__ == "__main__":
    unittest.main()
