"""Tests for speedengine.tiers -- classification and parameter adaptation."""

import unittest

from speedengine.tiers import (
    FALLBACK_SPEEDS,
    SpeedTier,
    TestParameters,
    adapt_parameters,
    classify_speed,
    fallback_speed,
)


class TestClassifySpeed(unittest.TestCase):
    def test_boundaries(self):
        cases = [
            (0.0, SpeedTier.SLOW),
            (9.99, SpeedTier.SLOW),
            (10.0, SpeedTier.MODERATE),
            (49.9, SpeedTier.MODERATE),
            (50.0, SpeedTier.FAST),
            (199.9, SpeedTier.FAST),
            (200.0, SpeedTier.VERY_FAST),
            (749.9, SpeedTier.VERY_FAST),
            (750.0, SpeedTier.ULTRA_FAST),
            (10_000.0, SpeedTier.ULTRA_FAST),
        ]
        for mbps, tier in cases:
            with self.subTest(mbps=mbps):
                self.assertIs(classify_speed(mbps), tier)

    def test_five_mbps_is_slow(self):
        self.assertIs(classify_speed(5.0), SpeedTier.SLOW)

    def test_tier_ordering(self):
        self.assertLess(SpeedTier.SLOW, SpeedTier.MODERATE)
        self.assertLess(SpeedTier.VERY_FAST, SpeedTier.ULTRA_FAST)
        self.assertEqual(sorted(reversed(list(SpeedTier))), list(SpeedTier))


class TestAdaptParameters(unittest.TestCase):
    def test_every_tier_has_parameters(self):
        for tier in SpeedTier:
            self.assertIsInstance(adapt_parameters(tier), TestParameters)

    def test_slow_tier_values(self):
        p = adapt_parameters(SpeedTier.SLOW)
        self.assertEqual(p.download_concurrency, 2)
        self.assertEqual(p.upload_concurrency, 1)
        self.assertEqual(p.download_payload_size, 10 * 1024 * 1024)
        self.assertEqual(p.download_percentile, 0.5)

    def test_monotonic_across_tiers(self):
        params = [adapt_parameters(t) for t in SpeedTier]
        for lower, higher in zip(params, params[1:]):
            self.assertLessEqual(lower.download_payload_size, higher.download_payload_size)
            self.assertLessEqual(lower.upload_payload_size, higher.upload_payload_size)
            self.assertLessEqual(lower.download_concurrency, higher.download_concurrency)
            self.assertLessEqual(lower.upload_concurrency, higher.upload_concurrency)
            self.assertLessEqual(lower.buffer_size, higher.buffer_size)
            self.assertLessEqual(lower.download_percentile, higher.download_percentile)
            self.assertLessEqual(lower.upload_percentile, higher.upload_percentile)
            self.assertLessEqual(lower.latency_trim_fraction, higher.latency_trim_fraction)

    def test_deterministic(self):
        self.assertEqual(adapt_parameters(SpeedTier.FAST), adapt_parameters(SpeedTier.FAST))

    def test_percentile_direction(self):
        p = adapt_parameters(SpeedTier.FAST)
        self.assertEqual(p.percentile("download"), 0.75)
        self.assertEqual(p.percentile("upload"), 0.70)
        with self.assertRaises(ValueError):
            p.percentile("both")

    def test_to_dict(self):
        d = adapt_parameters(SpeedTier.MODERATE).to_dict()
        self.assertEqual(d["download_concurrency"], 3)
        self.assertIn("latency_trim_fraction", d)


class TestFallbackSpeeds(unittest.TestCase):
    def test_tables_complete(self):
        for direction in ("download", "upload"):
            self.assertEqual(set(FALLBACK_SPEEDS[direction]), set(SpeedTier))

    def test_values(self):
        self.assertEqual(fallback_speed(SpeedTier.FAST, "download"), 100.0)
        self.assertEqual(fallback_speed(SpeedTier.FAST, "upload"), 50.0)

    def test_unknown_direction(self):
        with self.assertRaises(ValueError):
            fallback_speed(SpeedTier.FAST, "ping")


if __name__ == "__main__":
    unittest.main()
