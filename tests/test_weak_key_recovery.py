#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the bounded weak-key heuristics
"""

import os
import sys
import struct
import hashlib
import unittest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ransom_recovery.key_testers.weak_key_recovery import (
    WEAK_KEY_CONFIDENCE_CAP,
    FactorizationHeuristic,
    candidate_numbers,
    iter_weak_keys,
    known_factor_keys,
    reconstruct_key,
    weak_seed_keys,
)


class TestCandidateNumbers(unittest.TestCase):

    def test_reads_big_endian_words(self):
        header = struct.pack(">6I", 5, 70000, 0xFFFFFFFF, 123456, 99999, 1234)
        # Offsets 16 and 20 are past len - 8; 5 and 0xFFFFFFFF are out of range
        self.assertEqual(candidate_numbers(header), [70000, 123456])

    def test_adds_reference_times(self):
        header = struct.pack(">4I", 70000, 70000, 0, 0)
        numbers = candidate_numbers(header, reference_time=1700000000)
        self.assertEqual(numbers, [70000, 1700000000, 1700000000 - 86400, 1700000000 - 604800])

    def test_limit(self):
        header = struct.pack(">16I", *range(2000, 2016))
        self.assertEqual(len(candidate_numbers(header, 1700000000, limit=3)), 3)

    def test_only_first_64_bytes_are_read(self):
        header = b"\x00" * 64 + struct.pack(">4I", 5000, 6000, 7000, 8000)
        self.assertEqual(candidate_numbers(header), [])

    def test_empty_header(self):
        self.assertEqual(candidate_numbers(b""), [])


class TestFactorizationHeuristic(unittest.TestCase):

    def setUp(self):
        self.heuristic = FactorizationHeuristic()

    def test_known_factor(self):
        result = self.heuristic.factor(65537 * 3)
        self.assertEqual(result.method, "known_factor")
        self.assertEqual((result.p, result.q), (65537, 3))
        self.assertTrue(result.usable)

    def test_common_factor(self):
        result = self.heuristic.factor(2 * 1000003)
        self.assertEqual(result.method, "common_factor")
        self.assertEqual((result.p, result.q), (2, 1000003))

    def test_trial_division(self):
        result = self.heuristic.factor(1009 * 1013)
        self.assertEqual(result.method, "trial_division")
        self.assertEqual((result.p, result.q), (1009, 1013))

    def test_prime_is_not_usable(self):
        result = self.heuristic.factor(65537)
        self.assertEqual(result.method, "trial_division")
        self.assertFalse(result.usable)

    def test_large_values_are_declined(self):
        result = self.heuristic.factor(1000003 * 1000033)
        self.assertEqual(result.method, "declined")
        self.assertFalse(result.usable)

    def test_tiny_values_are_declined(self):
        self.assertEqual(self.heuristic.factor(3).method, "declined")


class TestKeyReconstruction(unittest.TestCase):

    def test_reconstruct_key(self):
        d = pow(65537, -1, 1008 * 1012)
        expected = hashlib.sha256(d.to_bytes(32, "big")).digest()
        self.assertEqual(reconstruct_key(1009, 1013), expected)
        self.assertEqual(reconstruct_key(1009, 1013, 16), expected[:16])

    def test_no_inverse(self):
        # phi is a multiple of 65537
        self.assertIsNone(reconstruct_key(65538, 3))

    def test_degenerate_phi(self):
        self.assertIsNone(reconstruct_key(2, 2))

    def test_known_factor_keys(self):
        keys = known_factor_keys()
        self.assertEqual(len(keys), 10)
        self.assertEqual(keys[0], ("sha256(65537)", hashlib.sha256(b"65537").digest()))
        self.assertEqual(keys[1][0], "sha256(131074)")

    def test_weak_seed_keys(self):
        self.assertEqual(weak_seed_keys(["tesla_recovery"]),
                         [("sha256(tesla_recovery)", hashlib.sha256(b"tesla_recovery").digest())])

    def test_priors_are_capped(self):
        header = struct.pack(">4I", 65537 * 3, 1009 * 1013, 0, 0)
        keys = list(iter_weak_keys(header, 1700000000, 32, seeds=["weak_ec_key"]))
        self.assertTrue(keys)
        for key, label, prior in keys:
            self.assertEqual(len(key), 32)
            self.assertLessEqual(prior, WEAK_KEY_CONFIDENCE_CAP)
        labels = [label for _, label, _ in keys]
        self.assertTrue(labels[0].startswith("rsa_d("))
        self.assertIn("sha256(weak_ec_key)", labels)


if __name__ == '__main__':
    unittest.main()
