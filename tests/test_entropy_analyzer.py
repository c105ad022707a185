#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the byte-window statistics in analysis.entropy_analyzer
"""

import os
import sys
import unittest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ransom_recovery.analysis.entropy_analyzer import (
    analyze_window,
    block_entropies,
    block_repetition_ratio,
    calculate_entropy,
    chi_square_uniformity,
    longest_byte_run,
    looks_uniform,
    match_signature,
)
from ransom_recovery.analysis.file_signatures import printable_ratio

TEXT = (b"The quick brown fox jumps over the lazy dog while the recovery "
        b"engine reads another window of plain English text.\n") * 20


class TestEntropy(unittest.TestCase):
    """Shannon entropy bounds"""

    def test_empty_and_constant_windows_are_zero(self):
        self.assertEqual(calculate_entropy(b""), 0.0)
        self.assertEqual(calculate_entropy(b"\x00" * 100), 0.0)
        self.assertEqual(calculate_entropy(b"A"), 0.0)

    def test_uniform_window_is_eight_bits(self):
        self.assertAlmostEqual(calculate_entropy(bytes(range(256))), 8.0, places=9)
        self.assertAlmostEqual(calculate_entropy(bytes(range(256)) * 4), 8.0, places=9)

    def test_entropy_is_bounded(self):
        for data in (os.urandom(4096), TEXT, b"ab" * 50, bytes(range(10))):
            entropy = calculate_entropy(data)
            self.assertGreaterEqual(entropy, 0.0)
            self.assertLessEqual(entropy, 8.0)

    def test_random_data_is_near_maximum(self):
        self.assertGreater(calculate_entropy(os.urandom(65536)), 7.9)

    def test_two_symbols_give_one_bit(self):
        self.assertAlmostEqual(calculate_entropy(b"ab" * 64), 1.0, places=9)

    def test_block_entropies(self):
        self.assertEqual(block_entropies(bytes(512), 256), [0.0, 0.0])
        self.assertEqual(len(block_entropies(os.urandom(600), 256)), 3)


class TestWindowStatistics(unittest.TestCase):

    def test_printable_ratio(self):
        self.assertEqual(printable_ratio(b""), 0.0)
        self.assertEqual(printable_ratio(b"hello\r\n\t"), 1.0)
        self.assertEqual(printable_ratio(b"\x00\x01ab"), 0.5)

    def test_block_repetition_ratio(self):
        self.assertEqual(block_repetition_ratio(b"A" * 16), 0.0)
        self.assertAlmostEqual(block_repetition_ratio(b"A" * 64), 0.75)
        self.assertEqual(block_repetition_ratio(bytes(range(64))), 0.0)
        # Trailing partial block is ignored
        self.assertAlmostEqual(block_repetition_ratio(b"B" * 32 + b"xyz"), 0.5)

    def test_chi_square_uniformity(self):
        self.assertEqual(chi_square_uniformity(b""), 0.0)
        self.assertAlmostEqual(chi_square_uniformity(bytes(range(256)) * 8), 0.0)
        self.assertTrue(looks_uniform(bytes(range(256)) * 8))
        self.assertFalse(looks_uniform(b"a" * 2048))
        self.assertFalse(looks_uniform(b""))

    def test_longest_byte_run(self):
        self.assertEqual(longest_byte_run(b""), 0)
        self.assertEqual(longest_byte_run(b"aaabbbbc"), 4)
        self.assertEqual(longest_byte_run(b"\x00" * 5000, limit=1000), 1000)

    def test_match_signature(self):
        self.assertEqual(match_signature(b"%PDF-1.7\n").name, "pdf")
        self.assertIsNone(match_signature(b"no magic here"))


class TestAnalyzeWindow(unittest.TestCase):

    def test_random_window_looks_encrypted(self):
        window = analyze_window(os.urandom(4096))
        self.assertTrue(window.looks_encrypted)
        self.assertIsNone(window.signature)
        self.assertEqual(window.size, 4096)

    def test_text_window_does_not_look_encrypted(self):
        window = analyze_window(TEXT)
        self.assertFalse(window.looks_encrypted)
        self.assertGreater(window.text_ratio, 0.99)

    def test_signature_wins_over_entropy(self):
        window = analyze_window(b"%PDF-1.4\n" + os.urandom(4096))
        self.assertEqual(window.signature, "pdf")
        self.assertFalse(window.looks_encrypted)

    def test_short_window_uses_its_own_ceiling(self):
        # 64 distinct bytes reach the 6-bit ceiling of a 64-byte window
        self.assertTrue(analyze_window(bytes(range(64))).looks_encrypted)
        self.assertFalse(analyze_window(b"a" * 64).looks_encrypted)
        self.assertFalse(analyze_window(b"").looks_encrypted)

    def test_entropy_uses_leading_window(self):
        window = analyze_window(b"\x00" * 256 + os.urandom(4096))
        self.assertEqual(window.entropy, 0.0)
        self.assertGreater(window.full_entropy, 7.0)


if __name__ == '__main__':
    unittest.main()
