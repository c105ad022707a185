#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for ValidationScorer
"""

import os
import sys
import struct
import unittest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ransom_recovery.analysis.file_signatures import OLE_MAGIC
from ransom_recovery.key_testers.validation_scorer import (
    ENTROPY_RANGE,
    MAX_SCORE,
    REPETITION_THRESHOLD,
    ValidationScorer,
    has_valid_padding,
)

TEXT = b"".join(
    b"Item %d of the quarterly planning minutes: budget line %d was approved.\n" % (i, i * 37)
    for i in range(20)
)
PDF = b"%PDF-1.4\n" + TEXT


def ole_document(body=b""):
    """Compound-file header, one FAT sector, then the document stream"""
    header = (
        OLE_MAGIC + b"\x00" * 16
        + struct.pack("<HHHHH", 0x3E, 3, 0xFFFE, 9, 6) + b"\x00" * 6
        + struct.pack("<9I", 0, 1, 1, 0, 4096, 2, 1, 0xFFFFFFFE, 0)
        + struct.pack("<I", 0) + b"\xff\xff\xff\xff" * 108
    )
    fat = struct.pack("<4I", 0xFFFFFFFD, 0xFFFFFFFE, 0xFFFFFFFE, 0xFFFFFFFE) + b"\xff" * 496
    return header + fat + body


def pkcs7(data):
    n = 16 - len(data) % 16
    return data + bytes([n]) * n


class TestValidationScorer(unittest.TestCase):

    def setUp(self):
        self.scorer = ValidationScorer()

    def test_empty_sample(self):
        result = self.scorer.score(b"")
        self.assertFalse(result.accepted)
        self.assertEqual(result.confidence, 0.0)

    def test_pure_function(self):
        data = os.urandom(1024)
        self.assertEqual(self.scorer.score(data), self.scorer.score(data))
        self.assertEqual(self.scorer.score(TEXT), ValidationScorer().score(TEXT))

    def test_random_data_rejected(self):
        for _ in range(20):
            result = self.scorer.score(os.urandom(1024))
            self.assertFalse(result.accepted)
            self.assertLess(result.confidence, 0.5)

    def test_plain_text_accepted(self):
        data = TEXT[:1000]
        result = self.scorer.score(data)
        self.assertTrue(result.accepted)
        self.assertIsNone(result.matched_signature)
        self.assertAlmostEqual(result.confidence, 0.55 / MAX_SCORE, places=6)

    def test_pdf_accepted_with_signature(self):
        result = self.scorer.score(PDF[:1000])
        self.assertTrue(result.accepted)
        self.assertEqual(result.matched_signature, "pdf")
        self.assertAlmostEqual(result.confidence, 0.95 / MAX_SCORE, places=6)

    def test_ole_header_accepted(self):
        document = ole_document(TEXT)
        self.assertEqual(len(document), 1024 + len(TEXT))
        result = self.scorer.score(document[:1024])
        self.assertLess(result.entropy, ENTROPY_RANGE[0])
        self.assertGreater(result.repetition_ratio, REPETITION_THRESHOLD)
        self.assertEqual(result.matched_signature, "ole")
        self.assertTrue(result.accepted)
        self.assertAlmostEqual(result.confidence, 0.65 / MAX_SCORE, places=6)

    def test_structure_leniency_needs_signature(self):
        sample = b"\x00" * len(OLE_MAGIC) + ole_document()[len(OLE_MAGIC):1024]
        result = self.scorer.score(sample)
        self.assertIsNone(result.matched_signature)
        self.assertFalse(result.accepted)
        self.assertEqual(result.confidence, 0.0)

    def test_padding_bonus(self):
        result = self.scorer.score(pkcs7(PDF[:50]))
        self.assertTrue(result.padding_valid)
        self.assertAlmostEqual(result.confidence, 1.0)

    def test_repetition_penalty(self):
        result = self.scorer.score(b"A" * 1024)
        self.assertFalse(result.accepted)
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.repetition_ratio, 1.0 - 1 / 64)

    def test_confidence_is_clipped(self):
        for data in (b"\x00" * 4096, os.urandom(64), TEXT, pkcs7(PDF)):
            confidence = self.scorer.score(data).confidence
            self.assertGreaterEqual(confidence, 0.0)
            self.assertLessEqual(confidence, 1.0)

    def test_threshold(self):
        strict = ValidationScorer(threshold=0.95)
        self.assertEqual(strict.threshold, 0.95)
        self.assertFalse(strict.score(TEXT[:1000]).accepted)
        self.assertTrue(strict.score(pkcs7(PDF[:50])).accepted)

    def test_reasons_and_dict(self):
        result = self.scorer.score(PDF[:1000])
        self.assertTrue(any("pdf" in reason for reason in result.reasons))
        data = result.to_dict()
        self.assertEqual(data["matched_signature"], "pdf")
        self.assertIsInstance(data["reasons"], list)


class TestPadding(unittest.TestCase):

    def test_has_valid_padding(self):
        self.assertTrue(has_valid_padding(b"x" * 15 + b"\x01"))
        self.assertTrue(has_valid_padding(b"\x10" * 16))
        self.assertTrue(has_valid_padding(b"x" * 13 + b"\x03\x03\x03"))
        self.assertFalse(has_valid_padding(b"x" * 16))
        self.assertFalse(has_valid_padding(b"\x00" * 16))
        self.assertFalse(has_valid_padding(b"x" * 13 + b"\x02\x03\x03"))
        self.assertFalse(has_valid_padding(b"x" * 15))
        self.assertFalse(has_valid_padding(b""))


if __name__ == '__main__':
    unittest.main()
