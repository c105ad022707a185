#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Validation Scorer

Scores a trial plaintext sample on how much it looks like real content
rather than ciphertext. The score is a pure function of the sample bytes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..analysis.entropy_analyzer import analyze_window

logger = logging.getLogger("ValidationScorer")

ENTROPY_RANGE = (3.0, 7.5)

WEIGHT_ENTROPY_IN_RANGE = 0.25
WEIGHT_ENTROPY_OUT_OF_RANGE = -0.20
WEIGHT_MAGIC = 0.40
WEIGHT_TEXT = 0.30
WEIGHT_REPETITION = -0.40
WEIGHT_PADDING = 0.10

# Sum of every positive weight
MAX_SCORE = WEIGHT_ENTROPY_IN_RANGE + WEIGHT_MAGIC + WEIGHT_TEXT + WEIGHT_PADDING

TEXT_RATIO_THRESHOLD = 0.7
REPETITION_THRESHOLD = 0.5


def has_valid_padding(data: bytes, block_size: int = 16) -> bool:
    """True when data ends in well-formed PKCS#7 padding"""
    if not data or len(data) % block_size:
        return False
    pad = data[-1]
    if not 1 <= pad <= block_size:
        return False
    return data[-pad:] == bytes([pad]) * pad


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    confidence: float
    entropy: float = 0.0
    matched_signature: Optional[str] = None
    text_ratio: float = 0.0
    repetition_ratio: float = 0.0
    padding_valid: bool = False
    reasons: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "confidence": round(self.confidence, 4),
            "entropy": round(self.entropy, 4),
            "matched_signature": self.matched_signature,
            "text_ratio": round(self.text_ratio, 4),
            "repetition_ratio": round(self.repetition_ratio, 4),
            "padding_valid": self.padding_valid,
            "reasons": list(self.reasons),
        }


class ValidationScorer:
    """
    Weighted plaintext-likelihood score with a fixed acceptance threshold
    """

    def __init__(self, threshold: float = 0.5):
        self._threshold = float(threshold)

    @property
    def threshold(self) -> float:
        return self._threshold

    def score(self, data: bytes) -> ValidationResult:
        """
        Score a decrypted sample

        Args:
            data: Plaintext sample from a trial decryption

        Returns:
            ValidationResult with a confidence in [0, 1]
        """
        if not data:
            return ValidationResult(False, 0.0, reasons=("empty sample",))

        window = analyze_window(data)
        padding_valid = has_valid_padding(data)
        total = 0.0
        reasons = []

        # Container headers (OLE sector tables, zero-filled fields) are low
        # entropy and repetitive by construction
        structured = window.signature is not None

        low, high = ENTROPY_RANGE
        if low <= window.entropy <= high:
            total += WEIGHT_ENTROPY_IN_RANGE
            reasons.append(f"entropy {window.entropy:.2f} in range")
        elif structured and window.entropy < low:
            total += WEIGHT_ENTROPY_IN_RANGE
            reasons.append(f"entropy {window.entropy:.2f} consistent with {window.signature} header")
        else:
            total += WEIGHT_ENTROPY_OUT_OF_RANGE
            reasons.append(f"entropy {window.entropy:.2f} out of range")

        if window.signature:
            total += WEIGHT_MAGIC
            reasons.append(f"{window.signature} signature")

        if window.text_ratio > TEXT_RATIO_THRESHOLD:
            total += WEIGHT_TEXT
            reasons.append(f"text ratio {window.text_ratio:.2f}")

        if window.repetition_ratio > REPETITION_THRESHOLD:
            if structured:
                reasons.append(f"block repetition {window.repetition_ratio:.2f} in {window.signature} header")
            else:
                total += WEIGHT_REPETITION
                reasons.append(f"block repetition {window.repetition_ratio:.2f}")

        if padding_valid:
            total += WEIGHT_PADDING
            reasons.append("valid padding")

        confidence = min(1.0, max(0.0, total / MAX_SCORE))
        return ValidationResult(
            accepted=confidence >= self._threshold,
            confidence=confidence,
            entropy=window.entropy,
            matched_signature=window.signature,
            text_ratio=window.text_ratio,
            repetition_ratio=window.repetition_ratio,
            padding_valid=padding_valid,
            reasons=tuple(reasons),
        )
