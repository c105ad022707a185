#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Entropy and Signature Analyzer

Byte-window statistics used to tell decrypted content apart from ciphertext:
Shannon entropy, printable-text ratio, 16-byte block repetition, chi-square
uniformity and magic-byte detection. All functions are pure and operate on
the window they are given, never on a whole file.
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .file_signatures import FileFormat, detect_format, printable_ratio

logger = logging.getLogger("EntropyAnalyzer")

# Data with entropy above this is most likely still encrypted or compressed
ENCRYPTED_ENTROPY_THRESHOLD = 7.5


def _histogram(data: bytes) -> np.ndarray:
    return np.bincount(np.frombuffer(data, dtype=np.uint8), minlength=256)


def calculate_entropy(data: bytes) -> float:
    """
    Calculate Shannon entropy of data

    Args:
        data: Bytes data to analyze

    Returns:
        Shannon entropy value (0.0 to 8.0)
    """
    if not data:
        return 0.0

    counts = _histogram(data)
    probabilities = counts[counts > 0] / len(data)
    entropy = float(-np.sum(probabilities * np.log2(probabilities)))

    # A single-valued window yields -0.0
    return max(0.0, entropy)


def block_repetition_ratio(data: bytes, block_size: int = 16) -> float:
    """Share of whole blocks that duplicate an earlier block"""
    total = len(data) // block_size
    if total < 2:
        return 0.0
    blocks = {data[i:i + block_size] for i in range(0, total * block_size, block_size)}
    return 1.0 - len(blocks) / total


def chi_square_uniformity(data: bytes, max_bytes: int = 2048) -> float:
    """Chi-square statistic of the byte histogram against a uniform distribution"""
    sample = data[:max_bytes]
    if not sample:
        return 0.0
    expected = len(sample) / 256
    diff = _histogram(sample) - expected
    return float(np.sum(diff * diff) / expected)


def looks_uniform(data: bytes, threshold: float = 300.0) -> bool:
    """True when the byte distribution is close to uniform (ciphertext-like)"""
    return bool(data) and chi_square_uniformity(data) < threshold


def longest_byte_run(data: bytes, limit: int = 1000) -> int:
    """Length of the longest run of a single repeated byte in the first `limit` bytes"""
    window = data[:limit]
    longest = current = 0
    previous = None
    for byte in window:
        if byte == previous:
            current += 1
        else:
            current = 1
            previous = byte
        longest = max(longest, current)
    return longest


def match_signature(data: bytes) -> Optional[FileFormat]:
    return detect_format(data)


def block_entropies(data: bytes, block_size: int = 256) -> List[float]:
    """Per-block entropy profile of a window"""
    return [
        calculate_entropy(data[i:i + block_size])
        for i in range(0, len(data), block_size)
    ]


@dataclass(frozen=True)
class WindowAnalysis:
    """Statistics for one byte window"""
    size: int
    entropy: float
    full_entropy: float
    text_ratio: float
    repetition_ratio: float
    signature: Optional[str]
    uniform: bool

    @property
    def looks_encrypted(self) -> bool:
        if self.signature is not None:
            return False
        if self.size >= 1024:
            return self.full_entropy > ENCRYPTED_ENTROPY_THRESHOLD
        # Short windows cannot reach 8 bits/byte; compare against their ceiling
        max_entropy = math.log2(self.size) if self.size > 1 else 0.0
        return self.full_entropy >= 0.9 * max_entropy > 0


def analyze_window(data: bytes, entropy_window: int = 256, text_window: int = 1024) -> WindowAnalysis:
    """
    Compute every window statistic at once

    Args:
        data: Window to analyze
        entropy_window: Number of leading bytes used for entropy
        text_window: Number of leading bytes used for the printable ratio

    Returns:
        WindowAnalysis record
    """
    signature = match_signature(data)
    return WindowAnalysis(
        size=len(data),
        entropy=calculate_entropy(data[:entropy_window]),
        full_entropy=calculate_entropy(data),
        text_ratio=printable_ratio(data[:text_window]),
        repetition_ratio=block_repetition_ratio(data),
        signature=signature.name if signature else None,
        uniform=looks_uniform(data),
    )
