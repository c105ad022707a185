#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Weak Key Recovery Heuristics

Bounded stand-ins for the "factorization" and "EC key recovery" attacks used
against early TeslaCrypt/AlphaCrypt builds. Nothing here factors real RSA or
EC moduli: small numbers lifted from the file header are checked against a
table of known weak factors, a handful of small primes and, below 2**32, a
capped trial division. Every key produced is a low-prior guess and is capped
at WEAK_KEY_CONFIDENCE_CAP.
"""

import math
import struct
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger("WeakKeyRecovery")

WEAK_KEY_CONFIDENCE_CAP = 0.3

PUBLIC_EXPONENT = 65537

KNOWN_WEAK_FACTORS = (65537, 3, 17, 257, 641, 6700417)
COMMON_SMALL_PRIMES = (2, 3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47)
FACTOR_VARIATION_BASES = (
    65537, 3, 17, 257, 641, 6700417, 4294967297, 18446744073709551617,
)

TRIAL_DIVISION_CEILING = 2 ** 32
MAX_TRIAL_DIVISORS = 1000000

# Offsets relative to the reference time, in seconds (now, 1 day, 1 week)
_TIME_OFFSETS = (0, 86400, 604800)


@dataclass(frozen=True)
class FactorizationResult:
    """Outcome of one bounded factorization attempt"""
    n: int
    p: Optional[int]
    q: Optional[int]
    method: str

    @property
    def usable(self) -> bool:
        return bool(self.p and self.q and self.p > 1 and self.q > 1)


def candidate_numbers(header: bytes, reference_time: Optional[int] = None,
                      limit: int = 16) -> List[int]:
    """
    Pull numbers worth factoring out of a file header

    Args:
        header: Leading bytes of the encrypted file
        reference_time: Unix time the file was encrypted (usually its mtime)
        limit: Maximum number of values returned

    Returns:
        Ordered, de-duplicated list of integers
    """
    numbers = []
    window = header[:64]
    for i in range(0, max(0, len(window) - 8), 4):
        value, = struct.unpack_from(">I", window, i)
        if 1000 < value < 0xFFFFFFFF:
            numbers.append(value)

    if reference_time is not None:
        numbers.extend(int(reference_time) - offset for offset in _TIME_OFFSETS)

    seen = set()
    unique = []
    for value in numbers:
        if value not in seen:
            seen.add(value)
            unique.append(value)
    return unique[:limit]


class FactorizationHeuristic:
    """Cheap factor search that declines anything it cannot finish quickly"""

    def __init__(self, ceiling: int = TRIAL_DIVISION_CEILING,
                 max_divisors: int = MAX_TRIAL_DIVISORS):
        self.ceiling = ceiling
        self.max_divisors = max_divisors

    def factor(self, n: int) -> FactorizationResult:
        if n < 4:
            return FactorizationResult(n, None, None, "declined")

        for factor in KNOWN_WEAK_FACTORS:
            if n != factor and n % factor == 0:
                return FactorizationResult(n, factor, n // factor, "known_factor")

        for prime in COMMON_SMALL_PRIMES:
            if n != prime and n % prime == 0:
                return FactorizationResult(n, prime, n // prime, "common_factor")

        if n >= self.ceiling:
            logger.debug(f"Declining factorization of {n.bit_length()}-bit value")
            return FactorizationResult(n, None, None, "declined")

        limit = min(math.isqrt(n), 53 + 2 * self.max_divisors)
        for divisor in range(53, limit + 1, 2):
            if n % divisor == 0:
                return FactorizationResult(n, divisor, n // divisor, "trial_division")

        # Prime, or no factor inside the divisor budget
        return FactorizationResult(n, None, None, "trial_division")


def reconstruct_key(p: int, q: int, key_length: int = 32) -> Optional[bytes]:
    """Derive an AES key from the private exponent of a toy RSA pair (p, q)"""
    phi = (p - 1) * (q - 1)
    if phi < 2:
        return None
    try:
        d = pow(PUBLIC_EXPONENT, -1, phi)
    except ValueError:
        return None
    width = max(32, (d.bit_length() + 7) // 8)
    return hashlib.sha256(d.to_bytes(width, "big")).digest()[:key_length]


def known_factor_keys(limit: int = 10) -> List[Tuple[str, bytes]]:
    """sha256 over the decimal form of the published weak-factor variations"""
    variations = []
    for factor in FACTOR_VARIATION_BASES:
        variations.extend((factor, factor * 2, factor + 1))
    return [
        (f"sha256({value})", hashlib.sha256(str(value).encode()).digest())
        for value in variations[:limit]
    ]


def weak_seed_keys(seeds: Sequence[str]) -> List[Tuple[str, bytes]]:
    return [(f"sha256({seed})", hashlib.sha256(seed.encode()).digest()) for seed in seeds]


def iter_weak_keys(header: bytes, reference_time: Optional[int], key_length: int,
                   seeds: Sequence[str] = (), max_numbers: int = 16,
                   heuristic: Optional[FactorizationHeuristic] = None
                   ) -> Iterator[Tuple[bytes, str, float]]:
    """
    Yield (key, label, prior) for every weak-key guess

    Factorization hits come first, then the known-factor table, then the
    campaign's weak seeds. Priors never exceed WEAK_KEY_CONFIDENCE_CAP.
    """
    heuristic = heuristic or FactorizationHeuristic()

    for n in candidate_numbers(header, reference_time, max_numbers):
        result = heuristic.factor(n)
        if not result.usable:
            continue
        key = reconstruct_key(result.p, result.q, key_length)
        if key:
            label = f"rsa_d({result.p}*{result.q}, {result.method})"
            yield key, label, min(0.3, WEAK_KEY_CONFIDENCE_CAP)

    for label, digest in known_factor_keys():
        yield digest[:key_length], label, min(0.25, WEAK_KEY_CONFIDENCE_CAP)

    for label, digest in weak_seed_keys(seeds):
        yield digest[:key_length], label, min(0.2, WEAK_KEY_CONFIDENCE_CAP)
