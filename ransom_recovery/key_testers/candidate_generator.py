#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Candidate Key Generator

Builds the ordered list of AES keys tried against an encrypted file. Keys come
from five strategies, in decreasing order of prior likelihood:

    StaticKnown      leaked raw keys, campaign passphrases, leaked EC keys
    DirectHash       hashes of each identifier (victim ID, Tox ID, ...)
    KDF              PBKDF2 over ordered identifier pairs
    XORCombine       combined hashes, identifier variations, derived variants
    WeakKeyRecovery  bounded factorization / weak seed guesses (capped prior)

Generation is deterministic and does no file I/O: the header bytes and the
reference time are passed in by the caller.
"""

import hashlib
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..campaigns import CampaignProfile, get_campaign
from .weak_key_recovery import FactorizationHeuristic, iter_weak_keys

logger = logging.getLogger("CandidateKeyGenerator")

VALID_KEY_LENGTHS = (16, 24, 32)

XOR_MASKS = (0x5A, 0xA5, 0x3C, 0xC3, 0x0F, 0xF0)
ROTATIONS = (1, 2, 4)


class KeySource(Enum):
    """Strategy that produced a candidate key"""
    STATIC_KNOWN = "StaticKnown"
    DIRECT_HASH = "DirectHash"
    KDF = "KDF"
    XOR_COMBINE = "XORCombine"
    WEAK_KEY_RECOVERY = "WeakKeyRecovery"


PRIORS = {
    KeySource.STATIC_KNOWN: 0.9,
    KeySource.DIRECT_HASH: 0.7,
    KeySource.KDF: 0.6,
    KeySource.XOR_COMBINE: 0.4,
    KeySource.WEAK_KEY_RECOVERY: 0.3,
}


@dataclass(frozen=True)
class CandidateKey:
    """One key to try, with where it came from"""
    key: bytes
    source: KeySource
    prior: float
    label: str

    @property
    def fingerprint(self) -> str:
        # Never log a whole key
        return self.key[:4].hex() + "..."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "prior": self.prior,
            "label": self.label,
            "key_length": len(self.key),
            "fingerprint": self.fingerprint,
        }


def fit_key(material: bytes, key_length: int) -> bytes:
    """Truncate, or expand by cyclic repetition, to exactly key_length bytes"""
    if not material:
        raise ValueError("Cannot fit an empty key")
    if len(material) >= key_length:
        return material[:key_length]
    repeats = -(-key_length // len(material))
    return (material * repeats)[:key_length]


def prepare_passphrase_key(passphrase: str, key_length: int) -> bytes:
    """MD5 for AES-128, SHA-256 truncated for AES-192, SHA-256 for AES-256"""
    data = passphrase.encode("utf-8")
    if key_length == 16:
        return hashlib.md5(data).digest()
    return hashlib.sha256(data).digest()[:key_length]


def _sha256(data: Union[str, bytes]) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def _hexdigest(name: str, text: str) -> str:
    return hashlib.new(name, text.encode("utf-8")).hexdigest()


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def _rotate_left(data: bytes, bits: int) -> bytes:
    width = len(data) * 8
    value = int.from_bytes(data, "big")
    value = ((value << bits) | (value >> (width - bits))) & ((1 << width) - 1)
    return value.to_bytes(len(data), "big")


def _parse_hex(text: str) -> Optional[bytes]:
    value = text.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def _short(text: str, width: int = 16) -> str:
    return text if len(text) <= width else text[:width] + "..."


def _hyphenate(text: str) -> str:
    return "-".join(text[i:i + 8] for i in range(0, len(text), 8))


# Each variation receives the identifier and its position in the identifier list
IDENTIFIER_VARIATIONS: Tuple[Tuple[str, Callable[[str, int], str]], ...] = (
    ("lower", lambda s, i: s.lower()),
    ("upper", lambda s, i: s.upper()),
    ("truncated", lambda s, i: s[:32] if i == 0 else s[:16]),
    ("no_separators", lambda s, i: s.replace("-", "").replace("_", "")),
    ("hyphenated", lambda s, i: _hyphenate(s)),
    ("half", lambda s, i: s[:len(s) // 2]),
    ("reversed", lambda s, i: s[::-1]),
    ("even_chars", lambda s, i: s[::2]),
    ("odd_chars", lambda s, i: s[1::2]),
    ("first16_last16", lambda s, i: s[:16] + s[-16:]),
)


def normalize_identifiers(identifiers: Sequence[str],
                          profile: Optional[CampaignProfile] = None) -> List[str]:
    """Strip, drop empties, append the campaign's published IDs, de-duplicate"""
    values = [str(i).strip() for i in identifiers if i is not None]
    if profile:
        values.extend(profile.known_identifiers)
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class CandidateKeyGenerator:
    """
    Deterministic, bounded candidate key generation
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.max_candidates = int(config.get("max_candidates", 512))
        self.kdf_iterations = int(config.get("kdf_iterations", 10000))
        self.kdf_low_iterations = int(config.get("kdf_low_iterations", 1000))
        self.weak_key_max_numbers = int(config.get("weak_key_max_numbers", 16))
        self.heuristic = FactorizationHeuristic()

    def generate(self, identifiers: Sequence[str] = (), key_length: Optional[int] = None,
                 campaign: Union[CampaignProfile, str, None] = None,
                 header: bytes = b"", reference_time: Optional[int] = None) -> List[CandidateKey]:
        """
        Generate the ordered candidate list

        Args:
            identifiers: Victim/attacker identifier strings
            key_length: AES key length in bytes (defaults to the campaign's)
            campaign: Campaign profile or tag
            header: Leading bytes of the encrypted file (weak-key recovery only)
            reference_time: Unix time used by weak-key recovery

        Returns:
            List of unique CandidateKey, at most max_candidates long
        """
        candidates = list(self.iter_candidates(identifiers, key_length, campaign,
                                               header, reference_time))
        logger.debug(f"Generated {len(candidates)} candidate keys")
        return candidates

    def iter_candidates(self, identifiers: Sequence[str] = (), key_length: Optional[int] = None,
                        campaign: Union[CampaignProfile, str, None] = None,
                        header: bytes = b"", reference_time: Optional[int] = None
                        ) -> Iterator[CandidateKey]:
        profile = campaign if isinstance(campaign, CampaignProfile) else get_campaign(campaign)
        key_length = key_length or profile.key_length
        if key_length not in VALID_KEY_LENGTHS:
            raise ValueError(f"Unsupported AES key length: {key_length}")

        ids = normalize_identifiers(identifiers, profile)
        strategies = (
            (KeySource.STATIC_KNOWN, self._static_known(profile, key_length)),
            (KeySource.DIRECT_HASH, self._direct_hash(ids, key_length)),
            (KeySource.KDF, self._kdf(ids, key_length)),
            (KeySource.XOR_COMBINE, self._xor_combine(ids, profile, key_length)),
            (KeySource.WEAK_KEY_RECOVERY, self._weak_keys(profile, key_length, header, reference_time)),
        )

        seen = set()
        emitted = 0
        for source, produced in strategies:
            for key, label, prior in produced:
                if emitted >= self.max_candidates:
                    return
                if len(key) != key_length or key in seen:
                    continue
                seen.add(key)
                emitted += 1
                yield CandidateKey(key, source, min(prior, PRIORS[source]), label)

    def _static_known(self, profile: CampaignProfile, key_length: int):
        prior = PRIORS[KeySource.STATIC_KNOWN]
        for hex_key in profile.leaked_keys_hex:
            raw = _parse_hex(hex_key)
            if raw:
                yield fit_key(raw, key_length), f"leaked_key({_short(hex_key)})", prior

        for passphrase in profile.passphrases:
            yield prepare_passphrase_key(passphrase, key_length), f"passphrase({passphrase})", prior

        for hex_key in profile.leaked_private_keys_hex:
            raw = _parse_hex(hex_key)
            if raw:
                yield _sha256(raw)[:key_length], f"sha256(ec_private_key({_short(hex_key)}))", prior

    def _direct_hash(self, ids: List[str], key_length: int):
        prior = PRIORS[KeySource.DIRECT_HASH]
        for ident in ids:
            name = _short(ident)
            yield _sha256(ident)[:key_length], f"sha256({name})", prior
            yield _sha256(_sha256(ident))[:key_length], f"sha256(sha256({name}))", prior
            yield _sha256(_hexdigest("md5", ident))[:key_length], f"sha256(md5hex({name}))", prior
            yield _sha256(_hexdigest("sha1", ident))[:key_length], f"sha256(sha1hex({name}))", prior

            raw = _parse_hex(ident)
            if raw and len(raw) >= key_length:
                yield raw[:key_length], f"hex({name})", prior

    def _pbkdf2(self, secret: str, salt: str, iterations: int, key_length: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=key_length,
            salt=salt.encode("utf-8"),
            iterations=iterations,
        )
        return kdf.derive(secret.encode("utf-8"))

    def _kdf(self, ids: List[str], key_length: int):
        prior = PRIORS[KeySource.KDF]
        for i, a in enumerate(ids):
            for j, b in enumerate(ids):
                if i == j:
                    continue
                for iterations in (self.kdf_iterations, self.kdf_low_iterations):
                    key = self._pbkdf2(a, b, iterations, key_length)
                    yield key, f"pbkdf2({_short(a)}, salt={_short(b)}, {iterations})", prior

    def _xor_combine(self, ids: List[str], profile: CampaignProfile, key_length: int):
        prior = PRIORS[KeySource.XOR_COMBINE]

        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                na, nb = _short(a), _short(b)
                ab = a + b
                yield _xor(_sha256(a), _sha256(b))[:key_length], f"sha256({na}) ^ sha256({nb})", prior
                yield _sha256(ab)[:key_length], f"sha256({na}+{nb})", prior
                yield _sha256(b + a)[:key_length], f"sha256({nb}+{na})", prior
                yield _sha256(_hexdigest("md5", ab))[:key_length], f"sha256(md5hex({na}+{nb}))", prior
                yield _sha256(_hexdigest("sha1", ab))[:key_length], f"sha256(sha1hex({na}+{nb}))", prior
                yield _sha256(_sha256(ab))[:key_length], f"sha256(sha256({na}+{nb}))", prior

        for name, variation in IDENTIFIER_VARIATIONS:
            varied = [variation(ident, i) for i, ident in enumerate(ids)]
            for ident, value in zip(ids, varied):
                if value:
                    yield _sha256(value)[:key_length], f"sha256({name}({_short(ident)}))", prior
            for i in range(len(varied)):
                for j in range(i + 1, len(varied)):
                    if varied[i] and varied[j]:
                        yield (_sha256(varied[i] + varied[j])[:key_length],
                               f"sha256({name}({_short(ids[i])})+{name}({_short(ids[j])}))", prior)

        for ident in ids:
            digest = _sha256(ident)
            for bits in ROTATIONS:
                yield _rotate_left(digest, bits)[:key_length], f"rotl{bits}(sha256({_short(ident)}))", prior

        for hex_key in profile.leaked_keys_hex:
            raw = _parse_hex(hex_key)
            if not raw:
                continue
            base = fit_key(raw, key_length)
            label = _short(hex_key)
            for shift in range(1, 17):
                yield bytes((b + shift) & 0xFF for b in base), f"shift{shift}({label})", prior
            for mask in XOR_MASKS:
                yield bytes(b ^ mask for b in base), f"xor{mask:#04x}({label})", prior
            yield bytes(b ^ 0xFF for b in base), f"invert({label})", prior

    def _weak_keys(self, profile: CampaignProfile, key_length: int,
                   header: bytes, reference_time: Optional[int]):
        if not profile.weak_key_recovery:
            return iter(())
        return iter_weak_keys(header, reference_time, key_length,
                              seeds=profile.weak_seeds,
                              max_numbers=self.weak_key_max_numbers,
                              heuristic=self.heuristic)
