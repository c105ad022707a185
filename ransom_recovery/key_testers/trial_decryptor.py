#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Trial Decryptor

Decrypts a small sample of an encrypted file under one candidate key and
every supported IV layout, so that the validation scorer can judge whether
the key is right before the whole file is touched.
"""

import io
import os
import logging
from enum import Enum
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Tuple, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import CipherError, RecoveryIOError

logger = logging.getLogger("TrialDecryptor")

BLOCK_SIZE = 16

# IV offset used when the IV is stored in the last 16 bytes of the file
TRAILING_IV = -16


class CipherMode(Enum):
    CBC = "CBC"
    ECB = "ECB"
    CTR = "CTR"


# (mode, iv_offset) in the order they are tried
TRIAL_LAYOUTS: Tuple[Tuple[CipherMode, Optional[int]], ...] = (
    (CipherMode.CBC, 0),
    (CipherMode.CTR, 0),
    (CipherMode.CBC, 16),
    (CipherMode.CTR, 16),
    (CipherMode.CBC, TRAILING_IV),
    (CipherMode.CTR, TRAILING_IV),
    (CipherMode.ECB, None),
)


@dataclass(frozen=True)
class SampleWindow:
    """Leading bytes of an encrypted input, plus the total input size"""
    data: bytes
    file_size: int

    @property
    def is_complete(self) -> bool:
        return len(self.data) >= self.file_size

    @classmethod
    def from_source(cls, source: Union[str, os.PathLike, BinaryIO], size: int = 8192) -> "SampleWindow":
        """
        Read a sample from a path or a seekable binary stream

        A stream's position is restored afterwards.
        """
        if isinstance(source, (str, os.PathLike)):
            try:
                with open(source, "rb") as f:
                    data = f.read(size)
                    file_size = os.fstat(f.fileno()).st_size
            except OSError as e:
                raise RecoveryIOError(f"Cannot read {source}: {e}", path=str(source)) from e
            return cls(data, file_size)

        try:
            position = source.tell()
            source.seek(0, io.SEEK_END)
            file_size = source.tell()
            source.seek(0)
            data = source.read(size)
            source.seek(position)
        except (OSError, ValueError) as e:
            raise RecoveryIOError(f"Cannot read input stream: {e}") from e
        return cls(bytes(data), file_size)


@dataclass(frozen=True)
class TrialResult:
    """Outcome of decrypting a sample under one layout"""
    success: bool
    plaintext_sample: bytes = b""
    iv_offset: Optional[int] = None
    cipher_mode: Optional[CipherMode] = None
    error: Optional[str] = None


def create_decryptor(key: bytes, mode: CipherMode, iv: Optional[bytes] = None):
    """Build a cryptography decryptor context for AES in the given mode"""
    try:
        algorithm = algorithms.AES(key)
        if mode is CipherMode.CBC:
            return Cipher(algorithm, modes.CBC(iv)).decryptor()
        if mode is CipherMode.CTR:
            return Cipher(algorithm, modes.CTR(iv)).decryptor()
        return Cipher(algorithm, modes.ECB()).decryptor()
    except (ValueError, TypeError) as e:
        raise CipherError(f"Cannot initialise AES-{mode.value}: {e}") from e


def strip_pkcs7(data: bytes) -> bytes:
    """Remove PKCS#7 padding, raising CipherError when it is invalid"""
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as e:
        raise CipherError(f"Invalid PKCS#7 padding: {e}") from e


class TrialDecryptor:
    """
    Sample-sized trial decryption over all IV layouts
    """

    def __init__(self, trial_size: int = 1024, check_padding: bool = False):
        self.trial_size = max(BLOCK_SIZE, trial_size - trial_size % BLOCK_SIZE)
        self.check_padding = check_padding

    def _layout(self, sample: SampleWindow, mode: CipherMode,
                iv_offset: Optional[int]) -> Tuple[Optional[bytes], bytes]:
        """Split a sample into (iv, ciphertext) for one layout"""
        data = sample.data
        if iv_offset is None:
            return None, data
        if iv_offset == TRAILING_IV:
            return data[-BLOCK_SIZE:], data[:-BLOCK_SIZE]
        iv = data[iv_offset:iv_offset + BLOCK_SIZE]
        if len(iv) < BLOCK_SIZE:
            raise CipherError(f"IV at offset {iv_offset} is truncated ({len(iv)} bytes)")
        return iv, data[iv_offset + BLOCK_SIZE:]

    def trial(self, sample: SampleWindow, key: bytes, mode: CipherMode,
              iv_offset: Optional[int]) -> TrialResult:
        """Decrypt at most trial_size bytes under one layout; never raises"""
        try:
            iv, ciphertext = self._layout(sample, mode, iv_offset)
            piece = ciphertext[:self.trial_size]
            if mode is not CipherMode.CTR:
                piece = piece[:len(piece) - len(piece) % BLOCK_SIZE]
            if not piece:
                raise CipherError("Ciphertext shorter than one block")

            decryptor = create_decryptor(key, mode, iv)
            try:
                plaintext = decryptor.update(piece) + decryptor.finalize()
            except ValueError as e:
                raise CipherError(str(e)) from e

            # Padding can only be checked when the slice reaches the real end
            reaches_end = sample.is_complete and len(piece) == len(ciphertext)
            if self.check_padding and mode is not CipherMode.CTR and reaches_end:
                plaintext = strip_pkcs7(plaintext)

            return TrialResult(True, plaintext, iv_offset, mode)
        except CipherError as e:
            return TrialResult(False, b"", iv_offset, mode, str(e))

    def iter_trials(self, sample: SampleWindow, key: bytes) -> Iterator[TrialResult]:
        for mode, iv_offset in TRIAL_LAYOUTS:
            if iv_offset == TRAILING_IV and not sample.is_complete:
                continue
            yield self.trial(sample, key, mode, iv_offset)

    def decrypt_sample(self, sample: SampleWindow, key: bytes) -> TrialResult:
        """Return the first structurally successful trial"""
        for result in self.iter_trials(sample, key):
            if result.success:
                return result
            logger.debug(f"Trial {result.cipher_mode.value}/{result.iv_offset} failed: {result.error}")
        return TrialResult(success=False, error="No layout decrypted the sample")
