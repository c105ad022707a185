#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Streaming Recovery Engine

Runs the key search over a sample window and, once a candidate is accepted,
decrypts the whole input in fixed-size chunks through one persistent cipher
context and one reusable buffer. Memory use is bounded by the chunk size
regardless of the input size.

Usage:
    engine = StreamingRecoveryEngine(config)
    outcome = engine.search(sample, candidates)
    if outcome.accepted:
        report = engine.run(RecoveryJob(
            "encrypted.pdf.want_to_cry",
            "recovered.pdf",
            key=outcome.candidate,
            iv_offset=outcome.trial.iv_offset,
            cipher_mode=outcome.trial.cipher_mode,
        ))
"""

import io
import os
import time
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Dict, Iterable, Optional, Tuple, Union

import psutil

from .errors import CipherError, JobAlreadyActive, RecoveryIOError
from .key_testers.candidate_generator import CandidateKey, KeySource
from .key_testers.trial_decryptor import (
    BLOCK_SIZE,
    TRAILING_IV,
    CipherMode,
    SampleWindow,
    TrialDecryptor,
    TrialResult,
    create_decryptor,
    strip_pkcs7,
)
from .key_testers.validation_scorer import ValidationResult, ValidationScorer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("StreamingRecoveryEngine")

KiB = 1024
MiB = 1024 * KiB
GiB = 1024 * MiB

# (file size upper bound, chunk size)
CHUNK_SIZE_TIERS = (
    (1 * MiB, 64 * KiB),
    (64 * MiB, 1 * MiB),
    (1 * GiB, 4 * MiB),
)
LARGEST_CHUNK_SIZE = 16 * MiB

# Share of available memory one chunk buffer may take
MEMORY_FRACTION = 0.05

PathOrStream = Union[str, os.PathLike, BinaryIO]


@dataclass
class RecoveryJob:
    """One full-file decryption with an accepted key and layout"""
    input_source: PathOrStream
    output_sink: PathOrStream
    key: CandidateKey
    iv_offset: Optional[int]
    cipher_mode: CipherMode
    chunk_size: int = 0                                   # 0 = adaptive
    cancel_event: Optional[threading.Event] = None
    progress_callback: Optional[Callable[[int, int], None]] = None


@dataclass
class JobReport:
    """Result of a full-file pass"""
    success: bool = False
    bytes_read: int = 0
    bytes_written: int = 0
    chunks_total: int = 0
    chunks_failed: int = 0
    padding_removed: bool = False
    cancelled: bool = False
    error: Optional[str] = None

    @property
    def partial(self) -> bool:
        return self.chunks_failed > 0 and self.bytes_written > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "bytes_read": self.bytes_read,
            "bytes_written": self.bytes_written,
            "chunks_total": self.chunks_total,
            "chunks_failed": self.chunks_failed,
            "padding_removed": self.padding_removed,
            "cancelled": self.cancelled,
            "partial": self.partial,
            "error": self.error,
        }


@dataclass
class SearchOutcome:
    """Result of the key search over one sample"""
    candidate: Optional[CandidateKey] = None
    trial: Optional[TrialResult] = None
    validation: Optional[ValidationResult] = None
    candidates_tried: int = 0
    trials_run: int = 0
    best_rejected_confidence: float = 0.0
    cancelled: bool = False

    @property
    def accepted(self) -> bool:
        return self.candidate is not None


def _is_path(source: Any) -> bool:
    return isinstance(source, (str, os.PathLike))


class StreamingRecoveryEngine:
    """
    Key search and memory-bounded full-file decryption
    """

    # Input paths with a job in flight, shared by every engine in the process
    _active_inputs = set()
    _active_lock = threading.Lock()

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the engine

        Args:
            config: Configuration dictionary (see config.load_config)
        """
        config = config or {}
        self.min_chunk_size = int(config.get("min_chunk_size", 64 * KiB))
        self.max_chunk_size = int(config.get("max_chunk_size", LARGEST_CHUNK_SIZE))
        self.pacing_delay = float(config.get("pacing_delay", 0.0))
        self.trial_decryptor = TrialDecryptor(
            trial_size=int(config.get("trial_size", 1024)),
            check_padding=bool(config.get("check_padding", False)),
        )
        self.scorer = ValidationScorer(float(config.get("acceptance_threshold", 0.5)))

    # ------------------------------------------------------------------
    # Key search
    # ------------------------------------------------------------------

    def search(self, sample: SampleWindow, candidates: Iterable[CandidateKey],
               cancel_event: Optional[threading.Event] = None) -> SearchOutcome:
        """
        Try candidates in order and stop at the first accepted trial

        Args:
            sample: Sample window of the encrypted input
            candidates: Ordered candidate keys
            cancel_event: Checked between candidates

        Returns:
            SearchOutcome (accepted is False when every candidate failed)
        """
        outcome = SearchOutcome()
        for candidate in candidates:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Key search cancelled")
                outcome.cancelled = True
                return outcome
            if outcome.candidates_tried and self.pacing_delay > 0:
                time.sleep(self.pacing_delay)

            outcome.candidates_tried += 1
            for trial in self.trial_decryptor.iter_trials(sample, candidate.key):
                outcome.trials_run += 1
                if not trial.success:
                    logger.debug(f"{candidate.label} {trial.cipher_mode.value}/{trial.iv_offset}: {trial.error}")
                    continue

                validation = self.scorer.score(trial.plaintext_sample)
                if validation.accepted:
                    logger.info(
                        f"Accepted {candidate.source.value} key {candidate.fingerprint} "
                        f"({candidate.label}) AES-{trial.cipher_mode.value} iv_offset={trial.iv_offset} "
                        f"confidence={validation.confidence:.2f}"
                    )
                    outcome.candidate = candidate
                    outcome.trial = trial
                    outcome.validation = validation
                    return outcome

                outcome.best_rejected_confidence = max(outcome.best_rejected_confidence,
                                                       validation.confidence)
        logger.info(f"No candidate accepted after {outcome.candidates_tried} keys "
                    f"and {outcome.trials_run} trials")
        return outcome

    # ------------------------------------------------------------------
    # Full-file pass
    # ------------------------------------------------------------------

    def select_chunk_size(self, file_size: int) -> int:
        """
        Choose a chunk size from the input size and available memory

        Returns:
            Chunk size in bytes, always a multiple of 16
        """
        chunk_size = LARGEST_CHUNK_SIZE
        for upper_bound, size in CHUNK_SIZE_TIERS:
            if file_size < upper_bound:
                chunk_size = size
                break

        chunk_size = max(self.min_chunk_size, min(chunk_size, self.max_chunk_size))
        try:
            available = psutil.virtual_memory().available
            chunk_size = min(chunk_size, int(available * MEMORY_FRACTION))
        except (OSError, AttributeError) as e:
            logger.debug(f"Could not read available memory: {e}")

        return max(BLOCK_SIZE, chunk_size - chunk_size % BLOCK_SIZE)

    @contextmanager
    def _claim(self, source: PathOrStream):
        token = os.path.abspath(os.fspath(source)) if _is_path(source) else id(source)
        with self._active_lock:
            if token in self._active_inputs:
                raise JobAlreadyActive(f"A recovery job is already running for {source}")
            self._active_inputs.add(token)
        try:
            yield
        finally:
            with self._active_lock:
                self._active_inputs.discard(token)

    def run(self, job: RecoveryJob) -> JobReport:
        """
        Decrypt the whole input of a job

        Args:
            job: RecoveryJob with an accepted key and layout

        Returns:
            JobReport

        Raises:
            RecoveryIOError: Input or output could not be opened
            JobAlreadyActive: Another job is running on the same input
        """
        with self._claim(job.input_source):
            if _is_path(job.input_source):
                try:
                    input_stream = open(job.input_source, "rb")
                except OSError as e:
                    logger.error(f"Cannot open input {job.input_source}: {e}")
                    raise RecoveryIOError(f"Cannot open input: {e}", path=str(job.input_source)) from e
            else:
                input_stream = job.input_source

            try:
                if _is_path(job.output_sink):
                    try:
                        output_stream = open(job.output_sink, "wb")
                    except OSError as e:
                        logger.error(f"Cannot open output {job.output_sink}: {e}")
                        raise RecoveryIOError(f"Cannot open output: {e}", path=str(job.output_sink)) from e
                    with output_stream:
                        report = self._process_stream(input_stream, output_stream, job)
                else:
                    report = self._process_stream(input_stream, job.output_sink, job)
            finally:
                if _is_path(job.input_source):
                    input_stream.close()

        if _is_path(job.output_sink) and (report.cancelled or report.bytes_written == 0):
            try:
                os.remove(job.output_sink)
            except FileNotFoundError:
                pass
        return report

    def _layout(self, stream: BinaryIO, file_size: int, iv_offset: Optional[int],
                mode: CipherMode) -> Tuple[Optional[bytes], int, int]:
        """Read the IV verbatim and return (iv, ciphertext start, ciphertext end)"""
        if mode is CipherMode.ECB or iv_offset is None:
            return None, 0, file_size
        if iv_offset == TRAILING_IV:
            iv_position, start, end = file_size - BLOCK_SIZE, 0, file_size - BLOCK_SIZE
        else:
            iv_position, start, end = iv_offset, iv_offset + BLOCK_SIZE, file_size
        if iv_position < 0:
            raise CipherError("Input too short to hold an IV")
        stream.seek(iv_position)
        iv = stream.read(BLOCK_SIZE)
        if len(iv) != BLOCK_SIZE:
            raise CipherError(f"Truncated IV at offset {iv_position}")
        return iv, start, end

    def _decrypt_chunk(self, decryptor, chunk) -> bytes:
        try:
            return decryptor.update(chunk)
        except (ValueError, TypeError) as e:
            raise CipherError(f"Chunk decryption failed: {e}") from e

    def _reseed(self, key: bytes, mode: CipherMode, iv: Optional[bytes],
                last_ciphertext: bytes, blocks_consumed: int):
        """Fresh decryptor positioned right after a failed chunk"""
        if mode is CipherMode.CBC:
            return create_decryptor(key, mode, bytes(last_ciphertext[-BLOCK_SIZE:]))
        if mode is CipherMode.CTR:
            counter = (int.from_bytes(iv, "big") + blocks_consumed) % (1 << 128)
            return create_decryptor(key, mode, counter.to_bytes(BLOCK_SIZE, "big"))
        return create_decryptor(key, mode)

    @staticmethod
    def _fill(stream: BinaryIO, view: memoryview) -> int:
        """readinto until the view is full or the stream is exhausted"""
        filled = 0
        while filled < len(view):
            count = stream.readinto(view[filled:])
            if not count:
                break
            filled += count
        return filled

    def _process_stream(self, input_stream: BinaryIO, output_stream: BinaryIO,
                        job: RecoveryJob) -> JobReport:
        report = JobReport()
        key = job.key.key
        mode = job.cipher_mode

        try:
            input_stream.seek(0, io.SEEK_END)
            file_size = input_stream.tell()
            iv, start, end = self._layout(input_stream, file_size, job.iv_offset, mode)
            decryptor = create_decryptor(key, mode, iv)
        except CipherError as e:
            logger.error(f"Cannot start decryption: {e}")
            report.error = e.code
            return report

        total = max(0, end - start)
        chunk_size = job.chunk_size or self.select_chunk_size(total)
        chunk_size = max(BLOCK_SIZE, chunk_size - chunk_size % BLOCK_SIZE)
        logger.info(f"Decrypting {total} bytes with AES-{mode.value} in {chunk_size}-byte chunks")

        buffer = bytearray(chunk_size)
        view = memoryview(buffer)
        input_stream.seek(start)
        position = start

        while position < end:
            if job.cancel_event is not None and job.cancel_event.is_set():
                logger.info("Decryption cancelled")
                report.cancelled = True
                report.error = "Cancelled"
                return report

            count = self._fill(input_stream, view[:min(chunk_size, end - position)])
            if count == 0:
                logger.warning(f"Input ended early at offset {position}")
                break
            position += count
            report.bytes_read += count
            report.chunks_total += 1
            is_last = position >= end

            usable = count
            if mode is not CipherMode.CTR and count % BLOCK_SIZE:
                # Incomplete trailing block cannot be decrypted
                usable = count - count % BLOCK_SIZE
                report.chunks_failed += 1
                logger.warning(f"Dropping {count - usable} trailing bytes (incomplete block)")

            chunk = view[:usable]
            try:
                plaintext = self._decrypt_chunk(decryptor, chunk)
            except CipherError as e:
                report.chunks_failed += 1
                logger.warning(f"Chunk ending at offset {position} failed: {e}")
                blocks_consumed = (position - start) // BLOCK_SIZE
                decryptor = self._reseed(key, mode, iv, chunk, blocks_consumed)
                continue

            if is_last and mode is not CipherMode.CTR and plaintext:
                try:
                    plaintext = strip_pkcs7(plaintext)
                    report.padding_removed = True
                except CipherError:
                    logger.warning("Final block padding invalid, keeping raw tail")

            output_stream.write(plaintext)
            report.bytes_written += len(plaintext)

            if job.progress_callback:
                job.progress_callback(position - start, total)

        if report.partial:
            logger.warning(f"Partial recovery: {report.chunks_failed} of {report.chunks_total} chunks failed")
        report.success = report.bytes_written > 0
        if not report.success and report.error is None:
            report.error = "No plaintext was produced"
        return report

    def decrypt_bytes(self, data: bytes, key: Union[CandidateKey, bytes],
                      iv_offset: Optional[int], mode: CipherMode, chunk_size: int = 0) -> bytes:
        """
        Decrypt an in-memory buffer through the streaming path

        Returns:
            Decrypted bytes (PKCS#7 padding removed for CBC/ECB when valid)
        """
        if not isinstance(key, CandidateKey):
            key = CandidateKey(bytes(key), KeySource.STATIC_KNOWN, 1.0, "manual")
        output = io.BytesIO()
        self.run(RecoveryJob(io.BytesIO(data), output, key, iv_offset, mode, chunk_size))
        return output.getvalue()
