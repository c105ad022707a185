#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Ransomware Recovery Pipeline

Ties the recovery components together for one file at a time:
1. Sample the encrypted input and identify the campaign
2. Generate candidate keys from identifiers and campaign knowledge
3. Search for a key whose trial decryption validates
4. Stream-decrypt the whole file with the accepted key and layout
5. Repair the container header and move the output to its final name

Statistics are accumulated in a caller-owned RecoveryStats; the pipeline
itself keeps no counters.
"""

import os
import time
import logging
import datetime
import tempfile
import threading
import concurrent.futures
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Optional, Sequence

from .analysis.entropy_analyzer import analyze_window, block_entropies
from .analysis.file_signatures import suggest_extension
from .campaigns import CampaignProfile, detect_campaign, get_campaign, strip_ransom_suffix
from .config import load_config
from .errors import CandidatesExhausted, RecoveryCancelled, RecoveryError, RecoveryIOError
from .file_format.container_repair import ContainerRepair
from .key_testers.candidate_generator import CandidateKeyGenerator
from .key_testers.trial_decryptor import SampleWindow
from .streaming_engine import RecoveryJob, SearchOutcome, StreamingRecoveryEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('RansomwareRecovery')

# Guards final-name reservation across batch workers
_name_lock = threading.Lock()


@dataclass
class RecoveryResult:
    """Per-file outcome reported to callers"""
    input_path: Optional[str] = None
    success: bool = False
    campaign: Optional[str] = None
    chosen_key_source: Optional[str] = None
    key_label: Optional[str] = None
    confidence: float = 0.0
    iv_offset: Optional[int] = None
    cipher_mode: Optional[str] = None
    candidates_tried: int = 0
    bytes_recovered: int = 0
    partial: bool = False
    chunks_failed: int = 0
    header_repaired: bool = False
    detected_extension: Optional[str] = None
    output_path: Optional[str] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None
    elapsed_seconds: float = 0.0

    def fail(self, error: RecoveryError) -> "RecoveryResult":
        self.success = False
        self.error = error.code
        self.error_detail = error.message
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path": self.input_path,
            "success": self.success,
            "campaign": self.campaign,
            "chosen_key_source": self.chosen_key_source,
            "key_label": self.key_label,
            "confidence": round(self.confidence, 4),
            "iv_offset": self.iv_offset,
            "cipher_mode": self.cipher_mode,
            "candidates_tried": self.candidates_tried,
            "bytes_recovered": self.bytes_recovered,
            "partial": self.partial,
            "chunks_failed": self.chunks_failed,
            "header_repaired": self.header_repaired,
            "detected_extension": self.detected_extension,
            "output_path": self.output_path,
            "error": self.error,
            "error_detail": self.error_detail,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class RecoveryStats:
    """Caller-owned counters across many recoveries"""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    partial: int = 0
    corrected: int = 0
    candidates_tried: int = 0
    bytes_recovered: int = 0

    def record(self, result: RecoveryResult) -> None:
        self.processed += 1
        if result.success:
            self.successful += 1
        else:
            self.failed += 1
        if result.partial:
            self.partial += 1
        if result.header_repaired:
            self.corrected += 1
        self.candidates_tried += result.candidates_tried
        self.bytes_recovered += result.bytes_recovered

    def merge(self, other: "RecoveryStats") -> "RecoveryStats":
        self.processed += other.processed
        self.successful += other.successful
        self.failed += other.failed
        self.partial += other.partial
        self.corrected += other.corrected
        self.candidates_tried += other.candidates_tried
        self.bytes_recovered += other.bytes_recovered
        return self

    @property
    def success_rate(self) -> float:
        return self.successful / self.processed if self.processed else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "partial": self.partial,
            "corrected": self.corrected,
            "candidates_tried": self.candidates_tried,
            "bytes_recovered": self.bytes_recovered,
            "success_rate": round(self.success_rate, 4),
        }


@dataclass
class BatchReport:
    results: List[RecoveryResult] = field(default_factory=list)
    stats: RecoveryStats = field(default_factory=RecoveryStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "files": [result.to_dict() for result in self.results],
        }


class RansomwareRecovery:
    """
    End-to-end recovery of files encrypted by a known campaign
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, config_path: Optional[str] = None):
        """
        Initialize the recovery pipeline.

        Args:
            config: Individual configuration overrides
            config_path: Optional path to a JSON config file
        """
        self.config = load_config(config_path, **(config or {}))
        logger.setLevel(str(self.config.get("log_level", "INFO")).upper())

        self.generator = CandidateKeyGenerator(self.config)
        self.engine = StreamingRecoveryEngine(self.config)
        self.repairer = ContainerRepair(int(self.config["header_scan_window"]))

    def _resolve_campaign(self, campaign: Optional[str], filename: Optional[str],
                          header: bytes) -> CampaignProfile:
        if campaign:
            return get_campaign(campaign)
        return detect_campaign(filename, header)

    def _check_encrypted(self, sample: SampleWindow, name: str) -> None:
        window = analyze_window(sample.data)
        if not window.looks_encrypted:
            profile = ", ".join(f"{e:.1f}" for e in block_entropies(sample.data[:2048]))
            logger.warning(f"{name} does not look encrypted (block entropy: {profile})")

    def _search(self, sample: SampleWindow, identifiers: Sequence[str], profile: CampaignProfile,
                reference_time: Optional[int], result: RecoveryResult,
                cancel_event: Optional[threading.Event]) -> SearchOutcome:
        candidates = self.generator.iter_candidates(
            identifiers, campaign=profile,
            header=sample.data[:64], reference_time=reference_time,
        )
        outcome = self.engine.search(sample, candidates, cancel_event)
        result.candidates_tried = outcome.candidates_tried
        if outcome.cancelled:
            raise RecoveryCancelled("Recovery cancelled during key search")
        if not outcome.accepted:
            raise CandidatesExhausted(
                f"No candidate key validated (best confidence {outcome.best_rejected_confidence:.2f})",
                candidates_tried=outcome.candidates_tried,
            )

        result.chosen_key_source = outcome.candidate.source.value
        result.key_label = outcome.candidate.label
        result.confidence = outcome.validation.confidence
        result.iv_offset = outcome.trial.iv_offset
        result.cipher_mode = outcome.trial.cipher_mode.value
        return outcome

    def _final_path(self, output_dir: str, original_name: str) -> str:
        stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        prefix = self.config.get("output_prefix", "recovered_")
        base, ext = os.path.splitext(f"{prefix}{stamp}_{original_name}")
        candidate = os.path.join(output_dir, base + ext)
        counter = 1
        while os.path.exists(candidate):
            candidate = os.path.join(output_dir, f"{base}_{counter}{ext}")
            counter += 1
        return candidate

    def recover_file(self, input_path: str, output_dir: Optional[str] = None,
                     identifiers: Sequence[str] = (), campaign: Optional[str] = None,
                     stats: Optional[RecoveryStats] = None,
                     cancel_event: Optional[threading.Event] = None,
                     progress_callback: Optional[Callable[[int, int], None]] = None) -> RecoveryResult:
        """
        Recover one encrypted file

        Args:
            input_path: Encrypted file
            output_dir: Where to write the recovered file (defaults to the
                configured output_dir, then the input's directory)
            identifiers: Victim/attacker identifiers for key derivation
            campaign: Campaign tag; detected from name and header when omitted
            stats: Optional accumulator updated with the result
            cancel_event: Set to cancel between candidates or chunks
            progress_callback: Called with (bytes_done, bytes_total)

        Returns:
            RecoveryResult
        """
        started = time.time()
        input_path = os.fspath(input_path)
        result = RecoveryResult(input_path=input_path)
        part_path = None
        logger.info(f"Starting recovery of {input_path}")

        try:
            sample = SampleWindow.from_source(input_path, int(self.config["sample_size"]))
            reference_time = int(os.path.getmtime(input_path))

            profile = self._resolve_campaign(campaign, input_path, sample.data)
            result.campaign = profile.tag
            original_name = strip_ransom_suffix(input_path, profile)
            self._check_encrypted(sample, original_name)

            outcome = self._search(sample, identifiers, profile, reference_time, result, cancel_event)

            output_dir = output_dir or self.config.get("output_dir") or os.path.dirname(os.path.abspath(input_path))
            os.makedirs(output_dir, exist_ok=True)
            fd, part_path = tempfile.mkstemp(prefix=f"{original_name}.", suffix=".part", dir=output_dir)
            os.close(fd)

            report = self.engine.run(RecoveryJob(
                input_path, part_path, outcome.candidate,
                outcome.trial.iv_offset, outcome.trial.cipher_mode,
                cancel_event=cancel_event, progress_callback=progress_callback,
            ))
            result.chunks_failed = report.chunks_failed
            result.partial = report.partial
            if report.cancelled:
                raise RecoveryCancelled("Recovery cancelled during decryption")
            if not report.success:
                raise RecoveryError(report.error or "Decryption produced no output")

            extension = os.path.splitext(original_name)[1].lower()
            repaired = self.repairer.repair_file(part_path, extension)
            result.header_repaired = repaired.repaired
            result.detected_extension = repaired.detected_extension
            if not extension:
                detected = repaired.detected_extension or suggest_extension(outcome.validation.matched_signature)
                original_name += detected

            with _name_lock:
                final_path = self._final_path(output_dir, original_name)
                os.replace(part_path, final_path)
            part_path = None

            result.output_path = final_path
            result.bytes_recovered = os.path.getsize(final_path)
            result.success = True
            if result.partial:
                logger.warning(f"Partial recovery of {input_path}: {report.chunks_failed} chunks failed")
            logger.info(f"Recovered {input_path} -> {final_path} ({result.bytes_recovered} bytes)")

        except RecoveryIOError as e:
            logger.error(f"I/O error recovering {input_path}: {e.message}")
            result.fail(e)
        except RecoveryError as e:
            logger.info(f"Recovery of {input_path} failed: {e.code}: {e.message}")
            result.fail(e)
        except OSError as e:
            logger.error(f"I/O error recovering {input_path}: {e}")
            result.fail(RecoveryIOError(str(e), path=input_path))
        finally:
            if part_path and os.path.exists(part_path):
                os.remove(part_path)

        result.elapsed_seconds = time.time() - started
        if stats is not None:
            stats.record(result)
        return result

    def recover_stream(self, input_stream: BinaryIO, output_stream: BinaryIO,
                       identifiers: Sequence[str] = (), campaign: Optional[str] = None,
                       extension: Optional[str] = None, filename: Optional[str] = None,
                       cancel_event: Optional[threading.Event] = None,
                       progress_callback: Optional[Callable[[int, int], None]] = None) -> RecoveryResult:
        """
        Recover from a seekable binary stream into a binary sink

        Nothing is written to output_stream unless a key is accepted. After
        that, decrypted chunks go to the sink as they are produced; only the
        leading header_scan_window bytes are held back for header repair. A
        job cancelled mid-stream may leave a prefix in the sink.

        Args:
            input_stream: Seekable encrypted input
            output_stream: Writable binary sink
            identifiers: Victim/attacker identifiers for key derivation
            campaign: Campaign tag; detected from filename and header when omitted
            extension: Target extension used for header repair
            filename: Original upload name, used for campaign detection
            cancel_event: Set to cancel between candidates or chunks
            progress_callback: Called with (bytes_done, bytes_total)

        Returns:
            RecoveryResult (output_path is None)
        """
        started = time.time()
        result = RecoveryResult(input_path=filename)
        try:
            sample = SampleWindow.from_source(input_stream, int(self.config["sample_size"]))
            profile = self._resolve_campaign(campaign, filename, sample.data)
            result.campaign = profile.tag
            if extension is None and filename:
                extension = os.path.splitext(strip_ransom_suffix(filename, profile))[1].lower()

            outcome = self._search(sample, identifiers, profile, None, result, cancel_event)

            writer = self.repairer.writer(output_stream, extension)
            report = self.engine.run(RecoveryJob(
                input_stream, writer, outcome.candidate,
                outcome.trial.iv_offset, outcome.trial.cipher_mode,
                cancel_event=cancel_event, progress_callback=progress_callback,
            ))
            result.chunks_failed = report.chunks_failed
            result.partial = report.partial
            if report.cancelled:
                raise RecoveryCancelled("Recovery cancelled during decryption")
            if not report.success:
                raise RecoveryError(report.error or "Decryption produced no output")

            repaired = writer.finish()
            result.header_repaired = repaired.repaired
            result.detected_extension = repaired.detected_extension
            result.bytes_recovered = writer.bytes_written
            result.success = True
        except RecoveryError as e:
            logger.info(f"Stream recovery failed: {e.code}: {e.message}")
            result.fail(e)

        result.elapsed_seconds = time.time() - started
        return result

    def batch_recover(self, paths: Iterable[str], output_dir: Optional[str] = None,
                      identifiers: Sequence[str] = (), campaign: Optional[str] = None,
                      max_workers: int = 1,
                      cancel_event: Optional[threading.Event] = None) -> BatchReport:
        """
        Recover many files, optionally in parallel

        Args:
            paths: Encrypted files
            output_dir: Output directory shared by every file
            identifiers: Identifiers applied to every file
            campaign: Campaign tag, or None to detect per file
            max_workers: Number of worker threads (1 = sequential)

        Returns:
            BatchReport with per-file results in input order
        """
        paths = list(paths)
        report = BatchReport()

        def process_file(path: str) -> RecoveryResult:
            return self.recover_file(path, output_dir, identifiers, campaign,
                                     cancel_event=cancel_event)

        if max_workers > 1 and len(paths) > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(process_file, paths))
        else:
            results = [process_file(path) for path in paths]

        for result in results:
            report.results.append(result)
            report.stats.record(result)

        logger.info(f"Batch complete: {report.stats.successful}/{report.stats.processed} files recovered")
        return report
