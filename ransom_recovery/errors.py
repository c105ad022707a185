#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error taxonomy for the recovery engine.

Every error carries a short ``code`` that is copied into result records, so
callers can branch on the failure class without importing the exceptions.
"""


class RecoveryError(Exception):
    """Base class for all recovery errors"""

    code = "RecoveryError"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class RecoveryIOError(RecoveryError, OSError):
    """Input could not be read or output could not be written (fatal)"""

    code = "IOError"


class CipherError(RecoveryError):
    """Bad key length, misaligned data or invalid padding for a single trial/chunk"""

    code = "CipherError"


class ValidationFailure(RecoveryError):
    """Decrypted sample scored below the acceptance threshold"""

    code = "ValidationFailure"

    def __init__(self, message: str = "", confidence: float = 0.0, **details):
        super().__init__(message, confidence=confidence, **details)
        self.confidence = confidence


class CandidatesExhausted(RecoveryError):
    """No candidate key produced an accepted sample"""

    code = "CandidatesExhausted"

    def __init__(self, message: str = "", candidates_tried: int = 0, **details):
        super().__init__(message, candidates_tried=candidates_tried, **details)
        self.candidates_tried = candidates_tried


class PartialRecovery(RecoveryError):
    """Full-file pass finished but one or more chunks failed"""

    code = "PartialRecovery"

    def __init__(self, message: str = "", chunks_failed: int = 0, **details):
        super().__init__(message, chunks_failed=chunks_failed, **details)
        self.chunks_failed = chunks_failed


class RecoveryCancelled(RecoveryError):
    """Caller requested cancellation"""

    code = "Cancelled"


class JobAlreadyActive(RecoveryError):
    """A recovery job for the same input is already running"""

    code = "JobAlreadyActive"


class UnknownCampaign(RecoveryError, ValueError):
    """Campaign tag is not in the profile table"""

    code = "UnknownCampaign"
