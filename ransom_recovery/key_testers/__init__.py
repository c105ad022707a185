"""Key search: candidate generation, trial decryption and scoring"""

from .candidate_generator import CandidateKey, CandidateKeyGenerator, KeySource, fit_key
from .trial_decryptor import CipherMode, SampleWindow, TrialDecryptor, TrialResult
from .validation_scorer import ValidationResult, ValidationScorer
from .weak_key_recovery import (
    WEAK_KEY_CONFIDENCE_CAP,
    FactorizationHeuristic,
    FactorizationResult,
    candidate_numbers,
    reconstruct_key,
)
