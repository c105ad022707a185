"""
Ransom Recovery

Key-search and streaming recovery engine for files encrypted by known
ransomware campaigns.
"""

__version__ = "1.0.0"

from .campaigns import CAMPAIGNS, CampaignProfile, detect_campaign, get_campaign
from .config import load_config
from .errors import (
    CandidatesExhausted,
    CipherError,
    JobAlreadyActive,
    PartialRecovery,
    RecoveryCancelled,
    RecoveryError,
    RecoveryIOError,
    UnknownCampaign,
    ValidationFailure,
)
from .file_format.container_repair import ContainerRepair, RepairedOutput
from .key_testers.candidate_generator import CandidateKey, CandidateKeyGenerator, KeySource
from .key_testers.trial_decryptor import CipherMode, SampleWindow, TrialDecryptor, TrialResult
from .key_testers.validation_scorer import ValidationResult, ValidationScorer
from .ransomware_recovery import BatchReport, RansomwareRecovery, RecoveryResult, RecoveryStats
from .streaming_engine import JobReport, RecoveryJob, SearchOutcome, StreamingRecoveryEngine
