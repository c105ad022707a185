"""Byte-window statistics and the container format table"""

from .entropy_analyzer import (
    WindowAnalysis,
    analyze_window,
    block_entropies,
    block_repetition_ratio,
    calculate_entropy,
    chi_square_uniformity,
    longest_byte_run,
    looks_uniform,
    match_signature,
)
from .file_signatures import (
    FORMATS,
    FileFormat,
    FormatCheck,
    detect_format,
    format_by_name,
    format_for_extension,
    printable_ratio,
    suggest_extension,
)
