#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
File Format Signature Table

Maps container formats to their magic bytes, the file extensions that carry
them and a validation function. Dispatch is by table lookup: supporting a new
format means adding one FileFormat entry to FORMATS.
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

# Printable ASCII plus TAB, LF and CR
_TEXT_BYTES = bytes(range(32, 127)) + b"\t\n\r"


def printable_ratio(data: bytes) -> float:
    """Fraction of bytes that are printable ASCII or common whitespace"""
    if not data:
        return 0.0
    non_printable = len(data.translate(None, _TEXT_BYTES))
    return (len(data) - non_printable) / len(data)


@dataclass(frozen=True)
class FormatCheck:
    """Outcome of a format-specific validation"""
    valid: bool
    message: str
    subtype: Optional[str] = None


@dataclass(frozen=True)
class FileFormat:
    """A container format known to the recovery engine"""
    name: str
    magic: Optional[bytes]
    extensions: Tuple[str, ...]
    description: str
    validator: Callable[[bytes], FormatCheck] = field(compare=False, repr=False)

    def matches(self, data: bytes, offset: int = 0) -> bool:
        return bool(self.magic) and data[offset:offset + len(self.magic)] == self.magic


def _validate_pdf(data: bytes) -> FormatCheck:
    if not data.startswith(b"%PDF"):
        return FormatCheck(False, "PDF signature not found")
    head = data[:1024].decode("latin-1")
    if "PDF-" not in head:
        return FormatCheck(False, "Invalid PDF structure")
    return FormatCheck(True, "Valid PDF")


def _office_subtype(data: bytes) -> Optional[str]:
    content = data[:2048].decode("latin-1")
    if "word/" in content:
        return "Word Document (.docx)"
    if "xl/" in content:
        return "Excel Spreadsheet (.xlsx)"
    if "ppt/" in content:
        return "PowerPoint Presentation (.pptx)"
    return None


def _validate_zip(data: bytes) -> FormatCheck:
    if not data.startswith(b"PK\x03\x04"):
        return FormatCheck(False, "ZIP signature not found")
    subtype = _office_subtype(data)
    if subtype:
        return FormatCheck(True, f"Office document ({subtype})", subtype)
    return FormatCheck(True, "Valid ZIP archive")


def _signature_only(fmt_name: str, magic: bytes, description: str) -> Callable[[bytes], FormatCheck]:
    def check(data: bytes) -> FormatCheck:
        if not data.startswith(magic):
            return FormatCheck(False, f"{fmt_name.upper()} signature not found")
        return FormatCheck(True, f"Valid {description}")
    return check


def _validate_jpeg(data: bytes) -> FormatCheck:
    if not data.startswith(b"\xFF\xD8\xFF"):
        return FormatCheck(False, "JPEG signature not found")
    # Callers that only hold the head of a file pass the head alone, so a
    # missing end marker is only an error for complete images.
    if len(data) > 4 and not data.endswith(b"\xFF\xD9"):
        return FormatCheck(False, "JPEG incomplete or truncated (no FFD9 end marker)")
    return FormatCheck(True, "Valid JPEG image")


def _validate_text(data: bytes) -> FormatCheck:
    ratio = printable_ratio(data[:1024])
    if ratio < 0.7:
        return FormatCheck(False, f"Too many non-printable characters ({ratio * 100:.1f}% printable)")
    return FormatCheck(True, f"Valid text file ({ratio * 100:.1f}% printable)")


OLE_MAGIC = b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
RAR_MAGIC = b"Rar!\x1a\x07"

FORMATS: List[FileFormat] = [
    FileFormat("pdf", b"%PDF", (".pdf",), "Adobe PDF Document", _validate_pdf),
    FileFormat("zip", b"PK\x03\x04", (".zip", ".docx", ".xlsx", ".pptx", ".odt", ".jar"),
               "ZIP Archive", _validate_zip),
    FileFormat("ole", OLE_MAGIC, (".doc", ".xls", ".ppt", ".msg"),
               "Microsoft Office Document (Legacy)",
               _signature_only("ole", OLE_MAGIC, "legacy Office document")),
    FileFormat("jpeg", b"\xFF\xD8\xFF", (".jpg", ".jpeg"), "JPEG Image", _validate_jpeg),
    FileFormat("png", PNG_MAGIC, (".png",), "PNG Image",
               _signature_only("png", PNG_MAGIC, "PNG image")),
    FileFormat("gif", b"GIF8", (".gif",), "GIF Image",
               _signature_only("gif", b"GIF8", "GIF image")),
    FileFormat("rar", RAR_MAGIC, (".rar",), "RAR Archive",
               _signature_only("rar", RAR_MAGIC, "RAR archive")),
    FileFormat("txt", None, (".txt", ".rtf", ".csv", ".log"), "Text File", _validate_text),
]

_BY_NAME: Dict[str, FileFormat] = {fmt.name: fmt for fmt in FORMATS}
_BY_EXTENSION: Dict[str, FileFormat] = {
    ext: fmt for fmt in FORMATS for ext in fmt.extensions
}

_SUGGESTED_EXTENSIONS = {
    "pdf": ".pdf",
    "zip": ".zip",
    "ole": ".doc",
    "jpeg": ".jpg",
    "png": ".png",
    "gif": ".gif",
    "rar": ".rar",
    "txt": ".txt",
}


def normalize_extension(ext_or_name: Optional[str]) -> str:
    """Return a lowercase '.ext' for an extension or a file name ('' if none)"""
    if not ext_or_name:
        return ""
    value = ext_or_name.strip().lower()
    if value.startswith(".") and value.count(".") == 1 and os.sep not in value:
        return value
    ext = os.path.splitext(value)[1]
    if ext:
        return ext
    # Bare extension without a dot, e.g. "pdf"
    return "." + value if value.isalnum() else ""


def format_for_extension(ext_or_name: Optional[str]) -> Optional[FileFormat]:
    return _BY_EXTENSION.get(normalize_extension(ext_or_name))


def format_by_name(name: str) -> Optional[FileFormat]:
    return _BY_NAME.get(name)


def detect_format(data: bytes) -> Optional[FileFormat]:
    """Detect a format purely from the magic bytes at offset 0"""
    for fmt in FORMATS:
        if fmt.matches(data):
            return fmt
    return None


def suggest_extension(format_name: Optional[str], subtype: Optional[str] = None) -> str:
    """Pick an output extension for a detected format"""
    if subtype:
        if "Word" in subtype:
            return ".docx"
        if "Excel" in subtype:
            return ".xlsx"
        if "PowerPoint" in subtype:
            return ".pptx"
    return _SUGGESTED_EXTENSIONS.get(format_name or "", ".bin")
