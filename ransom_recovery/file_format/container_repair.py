#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Container Repair

Some campaigns prepend their own bytes to the plaintext before encrypting it,
so the decrypted output starts with junk and the real container header sits
a few bytes in. ContainerRepair finds the expected magic within a bounded
window and trims everything in front of it. Bytes are only ever removed,
never inserted.
"""

import os
import shutil
import logging
import tempfile
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from ..analysis.file_signatures import (
    FormatCheck,
    FileFormat,
    detect_format,
    format_for_extension,
    normalize_extension,
    suggest_extension,
)
from ..errors import RecoveryIOError

logger = logging.getLogger("ContainerRepair")

# Longest magic in the format table fits inside this margin
MAGIC_MARGIN = 16


@dataclass(frozen=True)
class RepairedOutput:
    """
    Result of a header repair

    For repair_file, data holds the leading bytes of the repaired file rather
    than the whole file.
    """
    data: bytes
    header_offset_found: Optional[int]
    detected_extension: Optional[str]
    message: str

    @property
    def repaired(self) -> bool:
        return bool(self.header_offset_found)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_offset_found": self.header_offset_found,
            "detected_extension": self.detected_extension,
            "repaired": self.repaired,
            "message": self.message,
        }


class ContainerRepair:
    """
    Header-offset detection and trimming for recovered containers
    """

    def __init__(self, scan_window: int = 2048):
        self.scan_window = scan_window

    @property
    def head_size(self) -> int:
        """Leading bytes needed to decide a repair"""
        return self.scan_window + MAGIC_MARGIN

    def find_header_offset(self, head: bytes, extension: Optional[str]) -> Optional[int]:
        """
        Locate the expected magic bytes for an extension

        Args:
            head: Leading bytes of the recovered data
            extension: Target extension or file name

        Returns:
            Offset of the magic, or None when absent or the format has no magic
        """
        fmt = format_for_extension(extension)
        if fmt is None or not fmt.magic:
            return None
        # Magic must start inside the scan window
        window = head[:self.scan_window + len(fmt.magic) - 1]
        offset = window.find(fmt.magic)
        return offset if offset >= 0 else None

    def _detected_extension(self, fmt: Optional[FileFormat], data: bytes,
                            extension: Optional[str]) -> Optional[str]:
        if fmt is None:
            return None
        ext = normalize_extension(extension)
        if ext in fmt.extensions:
            return ext
        return suggest_extension(fmt.name, fmt.validator(data[:4096]).subtype)

    def repair(self, data: bytes, extension: Optional[str]) -> RepairedOutput:
        """
        Trim leading junk in front of the container header

        Args:
            data: Recovered plaintext
            extension: Target extension or original file name

        Returns:
            RepairedOutput
        """
        fmt = format_for_extension(extension)
        if fmt is None or not fmt.magic:
            detected = detect_format(data)
            return RepairedOutput(
                data,
                0 if detected else None,
                self._detected_extension(detected, data, extension),
                "No header magic for this extension; data left unchanged",
            )

        offset = self.find_header_offset(data, extension)
        if offset is None:
            logger.warning(f"{fmt.name.upper()} header not found in the first {self.scan_window} bytes")
            return RepairedOutput(data, None, None, f"{fmt.name.upper()} header not found; data left unchanged")
        if offset == 0:
            return RepairedOutput(data, 0, self._detected_extension(fmt, data, extension), "Header intact")

        trimmed = data[offset:]
        logger.info(f"{fmt.name.upper()} header found at offset {offset}, trimming")
        return RepairedOutput(
            trimmed, offset,
            self._detected_extension(fmt, trimmed, extension),
            f"Removed {offset} bytes before the {fmt.name.upper()} header",
        )

    def repair_file(self, path: str, extension: Optional[str] = None,
                    chunk_size: int = 1024 * 1024) -> RepairedOutput:
        """
        Repair a recovered file in place with streaming I/O

        Args:
            path: Recovered file
            extension: Target extension (defaults to the file's own)
            chunk_size: Copy buffer size

        Returns:
            RepairedOutput whose data is the head of the repaired file
        """
        extension = extension if extension is not None else path
        try:
            with open(path, "rb") as f:
                head = f.read(self.head_size)
        except OSError as e:
            raise RecoveryIOError(f"Cannot read {path}: {e}", path=path) from e

        result = self.repair(head, extension)
        if not result.repaired:
            return result

        offset = result.header_offset_found
        directory = os.path.dirname(os.path.abspath(path))
        fd, temp_path = tempfile.mkstemp(prefix=".repair_", dir=directory)
        try:
            with os.fdopen(fd, "wb") as out, open(path, "rb") as src:
                src.seek(offset)
                shutil.copyfileobj(src, out, chunk_size)
            os.replace(temp_path, path)
        except OSError as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise RecoveryIOError(f"Cannot rewrite {path}: {e}", path=path) from e
        return result

    def writer(self, sink: BinaryIO, extension: Optional[str]) -> "RepairingWriter":
        """Wrap a binary sink so the stream written to it is repaired on the fly"""
        return RepairingWriter(self, sink, extension)

    def validate(self, data: bytes, extension: Optional[str]) -> FormatCheck:
        """Run the format table's validator for an extension"""
        fmt = format_for_extension(extension)
        if fmt is None:
            detected = detect_format(data)
            if detected is None:
                return FormatCheck(False, f"Unknown file type: {extension}")
            fmt = detected
        return fmt.validator(data)


class RepairingWriter:
    """
    Write-through wrapper that repairs the header of a streamed output

    Only the first head_size bytes are held back. Once they are in (or the
    stream ends), they are repaired and written, and every later write goes
    straight to the sink.
    """

    def __init__(self, repairer: ContainerRepair, sink: BinaryIO, extension: Optional[str]):
        self.repairer = repairer
        self.sink = sink
        self.extension = extension
        self.bytes_written = 0
        self.result: Optional[RepairedOutput] = None
        self._head = bytearray()

    def write(self, data) -> int:
        if self.result is not None:
            count = self.sink.write(data)
            self.bytes_written += len(data)
            return count if count is not None else len(data)

        self._head += data
        if len(self._head) >= self.repairer.head_size:
            self._flush_head()
        return len(data)

    def _flush_head(self) -> None:
        self.result = self.repairer.repair(bytes(self._head), self.extension)
        self._head = bytearray()
        if self.result.data:
            self.sink.write(self.result.data)
            self.bytes_written += len(self.result.data)

    def finish(self) -> RepairedOutput:
        """Flush a short stream that never filled the head; returns the repair result"""
        if self.result is None:
            self._flush_head()
        return self.result
