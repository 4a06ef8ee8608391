"""
Document payload resolution (bytes/text -> document.xml string).

A Word timetable reaches us in one of three shapes:
- a .docx file (ZIP container) holding word/document.xml
- a Flat OPC .xml file (one XML document wrapping every part inline)
- the bare document.xml text

The ZIP path is a minimal reader: it walks the central directory to find the
one entry we need and inflates it. It does not implement full archive
semantics (no ZIP64, no encryption, no multi-disk).
"""

from __future__ import annotations

import io
import logging
import struct
import zipfile
import zlib
from functools import lru_cache
from typing import Any, Callable, Optional, Tuple, Union

from calhelper.errors import (
    ArchiveError,
    CorruptArchiveError,
    DecoderUnavailableError,
    InputFormatError,
    MissingDocumentPartError,
    UnsupportedCompressionError,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ZIP constants
# ---------------------------------------------------------------------------

SIG_LOCAL_FILE_HEADER = b"PK\x03\x04"
SIG_CENTRAL_DIRECTORY = b"PK\x01\x02"
SIG_END_OF_CENTRAL_DIRECTORY = b"PK\x05\x06"

COMPRESSION_STORE = 0
COMPRESSION_DEFLATE = 8

EOCD_MIN_SIZE = 22
EOCD_MAX_COMMENT = 0xFFFF
LOCAL_HEADER_SIZE = 30
CENTRAL_HEADER_SIZE = 46

# signature, disk, cd disk, entries on disk, total entries, cd size, cd offset, comment length
_EOCD = struct.Struct("<4sHHHHIIH")
# signature .. local header offset (46 bytes)
_CENTRAL = struct.Struct("<4sHHHHHHIIIHHHHHII")

DOCUMENT_PART = "word/document.xml"
FLAT_OPC_PART_NAME = "/word/document.xml"

Inflater = Callable[[bytes], bytes]
FallbackDecoder = Callable[[bytes, str], str]
InputData = Union[str, bytes, bytearray, memoryview]


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------


def inflate_raw(data: bytes) -> bytes:
    """
    Inflate a raw deflate stream (no zlib header), as stored in ZIP entries.
    """
    return zlib.decompress(data, -zlib.MAX_WBITS)


class ZipFileDecoder:
    """
    Fallback decoder backed by the standard library zipfile module.

    Called as decoder(data, part_name) and returns the part as text. Accepts
    the same compression methods as the built-in reader (store, deflate).
    """

    def __call__(self, data: bytes, part_name: str) -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                try:
                    info = zf.getinfo(part_name)
                except KeyError:
                    raise MissingDocumentPartError(f"{part_name} is missing from the ZIP package")
                if info.compress_type not in (zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED):
                    raise UnsupportedCompressionError(info.compress_type)
                raw = zf.read(info)
        except zipfile.BadZipFile as exc:
            raise CorruptArchiveError(f"ZIP data is corrupted: {exc}") from exc
        return raw.decode("utf-8-sig", errors="replace")


@lru_cache(maxsize=None)
def default_fallback_decoder() -> ZipFileDecoder:
    """
    Return the process-wide fallback decoder (created on first use).
    """
    return ZipFileDecoder()


# ---------------------------------------------------------------------------
# ZIP walking
# ---------------------------------------------------------------------------


def find_end_of_central_directory(data: bytes) -> int:
    """
    Return the offset of the end-of-central-directory record, or -1.

    The record sits in the last 22 bytes plus at most 64 KiB of comment.
    """
    if len(data) < EOCD_MIN_SIZE:
        return -1
    stop = max(0, len(data) - (EOCD_MIN_SIZE + EOCD_MAX_COMMENT))
    return data.rfind(SIG_END_OF_CENTRAL_DIRECTORY, stop, len(data) - EOCD_MIN_SIZE + 4)


def locate_zip_entry(data: bytes, target_name: str) -> Optional[Tuple[int, int, int]]:
    """
    Walk the central directory and return (compression, compressed_size,
    local_header_offset) for target_name, or None if the entry is absent.
    """
    eocd = find_end_of_central_directory(data)
    if eocd == -1:
        raise CorruptArchiveError("ZIP end of central directory record not found")

    _, _, _, _, total_entries, _, cd_offset, _ = _EOCD.unpack_from(data, eocd)

    offset = cd_offset
    for _ in range(total_entries):
        if offset + CENTRAL_HEADER_SIZE > len(data):
            raise CorruptArchiveError("ZIP central directory is corrupted")
        fields = _CENTRAL.unpack_from(data, offset)
        if fields[0] != SIG_CENTRAL_DIRECTORY:
            raise CorruptArchiveError("ZIP central directory is corrupted")

        compression = fields[4]
        compressed_size = fields[8]
        name_length, extra_length, comment_length = fields[10], fields[11], fields[12]
        local_header_offset = fields[16]

        name_start = offset + CENTRAL_HEADER_SIZE
        name_end = name_start + name_length
        file_name = data[name_start:name_end].decode("utf-8", errors="replace")
        if file_name == target_name:
            return compression, compressed_size, local_header_offset

        offset = name_end + extra_length + comment_length

    return None


# ---------------------------------------------------------------------------
# Flat OPC
# ---------------------------------------------------------------------------


def extract_flat_opc_document(pkg_xml: str) -> str:
    """
    Return the <pkg:xmlData> content of the /word/document.xml part.

    Plain substring search over the package text: the wrapper format is fixed,
    so no XML parser is involved.
    """
    part_open = "<pkg:part"
    part_close = "</pkg:part>"
    data_open = "<pkg:xmlData>"
    data_close = "</pkg:xmlData>"
    name_attr = f'pkg:name="{FLAT_OPC_PART_NAME}"'

    pos = 0
    while True:
        start = pkg_xml.find(part_open, pos)
        if start == -1:
            break
        tag_end = pkg_xml.find(">", start)
        if tag_end == -1:
            break
        close = pkg_xml.find(part_close, tag_end)
        if close == -1:
            break

        if name_attr in pkg_xml[start:tag_end]:
            body = pkg_xml[tag_end + 1 : close]
            i = body.find(data_open)
            j = body.find(data_close, i + len(data_open)) if i != -1 else -1
            if i == -1 or j == -1:
                raise MissingDocumentPartError("Flat OPC part /word/document.xml has no xmlData")
            return body[i + len(data_open) : j]

        pos = close + len(part_close)

    raise MissingDocumentPartError("Flat OPC package has no /word/document.xml part")


def _unwrap_xml(text: str) -> str:
    # Flat OPC package or bare document.xml
    if "<pkg:package" in text:
        return extract_flat_opc_document(text)
    return text


def _strip_leading(text: str) -> str:
    return text.lstrip("\ufeff").lstrip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_DEFAULT: Any = object()


class ArchiveReader:
    """
    Turns uploaded bytes/text into the document.xml string.

    Both decompression capabilities are injectable:
    - inflater: raw-deflate function used by the built-in ZIP reader
      (None means deflate is unavailable)
    - fallback: decoder(data, part_name) -> text, tried once when the
      built-in reader fails (None disables the fallback; the default is the
      shared zipfile based decoder)
    """

    def __init__(
        self,
        inflater: Optional[Inflater] = inflate_raw,
        fallback: Optional[FallbackDecoder] = _DEFAULT,
    ) -> None:
        self.inflater = inflater
        self._fallback = fallback

    @property
    def fallback(self) -> Optional[FallbackDecoder]:
        if self._fallback is _DEFAULT:
            self._fallback = default_fallback_decoder()
        return self._fallback

    def read_document(self, data: InputData) -> str:
        """
        Resolve the document.xml text from any supported input shape.
        """
        if isinstance(data, str):
            trimmed = _strip_leading(data)
            if trimmed.startswith("<?xml"):
                return _unwrap_xml(trimmed)
            data = data.encode("utf-8")

        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
        if not isinstance(data, bytes):
            raise InputFormatError(
                f"Unsupported input type {type(data).__name__}; expected text or bytes"
            )

        if len(data) < 4:
            raise InputFormatError("File data is too short to parse")

        if data[:4] in (SIG_LOCAL_FILE_HEADER, SIG_END_OF_CENTRAL_DIRECTORY):
            return self.read_zip(data)

        text = _strip_leading(data.decode("utf-8", errors="replace"))
        if text.startswith("<?xml"):
            return _unwrap_xml(text)

        raise InputFormatError(
            "Unrecognized file format; please upload a timetable exported from Word"
        )

    def read_zip(self, data: bytes) -> str:
        """
        Extract word/document.xml from a ZIP package.

        Tries the built-in reader first, then the fallback decoder once.
        If the fallback fails too, an archive-related original error wins;
        any other original error gives way to the fallback's error.
        """
        try:
            return self._read_zip_builtin(data)
        except Exception as error:
            fallback = self.fallback
            if fallback is None:
                raise
            log.warning("Built-in ZIP reader failed (%s); trying fallback decoder", error)
            try:
                return fallback(data, DOCUMENT_PART)
            except Exception as fallback_error:
                log.debug("Fallback decoder failed: %s", fallback_error)
                if isinstance(error, ArchiveError):
                    raise error
                raise

    def _read_zip_builtin(self, data: bytes) -> str:
        entry = locate_zip_entry(data, DOCUMENT_PART)
        if entry is None:
            raise MissingDocumentPartError(f"{DOCUMENT_PART} is missing from the ZIP package")
        compression, compressed_size, local_offset = entry

        if local_offset + LOCAL_HEADER_SIZE > len(data):
            raise CorruptArchiveError("ZIP data is corrupted; local file header is out of range")
        if data[local_offset : local_offset + 4] != SIG_LOCAL_FILE_HEADER:
            raise CorruptArchiveError("ZIP data is corrupted; bad local file header")

        name_length, extra_length = struct.unpack_from("<HH", data, local_offset + 26)
        data_start = local_offset + LOCAL_HEADER_SIZE + name_length + extra_length
        data_end = data_start + compressed_size
        if data_end > len(data):
            raise CorruptArchiveError("ZIP data is corrupted; cannot read the complete file")

        payload = data[data_start:data_end]
        if compression == COMPRESSION_STORE:
            raw = payload
        elif compression == COMPRESSION_DEFLATE:
            if self.inflater is None:
                raise DecoderUnavailableError()
            try:
                raw = self.inflater(payload)
            except zlib.error as exc:
                raise CorruptArchiveError(f"Cannot inflate {DOCUMENT_PART}: {exc}") from exc
        else:
            raise UnsupportedCompressionError(compression)

        return raw.decode("utf-8-sig", errors="replace")


def resolve_document_xml(data: InputData, reader: Optional[ArchiveReader] = None) -> str:
    """
    Convenience wrapper: resolve document.xml with the given (or a default) reader.
    """
    return (reader or ArchiveReader()).read_document(data)
