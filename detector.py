#!/usr/bin/env python3
"""
Feed format detection.

Raw bytes are transcoded to UTF-8 according to the document's own encoding
declaration, parsed once, and then offered to each dialect adapter in a fixed
order (Atom, RSS 2.0, RDF). The first dialect that decodes wins.

Documents cut off mid-stream are common with flaky hosts; they are logged and
treated as "no feed" instead of a failure.
"""

import codecs
import re
from typing import Dict, Optional
from xml.etree import ElementTree as ET
from xml.parsers.expat import errors as expat_errors

from config import get_logger
from dialects import DIALECTS
from errors import DecodeError
from models import CanonicalFeed
from telemetry import trace_span

logger = get_logger("detector")

_DECL_BYTES_RE = re.compile(rb'^\s*<\?xml[^>]*?\sencoding\s*=\s*["\']([A-Za-z0-9._:\-]+)["\']', re.IGNORECASE)
_DECL_TEXT_RE = re.compile(r'^(\s*<\?xml[^>]*?\sencoding\s*=\s*["\'])([A-Za-z0-9._:\-]+)(["\'])', re.IGNORECASE)

# Labels that browsers (and most feed producers) actually mean as windows-1252.
_WINDOWS_1252_ALIASES = {"latin-1", "iso8859-1", "ascii"}

_TRUNCATION_CODES = {
    expat_errors.codes[message]
    for message in (
        expat_errors.XML_ERROR_NO_ELEMENTS,
        expat_errors.XML_ERROR_UNCLOSED_TOKEN,
        expat_errors.XML_ERROR_PARTIAL_CHAR,
        expat_errors.XML_ERROR_UNCLOSED_CDATA_SECTION,
    )
}


def _rewrite_declaration(text: str) -> str:
    return _DECL_TEXT_RE.sub(lambda m: f"{m.group(1)}utf-8{m.group(3)}", text, count=1)


def _codec_for(label: str) -> str:
    try:
        name = codecs.lookup(label).name
    except LookupError as e:
        raise DecodeError(f"unsupported charset {label!r}") from e
    if name in _WINDOWS_1252_ALIASES:
        return "cp1252"
    return name


def _trim_before_declaration(doc):
    # expat rejects an XML declaration that is not the very first thing in the document
    stripped = doc.lstrip()
    marker = b"<?xml" if isinstance(doc, bytes) else "<?xml"
    if len(stripped) == len(doc) or not stripped.startswith(marker):
        return doc
    return stripped


def to_utf8(data: bytes) -> bytes:
    """Transcode a feed document to UTF-8, honoring a BOM or its XML declaration."""
    if data.startswith(codecs.BOM_UTF8):
        return _trim_before_declaration(data[len(codecs.BOM_UTF8):])
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        text = _trim_before_declaration(data.decode("utf-16"))
        return _rewrite_declaration(text).encode("utf-8")

    data = _trim_before_declaration(data)
    match = _DECL_BYTES_RE.match(data[:512])
    if not match:
        return data
    codec = _codec_for(match.group(1).decode("ascii"))
    if codec == "utf-8":
        return data
    logger.debug(f"transcoding document from {codec} to utf-8")
    text = data.decode(codec, errors="replace")
    return _rewrite_declaration(text).encode("utf-8")


def is_truncated(error: ET.ParseError) -> bool:
    """True when expat gave up because the input ended prematurely."""
    return getattr(error, "code", None) in _TRUNCATION_CODES


@trace_span(
    "detect_feed",
    tracer_name="detector",
    attr_from_args=lambda data: {"feed.bytes": len(data) if data else 0},
)
def detect(data: bytes) -> Optional[CanonicalFeed]:
    """Decode raw feed bytes into a CanonicalFeed.

    Returns:
        The canonical feed, or None when the document was truncated.

    Raises:
        DecodeError: The bytes are not a feed in any supported dialect.
        NormalizationError: The document is a known dialect but structurally unusable.
    """
    if not data or not data.strip():
        raise DecodeError("empty document", {dialect.name: "EOF" for dialect in DIALECTS})

    try:
        root = ET.fromstring(to_utf8(data))
    except ET.ParseError as e:
        if is_truncated(e):
            logger.warning(f"ignoring truncated document err={e}")
            return None
        errors = {dialect.name: f"XML syntax error: {e}" for dialect in DIALECTS}
        raise DecodeError(_describe(errors), errors) from e

    errors: Dict[str, str] = {}
    for dialect in DIALECTS:
        try:
            decoded = dialect.decode(root)
        except DecodeError as e:
            errors[dialect.name] = str(e)
            continue
        return decoded.to_canonical_feed()

    logger.info(_describe(errors))
    raise DecodeError(_describe(errors), errors)


def _describe(errors: Dict[str, str]) -> str:
    details = " ".join(f"for {name} err=[{message}]" for name, message in errors.items())
    return f"failed to unmarshal feed {details}"
