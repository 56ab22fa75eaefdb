"""
metadata.py - Flatten a DICOM dataset into printable metadata rows.

Each top-level data element becomes one row of (tag, VR, keyword, value).
Values are rendered for a table, not for round-tripping: sequences and
binary payloads are summarised, and long values are truncated.
"""

import logging
import struct
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.encaps import parse_basic_offsets, parse_fragments
from pydicom.multival import MultiValue
from pydicom.tag import Tag

logger = logging.getLogger(__name__)

MAX_VALUE_LEN = 120

# VRs whose values are raw bytes rather than text or numbers
BINARY_VRS = {"OB", "OD", "OF", "OL", "OV", "OW", "UN"}

_PIXEL_DATA_TAG = Tag(0x7FE0, 0x0010)


@dataclass
class MetadataRow:
    """One rendered data element."""
    tag: str
    vr: str
    alias: str
    value: str


def format_tag(tag) -> str:
    """Format a tag as ``GGGG,EEEE`` in upper-case hex."""
    tag = Tag(tag)
    return f"{tag.group:04X},{tag.element:04X}"


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def _describe_encapsulated(buffer: bytes) -> str:
    stream = BytesIO(buffer)
    try:
        offsets = parse_basic_offsets(stream)
        fragments, _ = parse_fragments(stream)
    except (ValueError, struct.error) as exc:
        logger.debug("Could not parse encapsulated pixel data: %s", exc)
        return "Pixel data (encapsulated)"

    text = f"Pixel data ({fragments} {_plural(fragments, 'fragment', 'fragments')}"
    if offsets:
        entries = len(offsets)
        text += f", offset table {entries} {_plural(entries, 'entry', 'entries')}"
    return text + ")"


def _render(elem: DataElement) -> str:
    vr = str(elem.VR)
    value = elem.value

    if vr == "SQ":
        count = len(value)
        return f"Sequence ({count} {_plural(count, 'item', 'items')})"
    if elem.tag == _PIXEL_DATA_TAG and elem.is_undefined_length:
        return _describe_encapsulated(value)
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, MultiValue, list)) and len(value) == 0:
        return ""
    # "OB or OW" and similar ambiguous VRs still hold bytes
    if vr in BINARY_VRS or isinstance(value, (bytes, bytearray)):
        return f"Binary data ({len(value)} bytes)"
    if vr == "AT":
        tags = value if isinstance(value, (MultiValue, list)) else [value]
        return "\\".join(format_tag(t) for t in tags)
    if isinstance(value, (MultiValue, list)):
        return "\\".join(str(v) for v in value)
    return str(value)


def value_to_string(elem: DataElement, max_len: int = MAX_VALUE_LEN) -> str:
    """
    Render the value of *elem* for display.

    Parameters
    ----------
    elem : DataElement
        The element to render.
    max_len : int
        Longer renderings are cut to this many characters plus an ellipsis.

    Returns
    -------
    str
    """
    rendered = _render(elem)
    if not rendered:
        return "(empty)"
    if len(rendered) > max_len:
        return rendered[:max_len] + "…"
    return rendered


def extract_metadata(ds: Dataset, max_len: int = MAX_VALUE_LEN) -> list[MetadataRow]:
    """Return one MetadataRow per top-level element of *ds* (file meta excluded)."""
    rows: list[MetadataRow] = []
    for elem in ds:
        rows.append(
            MetadataRow(
                tag=format_tag(elem.tag),
                vr=str(elem.VR),
                alias=elem.keyword or "Unknown",
                value=value_to_string(elem, max_len),
            )
        )
    return rows


def attribute_text(ds: Dataset, keyword: str) -> Optional[str]:
    """Return the stripped text of *keyword*, or None if absent or blank."""
    value = ds.get(keyword)
    if value is None:
        return None
    text = str(value).strip()
    return text or None
