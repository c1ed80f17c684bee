"""Export document parser.

Converts the XML export format (an `en-export` root holding `note`
elements, each with tags, resources and attribute blocks) into the typed
models in `notevault.enex.models`.

Parsing happens in two layers:

1. lxml reads the document into a generic node tree. A leaf element
   without attributes becomes its stripped text; every other element
   becomes a dict of `@attribute` keys, a `#text` key and child values.
   Elements that may repeat (`note`, `tag`, `resource`) are always
   collected into lists, even when the document holds exactly one.
2. One decoder per entity turns nodes into models and absorbs every
   per-field irregularity with a default. Only a missing root element
   is fatal.

Example:
    >>> document = parse_export(xml_text)
    >>> document.notes[0].title
    'Shopping list'
"""

import math
import re
from typing import Any

from lxml import etree

from notevault.dependencies import ExportFormatError, logger
from notevault.enex.models import (
    AlternateData,
    ExportDocument,
    Note,
    NoteAttributes,
    Resource,
    ResourceAttributes,
)

ROOT_ELEMENT = "en-export"
ALWAYS_LIST = frozenset({"note", "tag", "resource"})

DEFAULT_ENCODING = "base64"
DEFAULT_MIME = "application/octet-stream"

_WHITESPACE = re.compile(r"\s+")

Node = dict[str, Any]


# =============================================================================
# Public API
# =============================================================================


def parse_export(raw_text: str) -> ExportDocument:
    """Parse export document text into an ExportDocument.

    Args:
        raw_text: Full XML text of the export

    Returns:
        Parsed export with notes, tags and resources

    Raises:
        ExportFormatError: If the document has no en-export root element
    """
    root = _read_root(raw_text)
    node = _element_to_node(root)
    if not isinstance(node, dict):
        node = {}

    notes = [decode_note(raw_note) for raw_note in node.get("note", [])]
    document = ExportDocument(
        export_date=_to_str(node.get("@export-date")),
        application=_to_str(node.get("@application")),
        version=_to_str(node.get("@version")),
        notes=notes,
    )

    logger.info(
        "export_parsed",
        extra={
            "notes": len(notes),
            "resources": len(document.resources),
            "application": document.application,
        },
    )
    return document


def parse_export_bytes(buffer: bytes) -> ExportDocument:
    """Parse an export document from raw bytes (decoded as UTF-8)."""
    return parse_export(buffer.decode("utf-8", errors="replace"))


def is_valid_export(raw_text: str) -> bool:
    """Check whether text parses as an export document.

    Used to gate uploads before an import job is started. Never raises.
    """
    try:
        parse_export(raw_text)
    except ExportFormatError:
        return False
    return True


# =============================================================================
# Entity decoders
# =============================================================================


def decode_note(raw: Any) -> Note:
    """Decode a generic note node into a Note.

    Resources without payload data are dropped so partially exported
    attachments never reach storage.
    """
    node = raw if isinstance(raw, dict) else {}

    tags = [tag for tag in (_to_str(t) for t in _as_list(node.get("tag"))) if tag]

    resources = [decode_resource(r) for r in _as_list(node.get("resource"))]
    kept = [resource for resource in resources if resource.data]
    if len(kept) != len(resources):
        logger.debug("empty_resources_dropped", extra={"dropped": len(resources) - len(kept)})

    raw_attributes = node.get("note-attributes")
    return Note(
        title=_to_str(node.get("title")) or "Untitled",
        content=_text_of(node.get("content")),
        created=_to_str(node.get("created")),
        updated=_to_str(node.get("updated")),
        tags=tags,
        note_attributes=decode_note_attributes(raw_attributes) if raw_attributes else None,
        resources=kept,
    )


def decode_resource(raw: Any) -> Resource:
    """Decode a generic resource node into a Resource.

    The payload may be a bare string or wrapped with an `encoding`
    attribute; whitespace (line wrapping in base64) is stripped.
    """
    node = raw if isinstance(raw, dict) else {}

    data, encoding = _decode_payload(node.get("data"))

    alternate = None
    alt_data, alt_encoding = _decode_payload(node.get("alternate-data"))
    if alt_data:
        alternate = AlternateData(data=alt_data, encoding=alt_encoding)

    raw_attributes = node.get("resource-attributes")
    recognition = _text_of(node.get("recognition")) or None

    return Resource(
        data=data,
        encoding=encoding,
        mime=_to_str(node.get("mime")) or DEFAULT_MIME,
        width=_to_int(node.get("width")),
        height=_to_int(node.get("height")),
        duration=_to_float(node.get("duration")),
        resource_attributes=(
            decode_resource_attributes(raw_attributes) if raw_attributes else None
        ),
        recognition=recognition,
        alternate_data=alternate,
    )


def decode_note_attributes(raw: Any) -> NoteAttributes:
    """Decode a note-attributes block."""
    node = raw if isinstance(raw, dict) else {}
    return NoteAttributes(
        source_url=_to_str(node.get("source-url")),
        source_application=_to_str(node.get("source-application")),
        latitude=_to_float(node.get("latitude")),
        longitude=_to_float(node.get("longitude")),
        altitude=_to_float(node.get("altitude")),
        author=_to_str(node.get("author")),
        source=_to_str(node.get("source")),
        reminder_order=_to_int(node.get("reminder-order")),
        reminder_time=_to_str(node.get("reminder-time")),
        reminder_done_time=_to_str(node.get("reminder-done-time")),
        place_name=_to_str(node.get("place-name")),
        content_class=_to_str(node.get("content-class")),
        subject_date=_to_str(node.get("subject-date")),
    )


def decode_resource_attributes(raw: Any) -> ResourceAttributes:
    """Decode a resource-attributes block."""
    node = raw if isinstance(raw, dict) else {}
    attachment = _to_str(node.get("attachment"))
    return ResourceAttributes(
        source_url=_to_str(node.get("source-url")),
        timestamp=_to_str(node.get("timestamp")),
        latitude=_to_float(node.get("latitude")),
        longitude=_to_float(node.get("longitude")),
        altitude=_to_float(node.get("altitude")),
        camera_make=_to_str(node.get("camera-make")),
        camera_model=_to_str(node.get("camera-model")),
        attachment=None if attachment is None else attachment == "true",
        file_name=_to_str(node.get("file-name")),
    )


# =============================================================================
# Generic tree helpers (private)
# =============================================================================


def _read_root(raw_text: str) -> etree._Element:
    """Parse text with lxml and return the en-export root element."""
    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        recover=True,
        huge_tree=True,
        strip_cdata=False,
        encoding="utf-8",
    )
    # Input is already decoded text: the encoding in the XML declaration
    # no longer applies, and unpaired surrogates become "?".
    try:
        root = etree.fromstring(raw_text.encode("utf-8", errors="replace"), parser=parser)
    except etree.XMLSyntaxError as e:
        raise ExportFormatError(f"Invalid export document: {e}") from e

    if root is None or etree.QName(root).localname != ROOT_ELEMENT:
        raise ExportFormatError(f"Invalid export document: missing {ROOT_ELEMENT} root element")
    return root


def _element_to_node(element: etree._Element) -> str | Node:
    """Convert an lxml element into a generic node."""
    children = [child for child in element if isinstance(child.tag, str)]
    text = ((element.text or "") + "".join(child.tail or "" for child in element)).strip()

    if not children and not element.attrib:
        return text

    node: Node = {f"@{name}": value for name, value in element.attrib.items()}
    if text:
        node["#text"] = text

    for child in children:
        name = etree.QName(child).localname
        value = _element_to_node(child)
        if name in ALWAYS_LIST:
            node.setdefault(name, []).append(value)
        elif name in node:
            existing = node[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[name] = [existing, value]
        else:
            node[name] = value
    return node


def _as_list(value: Any) -> list[Any]:
    """Normalize a missing, single or repeated value to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _text_of(value: Any) -> str:
    """Extract text from a value that may be bare or wrapped.

    Wrapped values prefer character data, then plain text, then "".
    """
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("#cdata") or value.get("#text") or ""
    return ""


def _to_str(value: Any) -> str | None:
    text = _text_of(value).strip()
    return text or None


def _to_float(value: Any) -> float | None:
    text = _to_str(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> int | None:
    number = _to_float(value)
    return int(number) if number is not None else None


def _decode_payload(value: Any) -> tuple[str, str]:
    """Extract (data, encoding) from a data or alternate-data node."""
    if isinstance(value, list):
        value = value[0] if value else None
    encoding = DEFAULT_ENCODING
    if isinstance(value, dict) and value.get("@encoding"):
        encoding = str(value["@encoding"])
    return _WHITESPACE.sub("", _text_of(value)), encoding
