"""Pydantic models for parsed export documents.

These models are the typed side of the export parser. Every field that
the source document may omit is optional here; absence is normal and
never defaulted to zero or false. Models are frozen once parsed.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from notevault.enex.dates import parse_export_date


class NoteAttributes(BaseModel):
    """Provenance metadata attached to a note.

    Attributes:
        source_url: URL the note was clipped from
        source_application: Application that created the note
        latitude: Latitude where the note was created
        longitude: Longitude where the note was created
        altitude: Altitude where the note was created
        author: Author of the note
        source: Source marker (e.g. 'web.clip')
        reminder_order: Reminder ordering value
        reminder_time: When the reminder should fire
        reminder_done_time: When the reminder was completed
        place_name: Named place
        content_class: Content class (e.g. 'yinxiang.note')
        subject_date: Subject date
    """

    model_config = ConfigDict(frozen=True)

    source_url: str | None = None
    source_application: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    author: str | None = None
    source: str | None = None
    reminder_order: int | None = None
    reminder_time: str | None = None
    reminder_done_time: str | None = None
    place_name: str | None = None
    content_class: str | None = None
    subject_date: str | None = None


class ResourceAttributes(BaseModel):
    """Provenance metadata attached to a resource."""

    model_config = ConfigDict(frozen=True)

    source_url: str | None = None
    timestamp: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    camera_make: str | None = None
    camera_model: str | None = None
    attachment: bool | None = None
    file_name: str | None = None


class AlternateData(BaseModel):
    """Secondary payload of a resource, such as a thumbnail."""

    model_config = ConfigDict(frozen=True)

    data: str
    encoding: str = "base64"


class Resource(BaseModel):
    """A binary attachment embedded in a note.

    Attributes:
        data: Encoded payload with all whitespace removed
        encoding: Payload encoding (almost always 'base64')
        mime: MIME type of the decoded payload
        width: Width in pixels (images)
        height: Height in pixels (images)
        duration: Duration in seconds (audio/video)
        resource_attributes: Provenance metadata
        recognition: OCR / recognition index blob
        alternate_data: Secondary payload, if exported
    """

    model_config = ConfigDict(frozen=True)

    data: str
    encoding: str = "base64"
    mime: str = "application/octet-stream"
    width: int | None = None
    height: int | None = None
    duration: float | None = None
    resource_attributes: ResourceAttributes | None = None
    recognition: str | None = None
    alternate_data: AlternateData | None = None


class Note(BaseModel):
    """A single note from an export document.

    `created` and `updated` keep the raw textual timestamps as exported;
    `created_at` and `updated_at` give the parsed UTC datetimes.
    """

    model_config = ConfigDict(frozen=True)

    title: str = "Untitled"
    content: str = ""
    created: str | None = None
    updated: str | None = None
    tags: list[str] = Field(default_factory=list)
    note_attributes: NoteAttributes | None = None
    resources: list[Resource] = Field(default_factory=list)

    @property
    def created_at(self) -> datetime | None:
        """Creation time as a UTC datetime, if parseable."""
        return parse_export_date(self.created)

    @property
    def updated_at(self) -> datetime | None:
        """Last update time as a UTC datetime, if parseable."""
        return parse_export_date(self.updated)


class ExportDocument(BaseModel):
    """Root of a parsed export document."""

    model_config = ConfigDict(frozen=True)

    export_date: str | None = None
    application: str | None = None
    version: str | None = None
    notes: list[Note] = Field(default_factory=list)

    @property
    def tags(self) -> list[str]:
        """Distinct tag names across all notes, in first-seen order."""
        return list(dict.fromkeys(tag for note in self.notes for tag in note.tags))

    @property
    def resources(self) -> list[Resource]:
        """All resources across all notes."""
        return [resource for note in self.notes for resource in note.resources]
