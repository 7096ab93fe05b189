from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from vnotes.config import NoteLimits

ENVELOPE_VERSION = "1.0"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    # 2026-10-19T08:30:00.123Z
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(s: str) -> datetime:
    text = s.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Note(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", strict=True)

    id: str = Field(min_length=1)
    title: str
    content: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def must_be_instant(cls, v: str) -> str:
        parse_timestamp(v)
        return v

    @model_validator(mode="after")
    def check_bounds(self, info: ValidationInfo) -> "Note":
        limits = (info.context or {}).get("limits") or NoteLimits()
        if not self.title.strip() or len(self.title) > limits.max_title_length:
            raise ValueError("title out of bounds")
        if not self.content.strip() or len(self.content) > limits.max_content_length:
            raise ValueError("content out of bounds")
        if parse_timestamp(self.updated_at) < parse_timestamp(self.created_at):
            raise ValueError("updatedAt precedes createdAt")
        return self

    @property
    def created(self) -> datetime:
        return parse_timestamp(self.created_at)

    @property
    def updated(self) -> datetime:
        return parse_timestamp(self.updated_at)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class NotesEnvelope(BaseModel):
    """The persisted snapshot of the whole note set."""

    model_config = ConfigDict(populate_by_name=True)

    notes: list[Note]
    last_modified: str = Field(alias="lastModified")
    version: str = ENVELOPE_VERSION


class ExportEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notes: list[Note]
    export_date: str = Field(alias="exportDate")
    version: str = ENVELOPE_VERSION
