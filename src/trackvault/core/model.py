"""Library record models.

Records are stored and served with camelCase field names. Reads are
forgiving: a document written by an older version (free-form category,
unknown keys) still loads. Writes through RecordPatch are validated.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

Category = Literal["cycling", "running"]
ImageSize = Literal["small", "medium", "large"]


class LibraryModel(BaseModel):
    """Base model for persisted library data."""

    model_config = {
        "extra": "allow",
        "populate_by_name": True,
    }

    def to_document(self) -> dict[str, Any]:
        """Serialize with wire aliases, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RecordStyle(LibraryModel):
    """Partial track style override."""

    color: str | None = None
    opacity: float | None = None
    width: float | None = None


class LibraryRecord(LibraryModel):
    """One library entry."""

    id: str
    name: str
    filename: str
    tags: list[str] = Field(default_factory=list)
    date: str

    description: str | None = None
    custom_name: str | None = Field(default=None, alias="customName")
    category: str | None = None
    is_race: bool | None = Field(default=None, alias="isRace")
    race_start_date: str | None = Field(default=None, alias="raceStartDate")
    race_end_date: str | None = Field(default=None, alias="raceEndDate")
    race_webpage: str | None = Field(default=None, alias="raceWebpage")
    race_tips: str | None = Field(default=None, alias="raceTips")
    style: RecordStyle | None = None
    image: str | None = None
    image_size: str | None = Field(default=None, alias="imageSize")


class RecordPatch(BaseModel):
    """Partial update of a record's user-editable fields.

    Only fields present in the request are applied; an explicit null
    clears the field. Identity and blob references (id, name, filename,
    image, date) are not editable here and are ignored if sent.
    """

    model_config = {
        "extra": "ignore",
        "populate_by_name": True,
    }

    tags: list[str] | None = None
    description: str | None = None
    style: RecordStyle | None = None
    custom_name: str | None = Field(default=None, alias="customName")
    category: Category | None = None
    is_race: bool | None = Field(default=None, alias="isRace")
    race_start_date: str | None = Field(default=None, alias="raceStartDate")
    race_end_date: str | None = Field(default=None, alias="raceEndDate")
    race_webpage: str | None = Field(default=None, alias="raceWebpage")
    race_tips: str | None = Field(default=None, alias="raceTips")
    image_size: ImageSize | None = Field(default=None, alias="imageSize")

    def to_fields(self) -> dict[str, Any]:
        """Return the supplied fields keyed by their wire alias."""
        fields: dict[str, Any] = {}
        for name in self.model_fields_set:
            info = type(self).model_fields[name]
            value = getattr(self, name)
            if isinstance(value, BaseModel):
                value = value.model_dump(by_alias=True, exclude_none=True)
            fields[info.alias or name] = value
        return fields
