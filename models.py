"""
Data model shared by the compositor, the template store and the HTTP surface.

Field attributes keep the camelCase names the browser editor sends
(fontSize, fontFamily, ...) as aliases; Python code uses snake_case.
"""

from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

import config


class FieldType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    LOGO = "logo"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class PosterField(BaseModel):
    """One customizable region of a template, positioned in percentages of the base image."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    id: str
    type: FieldType
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    label: Optional[str] = None
    required: bool = False

    # Text-only attributes
    font_size: int = Field(default=config.DEFAULT_FONT_SIZE, alias="fontSize")
    color: str = config.DEFAULT_TEXT_COLOR
    align: TextAlign = TextAlign.LEFT
    font_family: Optional[str] = Field(default=None, alias="fontFamily")

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        # Older records spell the alignment "textAlign"
        if isinstance(data, dict) and "align" not in data and "textAlign" in data:
            data = dict(data)
            data["align"] = data.pop("textAlign")
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value: Any) -> str:
        return str(value)

    @field_validator("font_size", mode="before")
    @classmethod
    def _default_font_size(cls, value: Any) -> int:
        # The editor sends number inputs as strings such as "18.5"
        try:
            size = round(float(value))
        except (TypeError, ValueError, OverflowError):
            return config.DEFAULT_FONT_SIZE
        return size if size > 0 else config.DEFAULT_FONT_SIZE

    @field_validator("color", mode="before")
    @classmethod
    def _default_color(cls, value: Any) -> Any:
        return value or config.DEFAULT_TEXT_COLOR

    @field_validator("align", mode="before")
    @classmethod
    def _default_align(cls, value: Any) -> Any:
        return value or TextAlign.LEFT

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the camelCase names used on the wire and in storage."""
        data = self.model_dump(by_alias=True, mode="json")
        if self.type != FieldType.TEXT:
            for key in ("fontSize", "color", "align", "fontFamily"):
                data.pop(key, None)
        return data


class Category(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class Template(BaseModel):
    """Reusable poster layout: one base image plus ordered fields (order = z-order)."""

    id: int
    name: str
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    image_path: str
    fields: List[PosterField] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"fields"})
        data["fields"] = [f.to_payload() for f in self.fields]
        return data


class Download(BaseModel):
    id: int
    template_id: int
    user_name: str
    user_mobile: str
    generated_path: Optional[str] = None
    template_name: Optional[str] = None
    category_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class UploadedFile:
    """An uploaded binary blob, already decoded from the wire."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class GenerationRequest:
    """Transient per-request input to the compositor."""

    template_id: str
    text_fields: Dict[str, str] = dataclass_field(default_factory=dict)
    images: List[UploadedFile] = dataclass_field(default_factory=list)
    logos: List[UploadedFile] = dataclass_field(default_factory=list)


class GenerationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    filename: str
    poster_url: str = Field(alias="posterUrl")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "filename": self.filename,
            "posterUrl": self.poster_url,
            "download_url": self.poster_url,
        }
