"""
Template authoring state.

The editor assigns field ids from a counter ("field_1", "field_2", ...).
The counter belongs to one TemplateBuilder, so two templates edited side by
side never share it.
"""

import re
from typing import Any, Dict, List, Optional

import config
from models import FieldType, PosterField, Template, TextAlign

_FIELD_ID_PATTERN = re.compile(r"^field_(\d+)$")


class TemplateBuilder:
    """Build or edit the ordered field list of one template."""

    def __init__(self, name: str, category_id: Optional[int] = None, image_path: str = ""):
        self.name = name
        self.category_id = category_id
        self.image_path = image_path
        self._fields: List[PosterField] = []
        self._counter = 0

    @classmethod
    def from_template(cls, template: Template) -> "TemplateBuilder":
        """Resume editing an existing template; new ids continue after the highest field_N."""
        builder = cls(template.name, template.category_id, template.image_path)
        for field in template.fields:
            builder._fields.append(field.model_copy())
            match = _FIELD_ID_PATTERN.match(field.id)
            if match:
                builder._counter = max(builder._counter, int(match.group(1)))
        return builder

    @property
    def fields(self) -> List[PosterField]:
        return list(self._fields)

    def _next_id(self) -> str:
        self._counter += 1
        return f"field_{self._counter}"

    def _add(self, field_type: FieldType, x: float, y: float, width: float, height: float, **attrs: Any) -> PosterField:
        field_id = self._next_id()
        attrs.setdefault("label", f"{field_type.value.capitalize()} Field {self._counter}")
        field = PosterField(id=field_id, type=field_type, x=x, y=y, width=width, height=height, **attrs)
        self._fields.append(field)
        return field

    def add_text_field(
        self,
        x: float = 10,
        y: float = 10,
        width: float = 30,
        height: float = 10,
        font_size: int = config.DEFAULT_FONT_SIZE,
        color: str = config.DEFAULT_TEXT_COLOR,
        align: TextAlign = TextAlign.LEFT,
        font_family: Optional[str] = "Arial",
        label: Optional[str] = None,
        required: bool = False,
    ) -> PosterField:
        attrs: Dict[str, Any] = {
            "font_size": font_size,
            "color": color,
            "align": align,
            "font_family": font_family,
            "required": required,
        }
        if label:
            attrs["label"] = label
        return self._add(FieldType.TEXT, x, y, width, height, **attrs)

    def add_image_field(self, x: float = 10, y: float = 10, width: float = 30, height: float = 30,
                        label: Optional[str] = None, required: bool = False) -> PosterField:
        attrs: Dict[str, Any] = {"required": required}
        if label:
            attrs["label"] = label
        return self._add(FieldType.IMAGE, x, y, width, height, **attrs)

    def add_logo_field(self, x: float = 10, y: float = 10, width: float = 15, height: float = 15,
                       label: Optional[str] = None, required: bool = False) -> PosterField:
        attrs: Dict[str, Any] = {"required": required}
        if label:
            attrs["label"] = label
        return self._add(FieldType.LOGO, x, y, width, height, **attrs)

    def update_field(self, field_id: str, **changes: Any) -> PosterField:
        """Replace attributes of one field (snake_case names); raises KeyError for unknown ids."""
        for i, field in enumerate(self._fields):
            if field.id == field_id:
                data = field.model_dump()
                data.update(changes)
                self._fields[i] = PosterField.model_validate(data)
                return self._fields[i]
        raise KeyError(field_id)

    def remove_field(self, field_id: str) -> None:
        before = len(self._fields)
        self._fields = [f for f in self._fields if f.id != field_id]
        if len(self._fields) == before:
            raise KeyError(field_id)

    def clear(self) -> None:
        self._fields = []
        self._counter = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category_id": self.category_id,
            "image_path": self.image_path,
            "fields": [f.to_payload() for f in self._fields],
        }
