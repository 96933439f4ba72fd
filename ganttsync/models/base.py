"""
Base item models for ganttsync.

WorkingItem is the common base for every record held in a working
collection; Task is the Gantt task the editor works with.
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ganttsync.exceptions import ValidationError
from ganttsync.utils import to_instant

ItemT = TypeVar("ItemT", bound="WorkingItem")


class WorkingItem(BaseModel):
    """
    Base model for records in a working collection.

    Only ``id`` is required; any further domain fields are kept as extra
    fields, so generic records can flow through the engines unchanged.
    Fields are accepted and exported in both snake_case and camelCase.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        validate_assignment=True,
    )

    id: str

    def apply(self: ItemT, changes: Mapping[str, Any]) -> ItemT:
        """Return a new item with ``changes`` shallow-merged over this one.

        Args:
            changes: Partial field values (snake_case or camelCase keys).

        Returns:
            A validated copy; this item is left untouched.

        Raises:
            ValidationError: If the merged item is invalid.
        """
        data = self.model_dump()
        data.update(self._normalize_keys(changes))
        try:
            return type(self).model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid changes for item '{self.id}': {e}")

    def clone(self: ItemT) -> ItemT:
        """Return a fully independent structural copy."""
        return self.model_copy(deep=True)

    def field_value(self, field: str) -> Any:
        """Get a field value by name, including extra fields."""
        if field in type(self).model_fields:
            return getattr(self, field)
        return (self.model_extra or {}).get(field)

    @classmethod
    def _normalize_keys(cls, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """Map camelCase aliases back to field names."""
        aliases = {
            info.alias: name
            for name, info in cls.model_fields.items()
            if info.alias and info.alias != name
        }
        return {aliases.get(key, key): value for key, value in changes.items()}

    @classmethod
    def from_payload(cls: "type[ItemT]", data: Mapping[str, Any]) -> ItemT:
        """Build an item from remote data, wrapping validation failures."""
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {cls.__name__} payload: {e}")

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the wire (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def wire_changes(cls, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """Serialize partial changes for the wire (camelCase keys, ISO dates)."""
        wire = {}
        for key, value in cls._normalize_keys(changes).items():
            if isinstance(value, datetime):
                value = value.isoformat()
            wire[to_camel(key)] = value
        return wire


class Task(WorkingItem):
    """Gantt task.

    Dates are instants; ``end_date`` may equal ``start_date`` (milestones)
    but never precede it.
    """

    name: str
    start_date: datetime
    end_date: datetime
    color: str = "#3b82f6"
    position: int = 0
    project_id: Optional[str] = None
    is_milestone: bool = False
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Task names must not be blank."""
        if not v.strip():
            raise ValueError("Task name is required")
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "Task":
        """End date must not precede start date."""
        if to_instant(self.end_date) < to_instant(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self
