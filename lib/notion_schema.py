"""
Validation of the user's Notion tasks database.

The sync needs one property of each of these types: title, status (with
"Done" and "To Do" options), date, last_edited_time and last_edited_by.
The first property of each type is used.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator

from lib.errors import NotionSchemaError
from lib.models import NotionProperty, NotionPropsMap, NotionStatus

REQUIRED_PROPERTY_TYPES = {
    'title': 'title',
    'status': 'status',
    'due': 'date',
    'last_edited': 'last_edited_time',
    'last_edited_by': 'last_edited_by',
}


class PropertySchema(BaseModel):
    id: str
    name: str


class TitleProperty(PropertySchema):
    type: Literal['title']


class StatusOption(BaseModel):
    id: Optional[str] = None
    name: str
    color: Optional[str] = None


class StatusConfig(BaseModel):
    options: List[StatusOption]

    @field_validator('options')
    @classmethod
    def has_done_and_todo(cls, options: List[StatusOption]) -> List[StatusOption]:
        names = {option.name for option in options}
        missing = [s.value for s in NotionStatus if s.value not in names]
        if missing:
            raise ValueError(f"status options must include {', '.join(missing)}")
        return options


class StatusProperty(PropertySchema):
    type: Literal['status']
    status: StatusConfig


class DateProperty(PropertySchema):
    type: Literal['date']


class LastEditedTimeProperty(PropertySchema):
    type: Literal['last_edited_time']


class LastEditedByProperty(PropertySchema):
    type: Literal['last_edited_by']


class DatabaseProps(BaseModel):
    title: TitleProperty
    status: StatusProperty
    due: DateProperty
    last_edited: LastEditedTimeProperty
    last_edited_by: LastEditedByProperty


def _pick_properties(database: Dict[str, Any]) -> Dict[str, Any]:
    props = list((database.get('properties') or {}).values())
    picked = {}
    for field_name, prop_type in REQUIRED_PROPERTY_TYPES.items():
        match = next((p for p in props if p.get('type') == prop_type), None)
        if match is not None:
            picked[field_name] = match
    return picked


def _format_issue(error: Dict[str, Any]) -> str:
    location = '.'.join(str(part) for part in error.get('loc', ()))
    field_name = location.split('.')[0] if location else ''
    if error.get('type') == 'missing' and field_name in REQUIRED_PROPERTY_TYPES and '.' not in location:
        return f"missing a '{REQUIRED_PROPERTY_TYPES[field_name]}' property"
    return f"{location}: {error.get('msg')}"


def build_props_map(database: Dict[str, Any]) -> NotionPropsMap:
    """Validated property map for a database; raises NotionSchemaError otherwise."""
    try:
        props = DatabaseProps.model_validate(_pick_properties(database))
    except ValidationError as e:
        raise NotionSchemaError([_format_issue(err) for err in e.errors()]) from e

    def to_property(prop: PropertySchema, prop_type: str) -> NotionProperty:
        return NotionProperty(id=prop.id, name=prop.name, type=prop_type)

    return NotionPropsMap(
        title=to_property(props.title, 'title'),
        status=to_property(props.status, 'status'),
        due=to_property(props.due, 'date'),
        last_edited=to_property(props.last_edited, 'last_edited_time'),
        last_edited_by=to_property(props.last_edited_by, 'last_edited_by'),
    )
