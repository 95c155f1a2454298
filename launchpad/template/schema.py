"""Models for ARM template and parameters documents."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import ExclusionRule


class ParameterType(str, Enum):
    """ARM parameter types."""
    STRING = "string"
    INT = "int"
    BOOL = "bool"
    SECURE_STRING = "secureString"
    ARRAY = "array"
    OBJECT = "object"
    SECURE_OBJECT = "secureObject"

    @classmethod
    def normalize(cls, value):
        """ARM matches type names case-insensitively."""
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return value


class ParameterMetadata(BaseModel):
    """The ``metadata`` block of a template parameter."""
    model_config = ConfigDict(frozen=True, extra='allow', populate_by_name=True)

    description: str = ""
    ignore_when: Dict[str, List[Any]] = Field(default_factory=dict, alias='ignoreWhen')

    @field_validator('ignore_when', mode='before')
    @classmethod
    def _listify(cls, value):
        if isinstance(value, dict):
            return {k: v if isinstance(v, list) else [v] for k, v in value.items()}
        return value


class ParameterSchema(BaseModel):
    """A parameter declared by a template."""
    model_config = ConfigDict(frozen=True, extra='ignore', populate_by_name=True)

    name: str
    type: ParameterType = ParameterType.STRING
    default_value: Any = Field(default=None, alias='defaultValue')
    allowed_values: Optional[List[Any]] = Field(default=None, alias='allowedValues')
    metadata: ParameterMetadata = Field(default_factory=ParameterMetadata)

    @field_validator('type', mode='before')
    @classmethod
    def _normalize_type(cls, value):
        return ParameterType.normalize(value)

    @property
    def has_default(self) -> bool:
        """True when the template declares ``defaultValue``, even as null."""
        return 'default_value' in self.model_fields_set

    @property
    def description(self) -> str:
        return self.metadata.description

    def exclusion_rules(self) -> List[ExclusionRule]:
        return [
            ExclusionRule(parameter=self.name, when=other, equals=values)
            for other, values in self.metadata.ignore_when.items()
        ]


@dataclass(frozen=True)
class TemplateDocument:
    """A deployment template. ``body`` is the untouched JSON sent to the backend."""
    location: str
    body: Dict[str, Any]
    schema: Tuple[ParameterSchema, ...] = ()

    @classmethod
    def from_body(cls, location: str, body: Dict[str, Any]) -> "TemplateDocument":
        """Validate a parsed template.

        Raises:
            ValueError: If ``parameters`` is missing or an entry is invalid.
        """
        parameters = body.get('parameters')
        if not isinstance(parameters, dict):
            raise ValueError("document lacks a 'parameters' object")
        schema = []
        for name, definition in parameters.items():
            if not isinstance(definition, dict):
                raise ValueError(f"parameter '{name}' must be an object")
            schema.append(ParameterSchema.model_validate({**definition, 'name': name}))
        return cls(location=location, body=body, schema=tuple(schema))


@dataclass(frozen=True)
class ParameterValuesDocument:
    """A parameters file: name -> supplied value. May be partial or empty."""
    location: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_body(cls, location: str, body: Dict[str, Any]) -> "ParameterValuesDocument":
        """Validate a parsed parameters file.

        Entries without a ``value`` key (Key Vault references) are skipped.

        Raises:
            ValueError: If ``parameters`` is missing or not an object.
        """
        parameters = body.get('parameters')
        if not isinstance(parameters, dict):
            raise ValueError("document lacks a 'parameters' object")
        values = {
            name: entry['value']
            for name, entry in parameters.items()
            if isinstance(entry, dict) and 'value' in entry
        }
        return cls(location=location, values=values)

    def supplies(self, name: str) -> bool:
        return name in self.values
