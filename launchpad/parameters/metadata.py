"""Builds display metadata from a template schema and a parameters file."""
from typing import Iterable, List

from ..template.schema import ParameterSchema, ParameterValuesDocument
from .models import ResolvedParameterMetadata

EMPTY_VALUE = ""


def resolve_value(parameter: ParameterSchema, values: ParameterValuesDocument):
    """Parameters file value, else template default, else an empty string."""
    if values.supplies(parameter.name):
        return values.values[parameter.name]
    if parameter.has_default:
        return parameter.default_value
    return EMPTY_VALUE


def build_metadata(schema: Iterable[ParameterSchema],
                   values: ParameterValuesDocument) -> List[ResolvedParameterMetadata]:
    """Resolve every declared parameter, keeping the template's declaration order.

    Incomplete configuration is not an error: parameters without a supplied
    value or a default resolve to an empty string so the form can still be shown.

    Args:
        schema: Parameters declared by the template.
        values: Values from the parameters file.

    Returns:
        List[ResolvedParameterMetadata]: One entry per declared parameter.
    """
    return [
        ResolvedParameterMetadata(
            name=parameter.name,
            type=parameter.type.value,
            description=parameter.description,
            effective_value=resolve_value(parameter, values),
            allowed_values=list(parameter.allowed_values) if parameter.allowed_values is not None else None,
            default_value=parameter.default_value,
        )
        for parameter in schema
    ]
