"""Layers user-submitted overrides on top of resolved parameter values."""
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..config import ExclusionRule
from ..errors import DisallowedValue
from ..template.schema import ParameterSchema, ParameterType
from .metadata import EMPTY_VALUE
from .models import ResolvedParameterMetadata

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def collect_rules(schema: Iterable[ParameterSchema],
                  configured: Sequence[ExclusionRule] = ()) -> List[ExclusionRule]:
    """Combine template-declared rules with configured ones.

    Rules declared in the template replace configured rules for the same parameter.
    """
    from_template = [rule for parameter in schema for rule in parameter.exclusion_rules()]
    covered = {rule.parameter for rule in from_template}
    return from_template + [rule for rule in configured if rule.parameter not in covered]


def coerce_value(declared_type: str, value: Any) -> Any:
    """Convert form-submitted text to the declared type where it unambiguously fits."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if declared_type == ParameterType.INT.value:
        try:
            return int(text)
        except ValueError:
            return value
    if declared_type == ParameterType.BOOL.value:
        if text.lower() in _TRUE:
            return True
        if text.lower() in _FALSE:
            return False
        return value
    if declared_type in (ParameterType.ARRAY.value, ParameterType.OBJECT.value, ParameterType.SECURE_OBJECT.value):
        try:
            parsed = json.loads(text)
        except ValueError:
            return value
        expected = list if declared_type == ParameterType.ARRAY.value else dict
        return parsed if isinstance(parsed, expected) else value
    return value


def excluded_parameters(metadata: Sequence[ResolvedParameterMetadata], overrides: Mapping[str, Any],
                        rules: Sequence[ExclusionRule]) -> Set[str]:
    """Names of parameters made irrelevant by the value of another parameter."""
    effective = {entry.name: entry.effective_value for entry in metadata}
    excluded = set()
    for rule in rules:
        deciding = overrides.get(rule.when, effective.get(rule.when))
        if rule.applies(deciding):
            excluded.add(rule.parameter)
    return excluded


def is_allowed(value: Any, allowed: Sequence[Any]) -> bool:
    """Membership test that keeps ``True`` apart from ``1`` and ``1.0``."""
    return any(type(value) is type(candidate) and value == candidate for candidate in allowed)


def merge(metadata: Sequence[ResolvedParameterMetadata], overrides: Optional[Mapping[str, Any]] = None,
          rules: Sequence[ExclusionRule] = ()) -> Dict[str, Any]:
    """Produce the final value of every declared parameter.

    Args:
        metadata: Resolved parameters, in declaration order.
        overrides: Values chosen by the user. Names the template does not
            declare are ignored.
        rules: Exclusion rules. A parameter they exclude takes its template
            default, or an empty value, whatever was submitted or supplied.

    Returns:
        Dict[str, Any]: Parameter name to final value, covering every declared parameter.

    Raises:
        DisallowedValue: If an override is outside the parameter's allowed values.
    """
    overrides = overrides or {}
    excluded = excluded_parameters(metadata, overrides, rules)
    final: Dict[str, Any] = {}
    for entry in metadata:
        if entry.name in excluded:
            final[entry.name] = entry.default_value if entry.default_value is not None else EMPTY_VALUE
            continue
        if entry.name not in overrides:
            final[entry.name] = entry.effective_value
            continue
        value = coerce_value(entry.type, overrides[entry.name])
        if entry.allowed_values is not None and not is_allowed(value, entry.allowed_values):
            raise DisallowedValue(entry.name, overrides[entry.name], entry.allowed_values)
        final[entry.name] = value
    return final
