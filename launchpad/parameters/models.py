"""Data models for resolved parameters."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class ResolvedParameterMetadata:
    """A template parameter with its effective value, ready for display."""
    name: str
    type: str
    description: str
    effective_value: Any
    allowed_values: Optional[List[Any]] = None
    default_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape returned by the params endpoints."""
        return {
            "name": self.name,
            "type": self.type,
            "allowedValues": self.allowed_values,
            "description": self.description,
            "defaultValue": self.default_value,
            "effectiveValue": self.effective_value,
        }
