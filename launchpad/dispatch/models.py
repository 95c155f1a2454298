"""Data models for deployment dispatch."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from ..errors import BackendUnavailable, ErrorKind, LaunchpadError, Unauthorized


@dataclass(frozen=True)
class DeploymentRequest:
    """Everything a backend needs to run one deployment. Values are unwrapped."""
    target_location: str
    resource_group_name: str
    deployment_name: str
    final_parameters: Dict[str, Any] = field(default_factory=dict)
    template_body: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Success:
    message: str
    backend_response: Any = None


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    backend_message: str
    http_status: Optional[int] = None
    details: Optional[str] = None
    raw_body: str = ""
    status_code: int = 500

    @classmethod
    def from_error(cls, error: LaunchpadError) -> "Failure":
        """Capture a raised error, keeping any upstream status and body."""
        http_status = None
        raw_body = ""
        if isinstance(error, (Unauthorized, BackendUnavailable)):
            http_status = error.status
            raw_body = error.raw_body
        return cls(
            kind=error.kind,
            backend_message=error.message,
            http_status=http_status,
            details=error.details,
            raw_body=raw_body,
            status_code=error.status_code,
        )


DispatchResult = Union[Success, Failure]
