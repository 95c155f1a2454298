"""Converts dispatch outcomes into the response returned to callers."""
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Union

from ..errors import LaunchpadError
from .models import DispatchResult, Failure, Success

BEARER_RE = re.compile(r"Bearer\s+[A-Za-z0-9\-\._~\+\/]+=*", re.I)
SECRET_PAIR_RE = re.compile(r"\b(api_key|apikey|token|password|client_secret|secret)\s*([:=])\s*([^\s,&\"']+)", re.I)


def redact_text(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask bearer tokens, ``token=...`` style pairs and any known secret value."""
    out = BEARER_RE.sub("Bearer <REDACTED>", text)
    out = SECRET_PAIR_RE.sub(r"\1\2<REDACTED>", out)
    for secret in secrets:
        if secret:
            out = out.replace(secret, "<REDACTED>")
    return out


@dataclass(frozen=True)
class Report:
    status_code: int
    body: Dict[str, Any]


def report(outcome: Union[DispatchResult, LaunchpadError], secrets: Iterable[str] = ()) -> Report:
    """Map a dispatch result, or an error raised earlier in the pipeline, to a response.

    Args:
        outcome: ``Success``, ``Failure`` or a ``LaunchpadError``.
        secrets: Credential values to scrub from upstream bodies.

    Returns:
        Report: HTTP status code and JSON body.
    """
    if isinstance(outcome, Success):
        body: Dict[str, Any] = {"ok": True, "message": outcome.message}
        if outcome.backend_response is not None:
            body["deploymentResult"] = outcome.backend_response
        return Report(200, body)

    failure = Failure.from_error(outcome) if isinstance(outcome, LaunchpadError) else outcome
    secrets = list(secrets)
    body = {"ok": False, "error": redact_text(failure.backend_message, secrets), "kind": failure.kind.value}
    if failure.details:
        body["details"] = redact_text(failure.details, secrets)
    if failure.http_status is not None:
        body["status"] = failure.http_status
    if failure.raw_body:
        body["response"] = redact_text(failure.raw_body, secrets)
    return Report(failure.status_code, body)
