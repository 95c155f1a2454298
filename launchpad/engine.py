"""Parameter resolution and deployment dispatch pipeline."""
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console

from .config import Settings
from .dispatch.backends import DispatchBackend, create_backend
from .dispatch.models import DeploymentRequest, DispatchResult
from .dispatch.reporter import Report, report
from .dispatch.request import build_request, check_required
from .errors import InvalidRequest, LaunchpadError
from .parameters.merger import collect_rules, merge
from .parameters.metadata import build_metadata
from .parameters.models import ResolvedParameterMetadata
from .template.loader import LoadedSources, TemplateSourceLoader, is_remote

console = Console(stderr=True)


class DeploySubmission(BaseModel):
    """Body of a deploy request."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    resource_group: str = Field(default="", alias='resourceGroup')
    deployment_name: str = Field(default="", alias='deploymentName')
    location: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    template_url: Optional[str] = Field(default=None, alias='templateUrl')
    params_url: Optional[str] = Field(default=None, alias='paramsUrl')

    @classmethod
    def parse(cls, payload: Any) -> "DeploySubmission":
        """Validate a request body.

        Raises:
            InvalidRequest: If the body is not an object or a field has the wrong type.
        """
        if not isinstance(payload, Mapping):
            raise InvalidRequest("Request body must be a JSON object")
        try:
            return cls.model_validate(dict(payload))
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InvalidRequest("Invalid deploy request", details=f"Invalid fields: {fields}")


class DeploymentEngine:
    """Loads sources, resolves parameters and hands deployments to a backend."""

    def __init__(self, settings: Settings, loader: Optional[TemplateSourceLoader] = None,
                 backend: Optional[DispatchBackend] = None, debug: bool = False):
        """Initialize the engine.

        Args:
            settings: Process configuration.
            loader: Document loader; built from settings when omitted.
            backend: Dispatch backend; the configured one when omitted.
            debug: If True, print verbose debug information.

        Raises:
            ConfigurationMissing: If the configured backend lacks credentials.
        """
        self.settings = settings
        self.debug = debug
        self.loader = loader or TemplateSourceLoader(
            timeout=settings.request_timeout,
            cache_ttl=settings.cache_ttl,
            debug=debug,
        )
        self.backend = backend or create_backend(settings, debug=debug)

    def load_sources(self, template_location: Optional[str] = None,
                     parameters_location: Optional[str] = None) -> LoadedSources:
        """Load the configured documents, or the caller's overrides.

        Raises:
            InvalidRequest: If an override is a local path and local overrides are disabled.
        """
        if not self.settings.allow_local_overrides:
            for location in (template_location, parameters_location):
                if location and not is_remote(location):
                    raise InvalidRequest("Template and parameters overrides must be http(s) URLs",
                                         details=f"Rejected location: {location}")
        # Explicit locations always bypass the cache.
        explicit = bool(template_location or parameters_location)
        return self.loader.load(
            template_location or self.settings.template_location,
            parameters_location or self.settings.parameters_location,
            fresh=explicit,
        )

    def describe_parameters(self, template_location: Optional[str] = None,
                            parameters_location: Optional[str] = None) -> List[ResolvedParameterMetadata]:
        """Resolve the parameters a form should display.

        Raises:
            SourceUnavailable: If a document cannot be retrieved.
            MalformedSource: If a document is invalid.
        """
        sources = self.load_sources(template_location, parameters_location)
        return build_metadata(sources.schema, sources.values)

    def prepare(self, submission: DeploySubmission) -> DeploymentRequest:
        """Validate a submission and build the deployment request.

        Raises:
            MissingRequiredField: If resource group, deployment name or location is empty.
            InvalidRequest: If a document override is rejected.
            DisallowedValue: If an override is outside its allowed values.
            SourceUnavailable: If a document cannot be retrieved.
            MalformedSource: If a document is invalid.
        """
        check_required(submission.resource_group, submission.deployment_name, submission.location)
        sources = self.load_sources(submission.template_url, submission.params_url)
        metadata = build_metadata(sources.schema, sources.values)
        rules = collect_rules(sources.schema, self.settings.exclusion_rules)
        final_parameters = merge(metadata, submission.parameters, rules)
        if self.debug:
            ignored = sorted(set(submission.parameters) - set(final_parameters))
            if ignored:
                console.print(f"Debug: Ignoring undeclared parameters: {', '.join(ignored)}")
        return build_request(
            submission.resource_group,
            submission.deployment_name,
            submission.location,
            final_parameters,
            sources.template.body,
        )

    def deploy(self, submission: DeploySubmission) -> DispatchResult:
        """Prepare and dispatch a deployment.

        Validation and source errors are raised; backend errors come back as ``Failure``.
        """
        request = self.prepare(submission)
        return self.backend.dispatch(request)

    def run(self, payload: Any) -> Report:
        """Handle a raw deploy request body end to end, never raising ``LaunchpadError``."""
        try:
            outcome = self.deploy(DeploySubmission.parse(payload))
        except LaunchpadError as e:
            outcome = e
        return report(outcome, secrets=self.settings.secret_values())

    def describe(self, template_location: Optional[str] = None,
                 parameters_location: Optional[str] = None) -> Report:
        """Handle a params request end to end, never raising ``LaunchpadError``."""
        try:
            metadata = self.describe_parameters(template_location, parameters_location)
        except LaunchpadError as e:
            return report(e, secrets=self.settings.secret_values())
        return Report(200, {"parameters": [entry.to_dict() for entry in metadata]})
