"""ARM Launchpad CLI entrypoint."""
import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from launchpad.config import BackendKind, Settings, load_settings
from launchpad.dispatch.reporter import report
from launchpad.engine import DeploymentEngine, DeploySubmission
from launchpad.errors import LaunchpadError
from launchpad.parameters.metadata import build_metadata
from launchpad.template.loader import TemplateSourceLoader

app = typer.Typer(help="ARM Launchpad - resolve template parameters and dispatch deployments")
console = Console()


def _load(config: Optional[str]) -> Settings:
    try:
        return load_settings(config)
    except Exception as e:
        console.print(f"[bold red]Error: Failed to load configuration: {e}[/]")
        raise typer.Exit(1)


def _parse_overrides(values: List[str]) -> dict:
    overrides = {}
    for item in values:
        if "=" not in item:
            raise typer.BadParameter(f"Expected NAME=VALUE, got '{item}'", param_hint="--set")
        name, value = item.split("=", 1)
        overrides[name.strip()] = value
    return overrides


@app.command("params")
def params(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template path or URL (overrides configuration)"),
    parameters: Optional[str] = typer.Option(None, "--parameters", "-p", help="Parameters file path or URL (overrides configuration)"),
    as_json: bool = typer.Option(False, "--json", help="Print the metadata as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Print verbose debug information"),
):
    """Show the resolved parameters of a template."""
    settings = _load(config)
    loader = TemplateSourceLoader(timeout=settings.request_timeout, debug=debug)
    try:
        sources = loader.load(template or settings.template_location, parameters or settings.parameters_location)
    except LaunchpadError as e:
        console.print(f"[bold red]Error: {e.message}[/]")
        if e.details:
            console.print(f"[yellow]{e.details}[/]")
        raise typer.Exit(1)
    metadata = build_metadata(sources.schema, sources.values)

    if as_json:
        console.print_json(json.dumps({"parameters": [entry.to_dict() for entry in metadata]}, default=str))
        return

    table = Table(title="Template Parameters")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Value", style="green")
    table.add_column("Allowed Values")
    table.add_column("Description")
    for entry in metadata:
        value = "********" if entry.type.lower().startswith("secure") and entry.effective_value else entry.effective_value
        allowed = ", ".join(str(v) for v in entry.allowed_values) if entry.allowed_values else ""
        table.add_row(entry.name, entry.type, str(value), allowed, entry.description)
    console.print(table)


@app.command("deploy")
def deploy(
    resource_group: str = typer.Option(..., "--resource-group", "-g", help="Target resource group"),
    name: str = typer.Option(..., "--name", "-n", help="Deployment name"),
    location: str = typer.Option(..., "--location", "-l", help="Azure region for the resource group"),
    overrides: List[str] = typer.Option([], "--set", "-s", help="Parameter override as NAME=VALUE (repeatable)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template path or URL (overrides configuration)"),
    parameters: Optional[str] = typer.Option(None, "--parameters", "-p", help="Parameters file path or URL (overrides configuration)"),
    debug: bool = typer.Option(False, "--debug", help="Print verbose debug information"),
):
    """Resolve parameters and dispatch a deployment to the configured backend."""
    settings = _load(config)
    console.print(f"[bold blue]Dispatching deployment {name} via the {settings.backend.value} backend...[/]")

    try:
        # Local paths given on the command line are trusted.
        engine = DeploymentEngine(settings.model_copy(update={"allow_local_overrides": True}), debug=debug)
    except LaunchpadError as e:
        console.print(f"[bold red]Error: {e.message}[/]")
        raise typer.Exit(1)

    submission = DeploySubmission(
        resource_group=resource_group,
        deployment_name=name,
        location=location,
        parameters=_parse_overrides(overrides),
        template_url=template,
        params_url=parameters,
    )
    try:
        outcome = engine.deploy(submission)
    except LaunchpadError as e:
        outcome = e
    result = report(outcome, secrets=settings.secret_values())

    if result.status_code == 200:
        console.print(f"[green]{result.body['message']}[/]")
        if debug and "deploymentResult" in result.body:
            console.print_json(json.dumps(result.body["deploymentResult"], default=str))
        return

    console.print(f"[bold red]Error: {result.body['error']}[/]")
    if result.body.get("details"):
        console.print(f"[yellow]{result.body['details']}[/]")
    if debug and result.body.get("response"):
        console.print("\n[blue]Debug: Backend response:[/]")
        console.print(result.body["response"])
    raise typer.Exit(2 if result.status_code in (400, 401) else 1)


@app.command("check-config")
def check_config(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file"),
):
    """Verify the configured backend has everything it needs."""
    settings = _load(config)
    try:
        settings.require_backend()
    except LaunchpadError as e:
        console.print(f"[bold red]Error: {e.message}[/]")
        console.print(f"[yellow]{e.details}[/]")
        raise typer.Exit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Backend", settings.backend.value)
    table.add_row("Template", settings.template_location)
    table.add_row("Parameters", settings.parameters_location or "")
    table.add_row("Request timeout", f"{settings.request_timeout}s")
    if settings.backend == BackendKind.INDIRECT:
        table.add_row("Workflow", f"{settings.github.owner}/{settings.github.repo}:{settings.github.workflow_file}@{settings.github.ref}")
    else:
        table.add_row("Subscription", settings.azure.subscription_id)
    console.print(table)
    console.print("[green]Configuration is complete.[/]")


@app.command("serve")
def serve(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file"),
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (defaults to PORT or 8080)"),
    debug: bool = typer.Option(False, "--debug", help="Print verbose debug information"),
):
    """Serve the params and deploy HTTP API."""
    import uvicorn
    from launchpad.server import create_app

    settings = _load(config)
    try:
        api = create_app(settings, debug=debug)
    except LaunchpadError as e:
        console.print(f"[bold red]Error: {e.message}[/]")
        console.print(f"[yellow]{e.details}[/]")
        raise typer.Exit(1)

    bind_host = host or settings.host
    bind_port = port or settings.port
    console.print(f"[green]Server listening on http://{bind_host}:{bind_port}[/]")
    uvicorn.run(api, host=bind_host, port=bind_port)


if __name__ == "__main__":
    app()
