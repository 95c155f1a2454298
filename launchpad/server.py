"""HTTP API exposing parameter metadata and deployment dispatch."""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .dispatch.reporter import Report, report
from .engine import DeploymentEngine
from .errors import InvalidRequest


def _respond(result: Report, body: Optional[Dict[str, Any]] = None) -> JSONResponse:
    # Deployment results from Azure carry datetimes.
    return JSONResponse(jsonable_encoder(body if body is not None else result.body), status_code=result.status_code)


def create_app(settings: Settings, engine: Optional[DeploymentEngine] = None, debug: bool = False) -> FastAPI:
    """Build the API application.

    Raises:
        ConfigurationMissing: If the configured backend lacks credentials.
    """
    engine = engine or DeploymentEngine(settings.require_backend(), debug=debug)
    app = FastAPI(title="arm-launchpad")

    @app.get("/params")
    def params(templateUrl: str = "", paramsUrl: str = "") -> JSONResponse:
        return _respond(engine.describe(templateUrl or None, paramsUrl or None))

    @app.get("/api/params")
    def api_params(templateUrl: str = "", paramsUrl: str = "") -> JSONResponse:
        result = engine.describe(templateUrl or None, paramsUrl or None)
        if result.status_code != 200:
            return _respond(result)
        # The form reads each field's initial value from "value".
        ui_params = [{**entry, "value": entry["effectiveValue"]} for entry in result.body["parameters"]]
        return _respond(result, {"uiParams": ui_params})

    async def deploy(request: Request) -> JSONResponse:
        try:
            payload: Any = await request.json()
        except ValueError:
            return _respond(report(InvalidRequest("Request body must be valid JSON")))
        return _respond(await run_in_threadpool(engine.run, payload))

    app.add_api_route("/deploy", deploy, methods=["POST"])
    app.add_api_route("/api/deploy", deploy, methods=["POST"])
    return app
