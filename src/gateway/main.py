import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from gateway.schemas import (
    ErrorResponse,
    GenerateResponse,
    GenerationRequest,
    PreferenceBody,
    ProviderState,
    RouterStateResponse,
)
from logbook.parsing import shape_log_content
from orchestrator.core import Orchestrator
from orchestrator.errors import GenerationFailed
from orchestrator.registry import ProviderRegistry
from state.models import ProviderId
from state.usage import load_provider_limits

logger = logging.getLogger(__name__)

app = FastAPI(title="LogPilot Gateway", version="0.1.0")


def _primary_from_env() -> Optional[ProviderId]:
    raw = os.getenv("PRIMARY_PROVIDER", "").strip().lower()
    if not raw:
        return None
    try:
        return ProviderId(raw)
    except ValueError:
        logger.warning("Unknown PRIMARY_PROVIDER %r; using default priority", raw)
        return None


def build_orchestrator(registry: ProviderRegistry) -> Orchestrator:
    serialize = os.getenv("ORCHESTRATOR_SERIALIZE", "").strip().lower() in ("1", "true", "yes")
    return Orchestrator(
        registry.adapters(),
        primary=_primary_from_env(),
        limits=load_provider_limits(),
        serialize=serialize,
    )


def _orchestrator() -> Orchestrator:
    orchestrator: Optional[Orchestrator] = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return orchestrator


@app.on_event("startup")
async def startup_event() -> None:
    # Initialize registry and orchestrator once
    registry = ProviderRegistry()
    orchestrator = build_orchestrator(registry)

    app.state.registry = registry
    app.state.orchestrator = orchestrator

    logger.info(
        "Gateway initialized with %d providers (priority: %s)",
        len(registry.get_providers()),
        ", ".join(p.value for p in orchestrator.priority),
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    registry: Optional[ProviderRegistry] = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.aclose()


@app.get("/health", tags=["health"])  # minimal health endpoint
async def health():
    return {"status": "ok"}


@app.post("/v1/logs/generate", response_model=GenerateResponse, responses={502: {"model": ErrorResponse}})
async def generate_log(req: GenerationRequest):
    orchestrator = _orchestrator()
    logger.info("Generating log for week %d (%s to %s)", req.week_number, req.start_date, req.end_date)

    try:
        content = await orchestrator.generate(req)
    except GenerationFailed as e:
        logger.warning("Log generation failed on %s: %s", e.provider.value, e.cause)
        body = ErrorResponse(error="Failed to generate logbook entry", provider=e.provider.value, details=str(e.cause))
        return JSONResponse(status_code=502, content=body.model_dump())

    return GenerateResponse(data=shape_log_content(content, req))


@app.get("/v1/providers/preference")
async def get_preference():
    orchestrator = _orchestrator()
    return {"preference": orchestrator.get_preference().value}


@app.put("/v1/providers/preference")
async def set_preference(body: PreferenceBody):
    orchestrator = _orchestrator()
    orchestrator.set_preference(body.preference)
    return {"preference": orchestrator.get_preference().value}


@app.get("/v1/providers/state", response_model=RouterStateResponse)
async def providers_state():
    orchestrator = _orchestrator()

    health = orchestrator.get_health_snapshot()
    usage = orchestrator.get_usage_snapshot()
    limits = orchestrator.get_limits()

    providers = {}
    for pid in orchestrator.priority:
        providers[pid.value] = ProviderState(health=health[pid], usage=usage[pid], limits=limits[pid])

    return RouterStateResponse(
        preference=orchestrator.get_preference(),
        primary=orchestrator.primary.value,
        providers=providers,
    )
