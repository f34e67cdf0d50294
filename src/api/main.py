"""
Workflow Entities Manager API.

FastAPI application exposing the referential integrity engine:
reference introspection and guarded update/delete of workflow entities.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from src.config.settings import get_settings
from src.graph.neo4j_client import WorkflowGraphClient, get_workflow_client
from src.graph.repository import GraphEntityRepository
from src.integrity import (
    ConfigurationError,
    CountingFailure,
    EntityNotFoundError,
    EntityType,
    IntegrityGate,
    IntegrityViolation,
    ReferentialIntegrityValidator,
    get_integrity_validator,
    get_reference_graph,
    load_policy,
)
from src.observability.correlation import CorrelationMiddleware
from src.observability.logging import configure_logging
from src.observability.metrics import get_metrics_registry

settings = get_settings()

configure_logging(
    level=settings.log_level,
    format=settings.observability.log_format,
)

logger = structlog.get_logger(__name__)

# =============================================================================
# Global State
# =============================================================================

_graph_client: WorkflowGraphClient | None = None
_integrity_gate: IntegrityGate | None = None


def get_graph_client() -> WorkflowGraphClient:
    """Get the global Neo4j client."""
    global _graph_client
    if _graph_client is None:
        _graph_client = get_workflow_client()
    return _graph_client


def get_validator() -> ReferentialIntegrityValidator:
    """Get the global referential integrity validator."""
    return get_integrity_validator()


def get_integrity_gate() -> IntegrityGate:
    """Get the global integrity gate."""
    global _integrity_gate
    if _integrity_gate is None:
        _integrity_gate = IntegrityGate(
            GraphEntityRepository(get_graph_client()),
            get_validator(),
        )
    return _integrity_gate


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Workflow Entities Manager API", version=settings.app_version)

    # Fail fast on broken integrity configuration
    policy = load_policy()
    if not policy.enabled:
        logger.warning("Referential integrity validation is DISABLED")
    else:
        logger.info(
            "Referential integrity validation enabled",
            parallel=policy.parallel,
            disabled_edges=sorted(policy.disabled_edges),
        )

    client = get_graph_client()
    try:
        await client.connect()
        await client.setup_schema(
            [entity_type.collection for entity_type in EntityType],
            get_reference_graph().reference_fields(),
        )
    except Exception as e:
        logger.warning("Neo4j connection failed", error=str(e))

    yield

    await client.close()
    logger.info("Workflow Entities Manager API stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)
app.add_middleware(CorrelationMiddleware)


# =============================================================================
# Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    neo4j_connected: bool
    version: str


class EntityUpdateRequest(BaseModel):
    """Replacement state of an entity."""

    properties: dict[str, Any] = Field(..., description="New entity properties")


class EntityDeleteResponse(BaseModel):
    """Result of a guarded deletion."""

    entity_type: str
    entity_id: str
    deleted: bool


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(IntegrityViolation)
async def integrity_violation_handler(request: Request, exc: IntegrityViolation) -> JSONResponse:
    """Map a blocked update/delete to 409 Conflict."""
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(EntityNotFoundError)
async def entity_not_found_handler(request: Request, exc: EntityNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(CountingFailure)
async def counting_failure_handler(request: Request, exc: CountingFailure) -> JSONResponse:
    """Store failures during validation; retrying is safe."""
    return JSONResponse(
        status_code=503,
        content={"detail": "Referential integrity validation is temporarily unavailable"},
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"detail": "Referential integrity validation is misconfigured"},
    )


def parse_entity_type(entity_type: str) -> EntityType:
    """Resolve a path parameter to an entity type, 400 on unknown values."""
    try:
        return EntityType.parse(entity_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


# =============================================================================
# Endpoints
# =============================================================================


async def check_neo4j_connection() -> bool:
    """Check Neo4j connectivity."""
    try:
        await get_graph_client().execute_cypher("RETURN 1")
        return True
    except Exception:
        return False


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Check API and store health."""
    neo4j_ok = await check_neo4j_connection()
    return HealthResponse(
        status="healthy" if neo4j_ok else "degraded",
        neo4j_connected=neo4j_ok,
        version=settings.app_version,
    )


@app.get("/api/entities/{entity_type}/{entity_id}/references", tags=["Integrity"])
async def get_entity_references(entity_type: str, entity_id: str) -> dict[str, Any]:
    """Count the documents referencing an entity."""
    summary = await get_validator().get_references(parse_entity_type(entity_type), entity_id)
    return summary.to_dict()


@app.delete(
    "/api/entities/{entity_type}/{entity_id}",
    response_model=EntityDeleteResponse,
    tags=["Entities"],
)
async def delete_entity(entity_type: str, entity_id: str) -> EntityDeleteResponse:
    """Delete an entity unless other entities still reference it."""
    resolved = parse_entity_type(entity_type)
    deleted = await get_integrity_gate().guarded_delete(resolved, entity_id)
    return EntityDeleteResponse(
        entity_type=resolved.value,
        entity_id=entity_id,
        deleted=bool(deleted),
    )


@app.put("/api/entities/{entity_type}/{entity_id}", tags=["Entities"])
async def update_entity(
    entity_type: str,
    entity_id: str,
    request: EntityUpdateRequest,
) -> dict[str, Any]:
    """Update an entity unless other entities still reference it."""
    resolved = parse_entity_type(entity_type)
    return await get_integrity_gate().guarded_update(resolved, entity_id, request.properties)


def require_metrics_enabled() -> None:
    if not settings.observability.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics are disabled")


@app.get("/metrics", tags=["Observability"])
async def prometheus_metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    require_metrics_enabled()
    return PlainTextResponse(
        content=get_metrics_registry().get_prometheus_output(),
        media_type="text/plain",
    )


@app.get("/api/metrics", tags=["Observability"])
async def get_metrics() -> dict[str, Any]:
    """All metrics in JSON format."""
    require_metrics_enabled()
    return get_metrics_registry().get_all_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
