"""FastAPI application entrypoint for optdoc service mode."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..models import RecordDescriptor, field_to_dict, records_from_payload
from ..orchestrator import Orchestrator
from ..registry import DEFAULT_DELIMITER, CycleError, ExpandedRecord
from ..render import get_renderer
from ..transport import ProtocolError


class ExpandRequest(BaseModel):
    records: List[Dict[str, Any]]
    roots: Optional[List[str]] = None
    delimiter: str = Field(default=DEFAULT_DELIMITER, min_length=1)


class ExpandResponse(BaseModel):
    records: List[Dict[str, Any]]


class RenderRequest(ExpandRequest):
    format: str = "markdown"


class RenderResponse(BaseModel):
    documents: Dict[str, str]


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing expansion and rendering."""

    app = FastAPI(title="optdoc Service", version=__version__)

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/expand", response_model=ExpandResponse)
    async def expand(
        payload: ExpandRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> ExpandResponse:
        records = _decode_records(payload.records)
        expanded = orchestrator.expand_roots(
            records, roots=payload.roots, delimiter=payload.delimiter
        )
        return ExpandResponse(records=[_expanded_to_dict(item) for item in expanded])

    @app.post("/render", response_model=RenderResponse)
    async def render(
        payload: RenderRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> RenderResponse:
        renderer = get_renderer(payload.format)
        records = _decode_records(payload.records)
        expanded = orchestrator.expand_roots(
            records, roots=payload.roots, delimiter=payload.delimiter
        )
        return RenderResponse(documents={item.name: renderer.render(item) for item in expanded})

    @app.exception_handler(ProtocolError)
    async def protocol_error_handler(_: Any, exc: ProtocolError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(CycleError)
    async def cycle_error_handler(_: Any, exc: CycleError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc), "cycle": exc.path})

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Any, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def _decode_records(raw: List[Dict[str, Any]]) -> List[RecordDescriptor]:
    try:
        return records_from_payload(raw)
    except ValueError as exc:
        raise ProtocolError(f"Invalid record payload: {exc}") from exc


def _expanded_to_dict(record: ExpandedRecord) -> Dict[str, Any]:
    return {
        "name": record.name,
        "doc": record.doc,
        "fields": [[key, field_to_dict(descriptor)] for key, descriptor in record.fields],
    }


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)
