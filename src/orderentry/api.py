"""FastAPI application exposing order entry drafts."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderentry.catalog import CatalogLookup, HttpCatalogLookup, build_catalog_lookup
from orderentry.config import OrderEntryConfig, get_config
from orderentry.dependencies import AppResources, get_app_config, get_draft_sessions
from orderentry.exceptions import ContractError, UnknownRowError
from orderentry.models import (
    CreateDraftResponse,
    FormView,
    MoveRowRequest,
    SubmitResponse,
    UpdateFieldRequest,
)
from orderentry.repositories.base import DraftStore
from orderentry.repositories.file import JsonFileDraftStore
from orderentry.sessions import DraftSessionRegistry

logger = logging.getLogger(__name__)


def get_allowed_origins() -> list[str]:
    """Get allowed CORS origins from environment."""
    origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:4200")
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


def create_app(
    config: Optional[OrderEntryConfig] = None,
    catalog: Optional[CatalogLookup] = None,
    draft_store: Optional[DraftStore] = None,
) -> FastAPI:
    """Build the API. Unset collaborators are created from configuration."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_config = config or get_config()
        lookup = catalog or build_catalog_lookup(app_config)
        store = draft_store or JsonFileDraftStore(app_config.draft_dir)
        sessions = DraftSessionRegistry(app_config, lookup, store)
        app.state.orderentry_resources = AppResources(
            config=app_config,
            catalog=lookup,
            draft_store=store,
            sessions=sessions,
        )
        try:
            yield
        finally:
            await sessions.aclose()
            if catalog is None and isinstance(lookup, HttpCatalogLookup):
                await lookup.aclose()
            app.state.orderentry_resources = None

    app = FastAPI(
        title="Order Entry Service",
        description="Row-based order entry with asynchronous barcode verification",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ContractError)
    async def contract_error_handler(request: Request, exc: ContractError) -> JSONResponse:
        """Map domain contract errors to stable API error payload."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    @app.exception_handler(UnknownRowError)
    async def unknown_row_handler(request: Request, exc: UnknownRowError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": {
                    "code": "ROW_NOT_FOUND",
                    "message": str(exc),
                    "details": {"row_id": exc.row_id},
                }
            },
        )

    @app.get("/health")
    async def health_check(
        config: OrderEntryConfig = Depends(get_app_config),
    ) -> Dict[str, Any]:
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "service": "order-entry",
            "version": "1.0.0",
            "catalog": "mock" if config.mock_catalog else "http",
        }

    @app.post(
        "/drafts",
        response_model=CreateDraftResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_draft(
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> CreateDraftResponse:
        """Open a new draft with one empty row."""
        draft_id, form = sessions.create()
        return CreateDraftResponse(draft_id=draft_id, form=form.view(draft_id))

    @app.get("/drafts/{draft_id}", response_model=FormView)
    async def get_draft(
        draft_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        """Current rows, states and errors; reopens persisted drafts."""
        return sessions.get(draft_id).view(draft_id)

    @app.delete("/drafts/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def discard_draft(
        draft_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> None:
        """Abandon a draft and its outstanding checks."""
        await sessions.discard(draft_id)

    @app.post(
        "/drafts/{draft_id}/rows",
        response_model=FormView,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_row(
        draft_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        form = sessions.get(draft_id)
        form.add_row()
        return form.view(draft_id)

    @app.patch("/drafts/{draft_id}/rows/{row_id}", response_model=FormView)
    async def update_row(
        draft_id: str,
        row_id: str,
        payload: UpdateFieldRequest,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        form = sessions.get(draft_id)
        form.update_field(row_id, payload.field, payload.value)
        return form.view(draft_id)

    @app.delete("/drafts/{draft_id}/rows/{row_id}", response_model=FormView)
    async def remove_row(
        draft_id: str,
        row_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        """Remove a row; removing the only row leaves the form unchanged."""
        form = sessions.get(draft_id)
        form.remove_row(row_id)
        return form.view(draft_id)

    @app.post("/drafts/{draft_id}/rows/{row_id}/move", response_model=FormView)
    async def move_row(
        draft_id: str,
        row_id: str,
        payload: MoveRowRequest,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        form = sessions.get(draft_id)
        form.move_row(row_id, payload.position)
        return form.view(draft_id)

    @app.post("/drafts/{draft_id}/rows/{row_id}/commit", response_model=FormView)
    async def commit_barcode(
        draft_id: str,
        row_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> FormView:
        """Barcode field committed; waits for this row's check to finish."""
        form = sessions.get(draft_id)
        task = form.commit_barcode(row_id)
        if task is not None:
            # A concurrent edit may supersede or cancel the task; the view
            # below reports whatever state is authoritative afterwards.
            await asyncio.wait({task})
        return form.view(draft_id)

    @app.post("/drafts/{draft_id}/submit", response_model=SubmitResponse)
    async def submit_draft(
        draft_id: str,
        sessions: DraftSessionRegistry = Depends(get_draft_sessions),
    ) -> SubmitResponse:
        """Submit the order; the draft session ends on success."""
        return SubmitResponse(items=sessions.submit(draft_id))

    return app


app = create_app()


def main() -> None:
    """Run API server."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "orderentry.api:app",
        host=config.api_host,
        port=config.api_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
