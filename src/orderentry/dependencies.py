"""Shared FastAPI app resource container and provider dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import cast

from fastapi import Depends, HTTPException, Request, status

from orderentry.catalog import CatalogLookup
from orderentry.config import OrderEntryConfig
from orderentry.repositories.base import DraftStore
from orderentry.sessions import DraftSessionRegistry


@dataclass
class AppResources:
    """App-scoped resources initialized during FastAPI lifespan."""

    config: OrderEntryConfig
    catalog: CatalogLookup
    draft_store: DraftStore
    sessions: DraftSessionRegistry


def get_app_resources(request: Request) -> AppResources:
    """Return initialized app resources from state."""
    resources = getattr(request.app.state, "orderentry_resources", None)
    if resources is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Application resources are not initialized",
        )
    return cast(AppResources, resources)


def get_app_config(resources: AppResources = Depends(get_app_resources)) -> OrderEntryConfig:
    """Get app-scoped config instance."""
    return resources.config


def get_draft_sessions(
    resources: AppResources = Depends(get_app_resources),
) -> DraftSessionRegistry:
    """Get app-scoped draft session registry."""
    return resources.sessions
