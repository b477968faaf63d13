"""
FastAPI dependencies giving endpoints access to the components built at startup.
"""
from fastapi import Request

from atlas_broker.core.catalog import Catalog
from atlas_broker.core.orchestrator import LifecycleOrchestrator


def get_orchestrator(request: Request) -> LifecycleOrchestrator:
    return request.app.state.orchestrator


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog
