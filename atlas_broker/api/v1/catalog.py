"""
Service catalog endpoint.
"""
from fastapi import APIRouter, Depends

from atlas_broker.api.deps import get_catalog
from atlas_broker.config.logging import get_logger
from atlas_broker.core.catalog import Catalog

router = APIRouter()
logger = get_logger(__name__)


@router.get("/catalog")
async def get_services(catalog: Catalog = Depends(get_catalog)):
    """
    Return the service catalog.

    The catalog is built once at startup from the plan templates; plans whose
    template failed to resolve are not listed.
    """
    logger.info("retrieving_service_catalog", plans=len(catalog.plans))
    return catalog.to_osb()
