"""
Service instance endpoints of the Open Service Broker API.

These endpoints only translate between the wire format and the lifecycle
orchestrator; all lifecycle logic lives in atlas_broker.core.orchestrator.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import JSONResponse

from atlas_broker.api.deps import get_orchestrator
from atlas_broker.core.orchestrator import LifecycleOrchestrator
from atlas_broker.models.broker import (
    DeprovisionDetails,
    PollDetails,
    ProvisionDetails,
    UpdateDetails,
)
from atlas_broker.models.plan import Plan

router = APIRouter()


@router.put("/{instance_id}")
async def provision_instance(
    details: ProvisionDetails,
    instance_id: str = Path(..., description="Instance ID chosen by the platform"),
    accepts_incomplete: bool = Query(False, description="Platform supports async operations"),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
):
    """
    Provision a new Atlas cluster named after the instance ID.

    Provisioning is always asynchronous; poll last_operation with the
    returned operation until it reports a terminal state.
    """
    spec = await orchestrator.provision(instance_id, details, accepts_incomplete)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"dashboard_url": spec.dashboard_url, "operation": spec.operation.value},
    )


@router.patch("/{instance_id}")
async def update_instance(
    details: UpdateDetails,
    instance_id: str = Path(..., description="Instance ID"),
    accepts_incomplete: bool = Query(False, description="Platform supports async operations"),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
):
    """
    Update an instance.

    Supported parameters:
    - ``paused`` (bool): pause or resume the cluster
    - ``op`` (``AddUserToProject``/``RemoveUserFromProject``) with ``email``:
      manage project users synchronously
    - anything else: re-resolve the plan and update the cluster
    """
    spec = await orchestrator.update(instance_id, details, accepts_incomplete)
    if not spec.is_async:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"dashboard_url": spec.dashboard_url},
        )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"dashboard_url": spec.dashboard_url, "operation": spec.operation.value},
    )


@router.delete("/{instance_id}")
async def deprovision_instance(
    instance_id: str = Path(..., description="Instance ID"),
    service_id: Optional[str] = Query(None, description="Catalog service ID"),
    plan_id: Optional[str] = Query(None, description="Catalog plan ID"),
    accepts_incomplete: bool = Query(False, description="Platform supports async operations"),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
):
    """Start deleting the cluster of an instance."""
    details = DeprovisionDetails(service_id=service_id, plan_id=plan_id)
    spec = await orchestrator.deprovision(instance_id, details, accepts_incomplete)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"operation": spec.operation.value},
    )


@router.get("/{instance_id}/last_operation")
async def last_operation(
    instance_id: str = Path(..., description="Instance ID"),
    service_id: Optional[str] = Query(None, description="Catalog service ID"),
    plan_id: Optional[str] = Query(None, description="Catalog plan ID"),
    operation: Optional[str] = Query(None, description="Operation returned by the async call"),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
):
    """
    Poll the state of the last asynchronous operation.

    Always answers 200 with ``in progress``, ``succeeded`` or ``failed``.
    """
    details = PollDetails(service_id=service_id, plan_id=plan_id, operation=operation)
    result = await orchestrator.last_operation(instance_id, details)
    return {"state": result.state.value, "description": result.description}


@router.get("/{instance_id}")
async def get_instance(
    instance_id: str = Path(..., description="Instance ID"),
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
):
    """Fetch the stored record of an instance. Passwords are masked."""
    record = await orchestrator.get_instance(instance_id)
    return {
        "service_id": record.service_id,
        "plan_id": record.plan_id,
        "dashboard_url": record.dashboard_url,
        "parameters": Plan.decode(record.parameters).safe_copy().encode(),
    }
