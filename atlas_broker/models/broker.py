"""
Pydantic models for the Open Service Broker requests and responses.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from atlas_broker.core.state_machine import LastOperationState, Operation


class ProvisionDetails(BaseModel):
    """Request body of a provision call."""

    service_id: str = Field(..., description="Catalog service ID")
    plan_id: str = Field(..., description="Catalog plan ID")
    organization_guid: Optional[str] = Field(default=None, description="Platform organization")
    space_guid: Optional[str] = Field(default=None, description="Platform space")
    parameters: Optional[Dict[str, Any]] = Field(default=None, description="Raw plan parameters")
    context: Optional[Dict[str, Any]] = Field(default=None, description="Raw platform context")


class PreviousValues(BaseModel):
    service_id: Optional[str] = None
    plan_id: Optional[str] = None


class UpdateDetails(BaseModel):
    """Request body of an update call."""

    service_id: str = Field(..., description="Catalog service ID")
    plan_id: Optional[str] = Field(default=None, description="New plan ID, if the plan changes")
    parameters: Optional[Dict[str, Any]] = Field(default=None, description="Raw plan parameters")
    context: Optional[Dict[str, Any]] = Field(default=None, description="Raw platform context")
    previous_values: Optional[PreviousValues] = Field(default=None, description="Values before the update")


class DeprovisionDetails(BaseModel):
    service_id: Optional[str] = None
    plan_id: Optional[str] = None


class PollDetails(BaseModel):
    service_id: Optional[str] = None
    plan_id: Optional[str] = None
    operation: Optional[str] = Field(default=None, description="Operation returned by the async call")


class ProvisionedServiceSpec(BaseModel):
    is_async: bool = True
    operation: Operation = Operation.PROVISION
    dashboard_url: Optional[str] = None


class UpdateServiceSpec(BaseModel):
    is_async: bool = True
    operation: Operation = Operation.UPDATE
    dashboard_url: Optional[str] = None


class DeprovisionServiceSpec(BaseModel):
    is_async: bool = True
    operation: Operation = Operation.DEPROVISION


class LastOperation(BaseModel):
    """State of the last operation, as reported to a polling platform."""

    state: LastOperationState
    description: str = ""


class InstanceRecord(BaseModel):
    """
    Stored snapshot of an instance.

    ``parameters`` holds the encoded resolved plan.
    """

    plan_id: str
    service_id: str
    dashboard_url: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ServicePlan(BaseModel):
    id: str
    name: str
    description: str = ""
    free: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Service(BaseModel):
    id: str
    name: str
    description: str
    bindable: bool = False
    instances_retrievable: bool = True
    bindings_retrievable: bool = False
    plan_updateable: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)
    plans: List[ServicePlan] = Field(default_factory=list)
