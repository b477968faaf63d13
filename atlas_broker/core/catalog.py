"""
Service catalog.

The catalog is built once at startup: every plan template is resolved with
a minimal context (no instance-specific values) to extract the metadata the
platform needs. Templates that fail to resolve are logged and left out so the
catalog always serves the plans that do validate.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping

from atlas_broker.config.logging import get_logger
from atlas_broker.config.settings import Settings
from atlas_broker.core.templates import PlanTemplate
from atlas_broker.core.plan_resolver import render_plan
from atlas_broker.exceptions import BrokerException
from atlas_broker.models.broker import Service, ServicePlan

logger = get_logger(__name__)

# Prepended to service and plan IDs to keep them globally unique
ID_PREFIX = "aosb-cluster"
PROVIDER_NAME = "template"


def service_id_for_provider(provider_name: str) -> str:
    return f"{ID_PREFIX}-service-{provider_name.lower()}"


def plan_id_for_dynamic_plan(provider_name: str, plan_name: str) -> str:
    return f"{ID_PREFIX}-plan-{provider_name.lower()}-{plan_name.lower()}"


@dataclass(frozen=True)
class Catalog:
    """Immutable catalog: OSB services plus the plan-ID → template registry."""

    services: List[Service] = field(default_factory=list)
    plans: Mapping[str, ServicePlan] = field(default_factory=lambda: MappingProxyType({}))
    templates: Mapping[str, PlanTemplate] = field(default_factory=lambda: MappingProxyType({}))

    def to_osb(self) -> Dict[str, Any]:
        """Catalog response body."""
        return {"services": [s.model_dump(exclude_none=True) for s in self.services]}


def build_catalog(
    templates: Mapping[str, PlanTemplate],
    settings: Settings,
    injected: Mapping[str, Any],
) -> Catalog:
    """
    Build the catalog from the loaded templates.

    Args:
        templates: Templates keyed by name
        settings: Application settings (service metadata)
        injected: Process-level context values (credentials)

    Returns:
        Catalog with one service holding every valid plan
    """
    plans: Dict[str, ServicePlan] = {}
    registry: Dict[str, PlanTemplate] = {}

    for name, template in templates.items():
        try:
            plan = render_plan(template, dict(injected))
        except BrokerException as e:
            logger.error("invalid_plan_template", name=name, error=e.message)
            continue

        plan_name = plan.name or name
        plan_id = plan_id_for_dynamic_plan(PROVIDER_NAME, plan_name)
        if plan_id in plans:
            logger.error("duplicate_plan_template", name=name, plan_id=plan_id)
            continue

        instance_size = None
        if plan.cluster and plan.cluster.provider_settings:
            instance_size = plan.cluster.provider_settings.instance_size_name

        logger.info("parsed_plan", name=name, plan=plan.safe_copy().encode())

        plans[plan_id] = ServicePlan(
            id=plan_id,
            name=plan_name,
            description=plan.description,
            free=plan.free,
            metadata={
                "displayName": plan_name,
                "bullets": [plan.description],
                "instanceSize": instance_size,
                "template": name,
            },
        )
        registry[plan_id] = template

    service = Service(
        id=service_id_for_provider(PROVIDER_NAME),
        name=settings.broker_osb_service_name,
        description=settings.broker_osb_service_desc,
        bindable=False,
        instances_retrievable=True,
        bindings_retrievable=False,
        plan_updateable=True,
        metadata={
            "displayName": f"MongoDB Atlas - {settings.broker_osb_service_display_name}",
            "imageUrl": settings.broker_osb_image_url,
            "documentationUrl": settings.broker_osb_docs_url,
            "providerDisplayName": settings.broker_osb_provider_display_name,
            "longDescription": "Complete MongoDB Atlas deployments managed through resource templates.",
        },
        plans=list(plans.values()),
    )

    logger.info("catalog_built", service_id=service.id, plans=list(plans))

    return Catalog(
        services=[service],
        plans=MappingProxyType(plans),
        templates=MappingProxyType(registry),
    )
