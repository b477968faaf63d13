"""
Plan resolver.

Turns a plan ID and a request context into a concrete, validated Plan by
rendering the registered plan template and decoding the resulting YAML.
Resolution is pure: it performs no I/O and, for a fixed registry and context,
always yields the same plan.
"""
from types import MappingProxyType
from typing import Any, Mapping

import yaml
from jinja2 import TemplateError
from pydantic import ValidationError

from atlas_broker.config.logging import get_logger
from atlas_broker.core.templates import PlanTemplate
from atlas_broker.exceptions import InvalidPlanError, MalformedPlanError, PlanNotFoundError
from atlas_broker.models.plan import Plan

logger = get_logger(__name__)

# Checked in this order so the reported field is deterministic
REQUIRED_CLUSTER_FIELDS = (
    ("provider_name", ".cluster.providerSettings.providerName"),
    ("instance_size_name", ".cluster.providerSettings.instanceSizeName"),
)


def validate_plan(plan: Plan, template: str) -> None:
    """
    Check the structural invariants of a decoded plan.

    Raises:
        InvalidPlanError: Naming the first missing required field
    """
    if plan.cluster is None:
        return

    provider = plan.cluster.provider_settings
    for attr, field in REQUIRED_CLUSTER_FIELDS:
        if provider is None or not getattr(provider, attr):
            raise InvalidPlanError(field, template=template)


def render_plan(template: PlanTemplate, context: Mapping[str, Any]) -> Plan:
    """
    Render, decode and validate one template.

    Raises:
        MalformedPlanError: If rendering or decoding fails
        InvalidPlanError: If a required field is missing
    """
    try:
        raw = template.render(context)
    # Expressions evaluated inside the template raise plain Python errors too
    except (TemplateError, ArithmeticError, LookupError, TypeError, ValueError) as e:
        raise MalformedPlanError(template.name, f"cannot execute template: {e}")

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise MalformedPlanError(template.name, f"invalid yaml: {e}")

    if not isinstance(document, dict):
        raise MalformedPlanError(
            template.name, f"expected a mapping, got {type(document).__name__}"
        )

    try:
        plan = Plan.model_validate(document)
    except ValidationError as e:
        raise MalformedPlanError(template.name, str(e))

    validate_plan(plan, template.name)
    return plan


class PlanResolver:
    """Resolves plans against an immutable plan-ID → template registry."""

    def __init__(self, registry: Mapping[str, PlanTemplate]):
        self.registry = MappingProxyType(dict(registry))

    def resolve(self, plan_id: str, context: Mapping[str, Any]) -> Plan:
        """
        Resolve a plan.

        Args:
            plan_id: Catalog plan ID
            context: Request context

        Returns:
            Resolved plan

        Raises:
            PlanNotFoundError: If no template is registered under plan_id
            MalformedPlanError: If the template cannot be rendered or decoded
            InvalidPlanError: If a required field is missing
        """
        template = self.registry.get(plan_id)
        if template is None:
            raise PlanNotFoundError(plan_id)

        plan = render_plan(template, context)
        logger.debug("plan_resolved", plan_id=plan_id, plan=plan.safe_copy().encode())
        return plan
