"""
Synchronous project user operations, requested through an update call.

The broker keeps no state about the users of an Atlas project, so these
operations complete within the update call and are never tracked by
last-operation polling.
"""
from typing import Awaitable, Callable, Dict

from atlas_broker.config.logging import get_logger
from atlas_broker.exceptions import InvalidContextValueError
from atlas_broker.models.context import PlanContext
from atlas_broker.models.plan import AtlasRole, AtlasUser, Plan
from atlas_broker.services.atlas_client import AtlasClient
from atlas_broker.utils.security import generate_password

logger = get_logger(__name__)

OVERRIDE_ATLAS_USER_ROLE = "overrideAtlasUserRole"
DEFAULT_ATLAS_USER_ROLE = "GROUP_READ_ONLY"


def user_from_context(context: PlanContext, plan: Plan) -> AtlasUser:
    """Build the Atlas user described by the request context."""
    email = context.require_str("email")
    password = context.optional_str("password") or generate_password()
    role = plan.settings.get(OVERRIDE_ATLAS_USER_ROLE) or DEFAULT_ATLAS_USER_ROLE

    return AtlasUser(
        email_address=email,
        username=email,
        password=password,
        country="US",
        first_name=context.optional_str("first_name"),
        last_name=context.optional_str("last_name"),
        roles=[AtlasRole(group_id=plan.project.id, role_name=role)],
    )


async def add_user_to_project(client: AtlasClient, context: PlanContext, plan: Plan) -> None:
    user = user_from_context(context, plan)
    created = await client.create_atlas_user(user)
    logger.info(
        "atlas_user_added_to_project",
        project_id=plan.project.id,
        username=user.username,
        user_id=created.id,
        role=user.roles[0].role_name,
    )


async def remove_user_from_project(client: AtlasClient, context: PlanContext, plan: Plan) -> None:
    email = context.require_str("email")
    user = await client.get_atlas_user_by_name(email)
    if not user.id:
        raise InvalidContextValueError(f"Atlas user {email!r} has no ID", details={"email": email})

    await client.remove_user_from_project(plan.project.id, user.id)
    logger.info(
        "atlas_user_removed_from_project",
        project_id=plan.project.id,
        username=email,
        user_id=user.id,
    )


OPERATIONS: Dict[str, Callable[[AtlasClient, PlanContext, Plan], Awaitable[None]]] = {
    "AddUserToProject": add_user_to_project,
    "RemoveUserFromProject": remove_user_from_project,
}


async def perform_operation(client: AtlasClient, context: PlanContext, plan: Plan, op: str) -> None:
    """
    Run a named project user operation.

    Raises:
        InvalidContextValueError: If the operation is unknown or its parameters are invalid
        AtlasAPIError: If Atlas rejects the call
    """
    handler = OPERATIONS.get(op)
    if handler is None:
        raise InvalidContextValueError(f"unknown operation {op!r}", details={"op": op})

    await handler(client, context, plan)
