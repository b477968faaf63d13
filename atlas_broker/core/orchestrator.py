"""
Lifecycle orchestrator.

Implements provision, update, deprovision, last-operation polling and
instance retrieval on top of the plan resolver, the instance store and the
Atlas admin API.

Progress is driven entirely by the platform: mutating calls start remote work
and return an operation token, and each subsequent poll re-reads the live
cluster state and performs the follow-up work of terminal states. Nothing runs
in the background and no locks are taken; the platform serializes operations
per instance and polls are idempotent.

Compensating actions (record removal, project removal, database user removal)
are best-effort. Their failures are logged and never replace the outcome of
the primary operation.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from atlas_broker.config.credentials import BrokerCredentials
from atlas_broker.config.logging import get_logger
from atlas_broker.core.error_classifier import classify_error
from atlas_broker.core.exceptions import AtlasAPIError
from atlas_broker.core.plan_resolver import PlanResolver
from atlas_broker.core.project_users import perform_operation
from atlas_broker.core.state_machine import ClusterStateMachine, Operation
from atlas_broker.exceptions import (
    AsyncRequiredError,
    BrokerException,
    InstanceDoesNotExistError,
    InstanceNotFoundError,
    InvalidPlanError,
    MalformedPlanError,
    PlanNotFoundError,
)
from atlas_broker.models.broker import (
    DeprovisionDetails,
    DeprovisionServiceSpec,
    InstanceRecord,
    LastOperation,
    PollDetails,
    ProvisionDetails,
    ProvisionedServiceSpec,
    UpdateDetails,
    UpdateServiceSpec,
)
from atlas_broker.models.context import PlanContext
from atlas_broker.models.plan import Cluster, Plan, Project
from atlas_broker.services.atlas_client import AtlasClient, AtlasClientFactory
from atlas_broker.services.instance_store import InstanceStore
from atlas_broker.utils.security import generate_password

logger = get_logger(__name__)


@dataclass
class CurrentInstance:
    """Plan of an existing instance and the record it was read from."""

    plan: Plan
    org_id: str
    record: Optional[InstanceRecord] = None


class LifecycleOrchestrator:
    """Drives Atlas cluster lifecycles for the service broker."""

    def __init__(
        self,
        resolver: PlanResolver,
        store: InstanceStore,
        clients: AtlasClientFactory,
        credentials: BrokerCredentials,
        dashboard_base_url: str,
    ):
        """
        Initialize the orchestrator.

        Args:
            resolver: Plan resolver over the catalog's template registry
            store: Instance store
            clients: Factory of per-organization Atlas clients
            credentials: Broker credentials (organization enumeration order and template context)
            dashboard_base_url: Atlas UI base URL used for dashboard links
        """
        self.resolver = resolver
        self.store = store
        self.clients = clients
        self.credentials = credentials
        self.dashboard_base_url = dashboard_base_url.rstrip("/")
        self.injected: Dict[str, Any] = {"credentials": credentials.template_context()}

    def build_context(
        self,
        instance_id: str,
        parameters: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PlanContext:
        return PlanContext.build(instance_id, parameters, context, self.injected)

    def dashboard_url(self, project_id: str, cluster_name: Optional[str]) -> str:
        return f"{self.dashboard_base_url}/v2/{project_id}#clusters/detail/{cluster_name or ''}"

    # ------------------------------------------------------------------
    # Provision
    # ------------------------------------------------------------------

    async def provision(
        self,
        instance_id: str,
        details: ProvisionDetails,
        async_allowed: bool,
    ) -> ProvisionedServiceSpec:
        """
        Start creating the cluster of a new instance.

        The instance record is written before the cluster is requested so an
        interrupted provision still leaves discoverable state; if the cluster
        request fails the record is removed again.

        Raises:
            AsyncRequiredError: If the platform does not accept async responses
            BrokerException: Plan, store or classified Atlas errors
        """
        log = logger.bind(instance_id=instance_id)
        log.info("provisioning_instance", plan_id=details.plan_id, service_id=details.service_id)

        if not async_allowed:
            raise AsyncRequiredError()

        context = self.build_context(instance_id, details.parameters, details.context)
        plan = self.resolver.resolve(details.plan_id, context)
        if plan.cluster is None:
            raise InvalidPlanError(".cluster", template=details.plan_id)

        # Atlas forbids renaming, so the name chosen here is final
        plan.cluster.name = instance_id

        # Atlas rejects users without a password, and by then the project exists
        for user in plan.database_users:
            if not user.password:
                user.password = generate_password()

        client = self.clients.for_org(plan.project.org_id)

        if not plan.project.id:
            try:
                project = await self._create_resources(client, plan)
            except Exception as e:
                log.error("cannot_create_project_resources", project=plan.project.name, error=str(e))
                raise classify_error(e) from e
            plan.project.id = project.id
            if project.org_id:
                plan.project.org_id = project.org_id

        org_id = plan.project.org_id
        record = InstanceRecord(
            plan_id=details.plan_id,
            service_id=details.service_id,
            dashboard_url=self.dashboard_url(plan.project.id, plan.cluster.name),
            parameters=plan.encode(),
        )

        try:
            record_id = await self.store.put(org_id, instance_id, record)
        except BrokerException as e:
            log.error("cannot_store_instance_record", org_id=org_id, error=e.message)
            raise
        log.info("instance_record_inserted", org_id=org_id, record_id=record_id)

        try:
            cluster = await client.create_cluster(plan.project.id, plan.cluster)
        except Exception as e:
            log.error(
                "failed_to_create_cluster",
                error=str(e),
                cluster=plan.cluster.to_atlas(),
            )
            await self._delete_record(org_id, instance_id)
            raise classify_error(e) from e

        log.info(
            "cluster_creation_started",
            project_id=plan.project.id,
            cluster=cluster.name,
            state=cluster.state_name,
        )

        return ProvisionedServiceSpec(
            is_async=True,
            operation=Operation.PROVISION,
            dashboard_url=self.dashboard_url(plan.project.id, cluster.name or plan.cluster.name),
        )

    async def _create_resources(self, client: AtlasClient, plan: Plan) -> Project:
        """Create the project of a plan with its database users and IP whitelist."""
        project = await client.create_project(plan.project)
        logger.info("project_created", project_id=project.id, name=project.name)

        for user in plan.database_users:
            await client.create_database_user(project.id, user)
            logger.info("database_user_created", project_id=project.id, username=user.username)

        if plan.ip_whitelists:
            await client.create_ip_whitelist(project.id, plan.ip_whitelists)
            logger.info("ip_whitelist_created", project_id=project.id, entries=len(plan.ip_whitelists))

        return project

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(
        self,
        instance_id: str,
        details: UpdateDetails,
        async_allowed: bool,
    ) -> UpdateServiceSpec:
        """
        Update an instance.

        Three kinds of update exist:
        - ``paused`` in the context pauses or resumes the cluster;
        - ``op`` in the context runs a synchronous project user operation;
        - anything else re-resolves the plan and updates the cluster.

        Raises:
            AsyncRequiredError: If the platform does not accept async responses
            BrokerException: Plan, context, store or classified Atlas errors
        """
        log = logger.bind(instance_id=instance_id)
        log.info("updating_instance", plan_id=details.plan_id, service_id=details.service_id)

        if not async_allowed:
            raise AsyncRequiredError()

        context = self.build_context(instance_id, details.parameters, details.context)
        current = await self._current_instance(instance_id, details.plan_id, context)
        old_plan = current.plan
        if old_plan.cluster is None or not old_plan.cluster.name:
            raise InvalidPlanError(".cluster.name", template=details.plan_id)

        project_id = old_plan.project.id
        cluster_name = old_plan.cluster.name
        client = self.clients.for_org(old_plan.project.org_id)

        paused = context.optional_bool("paused")
        if paused is not None:
            try:
                await client.update_cluster(project_id, cluster_name, Cluster(paused=paused))
            except Exception as e:
                log.error("failed_to_toggle_pause", paused=paused, error=str(e))
                raise classify_error(e) from e

            log.info("cluster_pause_toggled", paused=paused)
            return UpdateServiceSpec(
                is_async=True,
                operation=Operation.UPDATE,
                dashboard_url=self.dashboard_url(project_id, cluster_name),
            )

        op = context.optional_str("op")
        if op is not None:
            try:
                await perform_operation(client, context, old_plan, op)
            except Exception as e:
                log.error("failed_to_perform_operation", op=op, error=str(e))
                raise classify_error(e) from e

            return UpdateServiceSpec(
                is_async=False,
                operation=Operation.UPDATE,
                dashboard_url=self.dashboard_url(project_id, cluster_name),
            )

        return await self._update_cluster(instance_id, details, context, current, client)

    async def _update_cluster(
        self,
        instance_id: str,
        details: UpdateDetails,
        context: PlanContext,
        current: CurrentInstance,
        client: AtlasClient,
    ) -> UpdateServiceSpec:
        log = logger.bind(instance_id=instance_id)
        old_plan = current.plan
        project_id = old_plan.project.id

        # Atlas requires the instance size on every update, and the platform
        # only sends a plan ID when the plan changes, so start from the live cluster
        try:
            existing = await client.get_cluster(project_id, old_plan.cluster.name)
        except Exception as e:
            log.error("cannot_get_existing_cluster", error=str(e))
            raise classify_error(e) from e

        plan_id = details.plan_id or (current.record.plan_id if current.record else None)
        if not plan_id:
            raise PlanNotFoundError("")

        new_plan = self.resolver.resolve(plan_id, context)
        new_cluster = new_plan.cluster or Cluster(provider_settings=existing.provider_settings)

        # Atlas doesn't allow cluster renaming
        new_cluster = new_cluster.model_copy(update={"name": existing.name or old_plan.cluster.name})

        try:
            resulting = await client.update_cluster(project_id, new_cluster.name, new_cluster)
        except Exception as e:
            log.error("failed_to_update_cluster", error=str(e), new_cluster=new_cluster.to_atlas())
            raise classify_error(e) from e

        updated_plan = old_plan.model_copy(deep=True)
        updated_plan.cluster = resulting if resulting.name else new_cluster

        org_id = current.org_id
        record = InstanceRecord(
            plan_id=plan_id,
            service_id=details.service_id,
            dashboard_url=self.dashboard_url(project_id, new_cluster.name),
            parameters=updated_plan.encode(),
        )

        # Clear the old record first; a failure here leaves the old record in place
        try:
            await self.store.delete_one(org_id, instance_id)
        except BrokerException as e:
            log.error("cannot_delete_instance_record", org_id=org_id, error=e.message)
            raise

        try:
            record_id = await self.store.put(org_id, instance_id, record)
        except BrokerException as e:
            # The cluster update has already been applied and cannot be undone
            log.error(
                "cannot_store_updated_instance_record",
                org_id=org_id,
                error=e.message,
                plan_id=plan_id,
            )
            raise

        log.info("instance_record_replaced", org_id=org_id, record_id=record_id)
        log.info("cluster_update_started", cluster=new_cluster.name, state=resulting.state_name)

        return UpdateServiceSpec(
            is_async=True,
            operation=Operation.UPDATE,
            dashboard_url=self.dashboard_url(project_id, new_cluster.name),
        )

    # ------------------------------------------------------------------
    # Deprovision
    # ------------------------------------------------------------------

    async def deprovision(
        self,
        instance_id: str,
        details: DeprovisionDetails,
        async_allowed: bool,
    ) -> DeprovisionServiceSpec:
        """
        Start deleting the cluster of an instance and remove its database users.

        Project and record removal happen once a poll observes the cluster gone.

        Raises:
            AsyncRequiredError: If the platform does not accept async responses
            InstanceDoesNotExistError: If no record exists for the instance
        """
        log = logger.bind(instance_id=instance_id)
        log.info("deprovisioning_instance", plan_id=details.plan_id, service_id=details.service_id)

        if not async_allowed:
            raise AsyncRequiredError()

        try:
            current = await self._current_instance(instance_id)
        except InstanceNotFoundError as e:
            raise InstanceDoesNotExistError(e.message, details=e.details) from e

        plan = current.plan
        project_id = plan.project.id
        client = self.clients.for_org(plan.project.org_id)

        if plan.cluster is not None and plan.cluster.name:
            try:
                await client.delete_cluster(project_id, plan.cluster.name)
            except Exception as e:
                log.error("failed_to_delete_cluster", cluster=plan.cluster.name, error=str(e))

        for user in plan.database_users:
            try:
                await client.delete_database_user(project_id, user.database_name, user.username)
            except Exception as e:
                log.error("failed_to_delete_database_user", username=user.username, error=str(e))

        log.info("cluster_deletion_started", project_id=project_id)

        return DeprovisionServiceSpec(is_async=True, operation=Operation.DEPROVISION)

    # ------------------------------------------------------------------
    # Last operation
    # ------------------------------------------------------------------

    async def last_operation(self, instance_id: str, details: PollDetails) -> LastOperation:
        """
        Report the state of the operation in flight.

        Never raises: local failures are reported as a failed operation so the
        platform always receives a verdict.
        """
        log = logger.bind(instance_id=instance_id, operation=details.operation)
        log.info("fetching_last_operation", plan_id=details.plan_id)

        operation = ClusterStateMachine.parse_operation(details.operation)
        if operation is None:
            verdict = ClusterStateMachine.unknown_operation(details.operation)
            log.warning("unknown_operation", description=verdict.description)
            return LastOperation(state=verdict.state, description=verdict.description)

        try:
            current = await self._current_instance(
                instance_id,
                details.plan_id,
                self.build_context(instance_id),
                fallback=operation != Operation.DEPROVISION,
            )
        except InstanceNotFoundError:
            if operation != Operation.DEPROVISION:
                verdict = ClusterStateMachine.local_error(InstanceNotFoundError(instance_id))
                return LastOperation(state=verdict.state, description=verdict.description)
            # Cleanup already ran on an earlier poll
            log.info("instance_already_removed")
            verdict = ClusterStateMachine.evaluate(operation, None)
            return LastOperation(state=verdict.state, description=verdict.description)
        except Exception as e:
            log.error("cannot_resolve_instance", error=str(e))
            verdict = ClusterStateMachine.local_error(e)
            return LastOperation(state=verdict.state, description=verdict.description)

        plan = current.plan
        try:
            client = self.clients.for_org(plan.project.org_id)
            cluster_state = await self._cluster_state(client, plan)
            verdict = ClusterStateMachine.evaluate(operation, cluster_state)
        except Exception as e:
            log.error("failed_to_get_existing_cluster", error=str(e))
            verdict = ClusterStateMachine.local_error(e)
            return LastOperation(state=verdict.state, description=verdict.description)

        log.info("last_operation_evaluated", cluster_state=cluster_state, state=verdict.state.value)

        if verdict.cleanup:
            await self._complete_deprovision(client, instance_id, current)

        return LastOperation(state=verdict.state, description=verdict.description)

    async def _cluster_state(self, client: AtlasClient, plan: Plan) -> Optional[str]:
        """Raw state of the plan's cluster, or None if Atlas does not know it."""
        if plan.cluster is None or not plan.cluster.name or not plan.project.id:
            return None
        try:
            cluster = await client.get_cluster(plan.project.id, plan.cluster.name)
        except AtlasAPIError as e:
            if e.is_not_found:
                return None
            raise
        return cluster.state_name or ""

    async def _complete_deprovision(
        self, client: AtlasClient, instance_id: str, current: CurrentInstance
    ) -> None:
        """Remove the project and the record of a deleted cluster. Best-effort."""
        log = logger.bind(instance_id=instance_id)
        project = current.plan.project

        if project.id:
            try:
                await client.delete_project(project.id)
                log.info("project_deleted", project_id=project.id)
            except AtlasAPIError as e:
                if e.is_not_found:
                    log.info("project_already_deleted", project_id=project.id)
                else:
                    log.error(
                        "cannot_delete_project",
                        project_id=project.id,
                        project_name=project.name,
                        error=str(e),
                    )
            except Exception as e:
                log.error("cannot_delete_project", project_id=project.id, error=str(e))

        await self._delete_record(current.org_id, instance_id)

    async def _delete_record(self, org_id: str, instance_id: str) -> None:
        try:
            await self.store.delete_one(org_id, instance_id)
        except Exception as e:
            logger.error(
                "failed_to_clean_up_instance_record",
                org_id=org_id,
                instance_id=instance_id,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Instance lookup
    # ------------------------------------------------------------------

    async def get_instance(self, instance_id: str) -> InstanceRecord:
        """
        Find the record of an instance in any organization.

        Raises:
            InstanceNotFoundError: If no organization holds a record for the instance
        """
        _, record = await self._find_instance(instance_id)
        return record

    async def _find_instance(self, instance_id: str) -> Tuple[str, InstanceRecord]:
        # The owning organization is unknown, so search them in declaration order
        for org_id in self.credentials.org_ids():
            try:
                record = await self.store.find_one(org_id, instance_id)
            except InstanceNotFoundError:
                continue
            except BrokerException as e:
                logger.error(
                    "cannot_search_instance_store",
                    org_id=org_id,
                    instance_id=instance_id,
                    error=e.message,
                )
                continue
            return org_id, record

        raise InstanceNotFoundError(instance_id)

    async def _current_instance(
        self,
        instance_id: str,
        plan_id: Optional[str] = None,
        context: Optional[PlanContext] = None,
        fallback: bool = True,
    ) -> CurrentInstance:
        """
        Recover the plan of an existing instance.

        The stored record is authoritative. Without one, the plan is resolved
        from ``plan_id`` when a fallback is allowed.
        """
        try:
            org_id, record = await self._find_instance(instance_id)
        except InstanceNotFoundError:
            if not (fallback and plan_id):
                raise
            logger.info("instance_record_missing_resolving_plan", instance_id=instance_id, plan_id=plan_id)
            plan = self.resolver.resolve(plan_id, context or self.build_context(instance_id))
            if plan.cluster is not None:
                plan.cluster.name = instance_id
            return CurrentInstance(plan=plan, org_id=plan.project.org_id)

        try:
            plan = Plan.decode(record.parameters)
        except ValidationError as e:
            raise MalformedPlanError(record.plan_id, f"stored plan is invalid: {e}")

        return CurrentInstance(plan=plan, org_id=org_id, record=record)
