"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from atlas_broker.config.credentials import APIKey, BrokerCredentials
from atlas_broker.config.settings import settings
from atlas_broker.core.catalog import build_catalog
from atlas_broker.core.exceptions import AtlasAPIError
from atlas_broker.core.orchestrator import LifecycleOrchestrator
from atlas_broker.core.plan_resolver import PlanResolver
from atlas_broker.core.templates import PlanTemplate
from atlas_broker.exceptions import CredentialsNotFoundError
from atlas_broker.models.broker import InstanceRecord
from atlas_broker.models.plan import AtlasUser, Cluster, DatabaseUser, Project
from atlas_broker.services.instance_store import MemoryInstanceStore

ORG_A = "org-a"
ORG_B = "org-b"
DASHBOARD_BASE_URL = "https://cloud.mongodb.com"

BASIC_PLAN = """
name: basic
description: "basic plan for {{ instance_id }}"
project:
  name: "{{ instance_id }}"
  orgId: "{{ org_id | default('org-a', true) }}"
cluster:
  name: "{{ cluster_name }}"
  providerSettings:
    providerName: AWS
    instanceSizeName: {{ size | default("M10", true) }}
    regionName: US_EAST_1
databaseUsers:
  - username: app
    password: {{ password | default("s3cret") | tojson }}
    databaseName: admin
    roles:
      - roleName: readWrite
        databaseName: app
ipWhitelists:
  - cidrBlock: 10.0.0.0/8
    comment: internal
settings:
  overrideAtlasUserRole: GROUP_OWNER
"""

EXISTING_PROJECT_PLAN = """
name: existing
description: "cluster in an existing project"
project:
  id: proj-existing
  orgId: org-a
cluster:
  providerSettings:
    providerName: AWS
    instanceSizeName: {{ size | default("M20", true) }}
"""

PLAN_SOURCES = {
    "plan-basic": ("basic", BASIC_PLAN),
    "plan-existing": ("existing", EXISTING_PROJECT_PLAN),
}


class FakeAtlasClient:
    """
    In-memory stand-in for AtlasClient.

    Every call is recorded; an exception stored in ``fail`` under a method
    name is raised by that method.
    """

    def __init__(self):
        self.calls: List[Tuple[Any, ...]] = []
        self.fail: Dict[str, Exception] = {}
        self.clusters: Dict[Tuple[str, str], Cluster] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    def called(self, name: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def set_state(self, project_id: str, name: str, state: str) -> None:
        cluster = self.clusters.get((project_id, name)) or Cluster(name=name)
        self.clusters[(project_id, name)] = cluster.model_copy(update={"state_name": state})

    async def create_project(self, project: Project) -> Project:
        self._record("create_project", project)
        return Project(id="proj-new", name=project.name, org_id=project.org_id)

    async def delete_project(self, project_id: str) -> None:
        self._record("delete_project", project_id)

    async def create_database_user(self, project_id: str, user: DatabaseUser) -> DatabaseUser:
        self._record("create_database_user", project_id, user)
        return user

    async def delete_database_user(self, project_id: str, database_name: str, username: str) -> None:
        self._record("delete_database_user", project_id, database_name, username)

    async def create_ip_whitelist(self, project_id: str, entries):
        self._record("create_ip_whitelist", project_id, entries)
        return entries

    async def create_cluster(self, project_id: str, cluster: Cluster) -> Cluster:
        self._record("create_cluster", project_id, cluster)
        created = cluster.model_copy(update={"state_name": "CREATING"})
        self.clusters[(project_id, cluster.name)] = created
        return created

    async def get_cluster(self, project_id: str, name: str) -> Cluster:
        self._record("get_cluster", project_id, name)
        cluster = self.clusters.get((project_id, name))
        if cluster is None:
            raise AtlasAPIError(404, "CLUSTER_NOT_FOUND", f"No cluster named {name} exists")
        return cluster

    async def update_cluster(self, project_id: str, name: str, cluster: Cluster) -> Cluster:
        self._record("update_cluster", project_id, name, cluster)
        updated = cluster.model_copy(update={"name": name, "state_name": "UPDATING"})
        self.clusters[(project_id, name)] = updated
        return updated

    async def delete_cluster(self, project_id: str, name: str) -> None:
        self._record("delete_cluster", project_id, name)
        self.set_state(project_id, name, "DELETING")

    async def create_atlas_user(self, user: AtlasUser) -> AtlasUser:
        self._record("create_atlas_user", user)
        return user.model_copy(update={"id": "user-1"})

    async def get_atlas_user_by_name(self, username: str) -> AtlasUser:
        self._record("get_atlas_user_by_name", username)
        return AtlasUser(id="user-1", username=username, email_address=username)

    async def remove_user_from_project(self, project_id: str, user_id: str) -> None:
        self._record("remove_user_from_project", project_id, user_id)


class FakeClientFactory:
    """Hands out one shared FakeAtlasClient for every known organization."""

    def __init__(self, client: FakeAtlasClient, credentials: BrokerCredentials):
        self.client = client
        self.credentials = credentials

    def for_org(self, org_id: str) -> FakeAtlasClient:
        if self.credentials.for_org(org_id) is None:
            raise CredentialsNotFoundError(org_id)
        return self.client

    async def close(self) -> None:
        pass


class RecordingStore(MemoryInstanceStore):
    """Memory store that records calls and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_put: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None
        self.fail_find: Dict[str, Exception] = {}

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def put(self, org_id: str, instance_id: str, record: InstanceRecord) -> str:
        self.calls.append(("put", org_id, instance_id))
        if self.fail_put is not None:
            raise self.fail_put
        return await super().put(org_id, instance_id, record)

    async def find_one(self, org_id: str, instance_id: str) -> InstanceRecord:
        self.calls.append(("find_one", org_id, instance_id))
        if org_id in self.fail_find:
            raise self.fail_find[org_id]
        return await super().find_one(org_id, instance_id)

    async def delete_one(self, org_id: str, instance_id: str) -> None:
        self.calls.append(("delete_one", org_id, instance_id))
        if self.fail_delete is not None:
            raise self.fail_delete
        await super().delete_one(org_id, instance_id)


@pytest.fixture
def credentials() -> BrokerCredentials:
    return BrokerCredentials(
        orgs={
            ORG_A: APIKey(public_key="pub-a", private_key="priv-a", desc="first org"),
            ORG_B: APIKey(public_key="pub-b", private_key="priv-b"),
        }
    )


@pytest.fixture
def registry() -> Dict[str, PlanTemplate]:
    return {
        plan_id: PlanTemplate.from_source(name, source)
        for plan_id, (name, source) in PLAN_SOURCES.items()
    }


@pytest.fixture
def templates() -> Dict[str, PlanTemplate]:
    """Templates keyed by name, as load_templates returns them."""
    return {name: PlanTemplate.from_source(name, source) for name, source in PLAN_SOURCES.values()}


@pytest.fixture
def atlas() -> FakeAtlasClient:
    return FakeAtlasClient()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def orchestrator(registry, store, atlas, credentials) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(
        resolver=PlanResolver(registry),
        store=store,
        clients=FakeClientFactory(atlas, credentials),
        credentials=credentials,
        dashboard_base_url=DASHBOARD_BASE_URL,
    )


@pytest_asyncio.fixture
async def test_client(orchestrator, templates, credentials) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the app wired to in-memory components."""
    from atlas_broker.main import app

    app.state.catalog = build_catalog(
        templates, settings, {"credentials": credentials.template_context()}
    )
    app.state.orchestrator = orchestrator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_instance_id():
    """Mock instance ID for testing."""
    return "inst-test123"
