"""
Tests for plan models, credentials loading and the in-memory instance store.
"""
import pytest

from atlas_broker.config.credentials import load_credentials
from atlas_broker.exceptions import InstanceAlreadyExistsError, InstanceNotFoundError
from atlas_broker.models.broker import InstanceRecord
from atlas_broker.models.plan import MASKED, Plan
from atlas_broker.services.instance_store import MemoryInstanceStore

PLAN_DOCUMENT = {
    "name": "gold",
    "project": {"id": "proj-1", "name": "p", "orgId": "org-a"},
    "cluster": {
        "name": "inst-1",
        "diskSizeGB": 40,
        "providerSettings": {"providerName": "AWS", "instanceSizeName": "M30"},
    },
    "databaseUsers": [{"username": "app", "password": "pw", "roles": [{"roleName": "read"}]}],
    "settings": {"overrideAtlasUserRole": "GROUP_OWNER", "retries": 3},
}


def test_plan_encode_uses_atlas_field_names():
    plan = Plan.decode(PLAN_DOCUMENT)

    encoded = plan.encode()

    assert encoded["project"] == {"id": "proj-1", "name": "p", "orgId": "org-a"}
    assert encoded["cluster"]["providerSettings"] == {"providerName": "AWS", "instanceSizeName": "M30"}
    # Unknown cluster attributes are passed through to Atlas
    assert encoded["cluster"]["diskSizeGB"] == 40
    assert encoded["databaseUsers"][0]["databaseName"] == "admin"
    assert encoded["settings"] == {"overrideAtlasUserRole": "GROUP_OWNER", "retries": "3"}
    assert Plan.decode(encoded) == plan


def test_safe_copy_masks_passwords():
    plan = Plan.decode(PLAN_DOCUMENT)

    masked = plan.safe_copy()

    assert masked.database_users[0].password == MASKED
    assert plan.database_users[0].password == "pw"


def test_empty_rendered_values_are_defaults():
    plan = Plan.decode({"project": None, "databaseUsers": None, "settings": None, "name": None})

    assert plan.project.id == ""
    assert plan.database_users == []
    assert plan.settings == {}
    assert plan.name == ""


def test_numeric_identifiers_are_strings():
    plan = Plan.decode({"project": {"id": 1234, "orgId": 5678}})

    assert plan.project.id == "1234"
    assert plan.project.org_id == "5678"


def test_load_credentials_preserves_order(tmp_path):
    path = tmp_path / "credentials.yml"
    path.write_text(
        "orgs:\n"
        "  org-z:\n"
        "    publicKey: pub-z\n"
        "    privateKey: priv-z\n"
        "  org-a:\n"
        "    publicKey: pub-a\n"
        "    privateKey: priv-a\n"
        "    desc: second\n",
        encoding="utf-8",
    )

    credentials = load_credentials(str(path))

    assert credentials.org_ids() == ["org-z", "org-a"]
    assert credentials.for_org("org-a").private_key == "priv-a"
    assert credentials.for_org("org-b") is None
    assert credentials.template_context()["orgs"]["org-a"] == {
        "publicKey": "pub-a",
        "privateKey": "priv-a",
        "desc": "second",
    }


def test_load_credentials_json(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text('{"orgs": {"org-a": {"publicKey": "p", "privateKey": "k"}}}', encoding="utf-8")

    assert load_credentials(str(path)).org_ids() == ["org-a"]


def test_load_credentials_without_file():
    assert load_credentials(None).org_ids() == []


def test_load_credentials_rejects_non_mapping(tmp_path):
    path = tmp_path / "credentials.yml"
    path.write_text("- org-a\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_credentials(str(path))


@pytest.mark.asyncio
async def test_memory_store_contract():
    store = MemoryInstanceStore()
    record = InstanceRecord(plan_id="plan-1", service_id="svc", parameters={"name": "gold"})

    record_id = await store.put("org-a", "inst-1", record)
    assert record_id

    with pytest.raises(InstanceAlreadyExistsError):
        await store.put("org-a", "inst-1", record)

    # Partitions are independent
    await store.put("org-b", "inst-1", record)
    with pytest.raises(InstanceNotFoundError):
        await store.find_one("org-c", "inst-1")

    found = await store.find_one("org-a", "inst-1")
    assert found == record
    found.parameters["name"] = "changed"
    assert (await store.find_one("org-a", "inst-1")).parameters["name"] == "gold"

    await store.delete_one("org-a", "inst-1")
    await store.delete_one("org-a", "inst-1")
    with pytest.raises(InstanceNotFoundError):
        await store.find_one("org-a", "inst-1")
    assert await store.find_one("org-b", "inst-1") == record
