"""
Instance store.

Persists the last-known record of every instance, partitioned by the Atlas
organization that owns it. At most one record exists per
(organization, instance); replacing a record requires deleting it first.
"""
from abc import ABC, abstractmethod
from typing import Dict, Tuple

from pymongo.errors import DuplicateKeyError, PyMongoError

from atlas_broker.config.logging import get_logger
from atlas_broker.exceptions import (
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    InstanceStoreError,
)
from atlas_broker.models.broker import InstanceRecord
from atlas_broker.repositories.models import InstanceDocument

logger = get_logger(__name__)


class InstanceStore(ABC):
    """Storage contract used by the lifecycle orchestrator."""

    @abstractmethod
    async def put(self, org_id: str, instance_id: str, record: InstanceRecord) -> str:
        """
        Insert a record.

        Returns:
            Identifier of the stored record

        Raises:
            InstanceAlreadyExistsError: If a record already exists for the key
            InstanceStoreError: On storage failures
        """

    @abstractmethod
    async def find_one(self, org_id: str, instance_id: str) -> InstanceRecord:
        """
        Fetch a record.

        Raises:
            InstanceNotFoundError: If no record exists for the key
            InstanceStoreError: On storage failures
        """

    @abstractmethod
    async def delete_one(self, org_id: str, instance_id: str) -> None:
        """
        Delete a record. Deleting a missing record is not an error.

        Raises:
            InstanceStoreError: On storage failures
        """


class MongoInstanceStore(InstanceStore):
    """Instance store backed by the Beanie ``instances`` collection."""

    async def put(self, org_id: str, instance_id: str, record: InstanceRecord) -> str:
        doc = InstanceDocument(
            org_id=org_id,
            instance_id=instance_id,
            **record.model_dump(),
        )
        try:
            await doc.insert()
        except DuplicateKeyError:
            raise InstanceAlreadyExistsError(
                f"instance {instance_id!r} already stored for organization {org_id!r}",
                details={"instance_id": instance_id, "org_id": org_id},
            )
        except PyMongoError as e:
            raise InstanceStoreError("put", instance_id, str(e))

        logger.info("instance_record_stored", org_id=org_id, instance_id=instance_id, record_id=doc.id)
        return doc.id

    async def find_one(self, org_id: str, instance_id: str) -> InstanceRecord:
        try:
            doc = await InstanceDocument.find_one(
                InstanceDocument.org_id == org_id,
                InstanceDocument.instance_id == instance_id,
            )
        except PyMongoError as e:
            raise InstanceStoreError("find", instance_id, str(e))

        if doc is None:
            raise InstanceNotFoundError(instance_id, org_id)

        return InstanceRecord(
            plan_id=doc.plan_id,
            service_id=doc.service_id,
            dashboard_url=doc.dashboard_url,
            parameters=doc.parameters,
        )

    async def delete_one(self, org_id: str, instance_id: str) -> None:
        try:
            result = await InstanceDocument.find_one(
                InstanceDocument.org_id == org_id,
                InstanceDocument.instance_id == instance_id,
            ).delete()
        except PyMongoError as e:
            raise InstanceStoreError("delete", instance_id, str(e))

        deleted = getattr(result, "deleted_count", 0) if result is not None else 0
        logger.info(
            "instance_record_deleted",
            org_id=org_id,
            instance_id=instance_id,
            deleted=deleted,
        )


class MemoryInstanceStore(InstanceStore):
    """Process-local instance store for development and tests."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], InstanceRecord] = {}
        self._counter = 0

    async def put(self, org_id: str, instance_id: str, record: InstanceRecord) -> str:
        key = (org_id, instance_id)
        if key in self._records:
            raise InstanceAlreadyExistsError(
                f"instance {instance_id!r} already stored for organization {org_id!r}",
                details={"instance_id": instance_id, "org_id": org_id},
            )
        self._records[key] = record.model_copy(deep=True)
        self._counter += 1
        return f"mem-{self._counter}"

    async def find_one(self, org_id: str, instance_id: str) -> InstanceRecord:
        record = self._records.get((org_id, instance_id))
        if record is None:
            raise InstanceNotFoundError(instance_id, org_id)
        return record.model_copy(deep=True)

    async def delete_one(self, org_id: str, instance_id: str) -> None:
        self._records.pop((org_id, instance_id), None)
