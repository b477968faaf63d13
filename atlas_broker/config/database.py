"""
MongoDB connection backing the instance store (Motor + Beanie).

Startup blocks until the server answers a ping, retrying with tenacity the
same way Atlas API calls are retried.
"""
from typing import List, Optional

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from atlas_broker.config.settings import settings
from atlas_broker.config.logging import get_logger

logger = get_logger(__name__)


def _public_url(url: str) -> str:
    """Connection URL with any userinfo stripped."""
    scheme, sep, rest = url.partition("://")
    return scheme + sep + rest.rsplit("@", 1)[-1] if sep else url.rsplit("@", 1)[-1]


class Database:
    """Process-wide handle on the instance store database."""

    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None

    @classmethod
    def _open(cls) -> AsyncIOMotorDatabase:
        if cls.client is not None:
            cls.client.close()
        cls.client = AsyncIOMotorClient(
            settings.mongodb_url,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=10000,
            retryWrites=True,
        )
        cls.database = cls.client[settings.mongodb_database]
        return cls.database

    @classmethod
    async def connect_db(cls, document_models: List[type], max_attempts: int = 10) -> None:
        """
        Connect and register the Beanie documents, which also builds their indexes.

        Args:
            document_models: Beanie documents stored in this database
            max_attempts: Connection attempts before the error is raised
        """
        url = _public_url(settings.mongodb_url)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=2, max=30),
            retry=retry_if_exception_type(ConnectionFailure),
            before_sleep=lambda state: logger.warning(
                "instance_store_connect_retry",
                attempt=state.attempt_number,
                max_attempts=max_attempts,
                url=url,
                error=str(state.outcome.exception()),
            ),
            reraise=True,
        ):
            with attempt:
                logger.info(
                    "instance_store_connecting",
                    attempt=attempt.retry_state.attempt_number,
                    url=url,
                    database=settings.mongodb_database,
                )
                database = cls._open()
                await cls.client.admin.command("ping")
                await init_beanie(database=database, document_models=document_models)  # type: ignore

        logger.info(
            "instance_store_connected",
            database=settings.mongodb_database,
            documents=[model.__name__ for model in document_models],
        )

    @classmethod
    async def close_db(cls) -> None:
        if cls.client is None:
            return
        logger.info("instance_store_closing")
        cls.client.close()
        cls.client = None
        cls.database = None

    @classmethod
    async def ping(cls) -> bool:
        """True when the server answers; used by the readiness probe."""
        if cls.client is None:
            return False
        try:
            await cls.client.admin.command("ping")
        except PyMongoError as e:
            logger.warning("instance_store_ping_failed", error=str(e))
            return False
        return True
