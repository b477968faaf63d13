"""
Atlas admin API client.

Thin async client over the Atlas admin API v1.0 covering the calls the
broker needs: projects, database users, IP whitelists, clusters and Atlas
(organization) users. One client exists per organization API key.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from atlas_broker.config.credentials import APIKey, BrokerCredentials
from atlas_broker.config.logging import get_logger
from atlas_broker.config.settings import settings
from atlas_broker.core.exceptions import AtlasAPIError
from atlas_broker.exceptions import CredentialsNotFoundError
from atlas_broker.models.plan import (
    AtlasUser,
    Cluster,
    DatabaseUser,
    IPWhitelistEntry,
    Project,
)
from atlas_broker.utils.retry import atlas_retrying

logger = get_logger(__name__)

IDEMPOTENT_METHODS = {"GET", "DELETE"}


def _segment(value: str) -> str:
    return quote(value, safe="")


class AtlasClient:
    """
    Client for one Atlas organization.

    All requests use HTTP digest authentication with the organization's
    programmatic API key. Non-2xx answers raise AtlasAPIError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: APIKey,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Atlas client.

        Args:
            base_url: Atlas admin API base URL (including /api/atlas/v1.0)
            api_key: Organization API key
            timeout: Request timeout in seconds
            max_retries: Retries for transient failures
            retry_delay: Initial backoff delay in seconds
            transport: Optional transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.DigestAuth(api_key.public_key, api_key.private_key),
            timeout=httpx.Timeout(timeout),
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send a request, retrying transient failures.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            AtlasAPIError: On a non-success response
            httpx.TransportError: On network failures after retries
        """
        async for attempt in atlas_retrying(
            max_retries=self.max_retries,
            idempotent=method in IDEMPOTENT_METHODS,
            initial_delay=self.retry_delay,
        ):
            with attempt:
                logger.debug("atlas_request", method=method, path=path)
                response = await self.client.request(method, path, json=json)

                if response.is_success:
                    if not response.content:
                        return None
                    return response.json()

                try:
                    body = response.json()
                except ValueError:
                    body = None
                if not isinstance(body, dict):
                    body = {"detail": response.text}

                raise AtlasAPIError(
                    status_code=response.status_code,
                    error_code=body.get("errorCode"),
                    detail=body.get("detail"),
                    body=body,
                )
        return None

    # Projects

    async def create_project(self, project: Project) -> Project:
        body = {"name": project.name, "orgId": project.org_id}
        data = await self._request("POST", "/groups", json=body)
        return Project.model_validate(data or {})

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/groups/{_segment(project_id)}")

    # Database users

    async def create_database_user(self, project_id: str, user: DatabaseUser) -> DatabaseUser:
        body = user.to_atlas()
        body["groupId"] = project_id
        data = await self._request(
            "POST", f"/groups/{_segment(project_id)}/databaseUsers", json=body
        )
        return DatabaseUser.model_validate(data or body)

    async def delete_database_user(self, project_id: str, database_name: str, username: str) -> None:
        await self._request(
            "DELETE",
            f"/groups/{_segment(project_id)}/databaseUsers/"
            f"{_segment(database_name)}/{_segment(username)}",
        )

    # Network access

    async def create_ip_whitelist(
        self, project_id: str, entries: List[IPWhitelistEntry]
    ) -> List[IPWhitelistEntry]:
        body = [entry.to_atlas() for entry in entries]
        data = await self._request(
            "POST", f"/groups/{_segment(project_id)}/whitelist", json=body
        )
        results = (data or {}).get("results", [])
        return [IPWhitelistEntry.model_validate(r) for r in results]

    # Clusters

    async def create_cluster(self, project_id: str, cluster: Cluster) -> Cluster:
        data = await self._request(
            "POST", f"/groups/{_segment(project_id)}/clusters", json=cluster.to_atlas()
        )
        return Cluster.model_validate(data or {})

    async def get_cluster(self, project_id: str, name: str) -> Cluster:
        data = await self._request(
            "GET", f"/groups/{_segment(project_id)}/clusters/{_segment(name)}"
        )
        return Cluster.model_validate(data or {})

    async def update_cluster(self, project_id: str, name: str, cluster: Cluster) -> Cluster:
        data = await self._request(
            "PATCH",
            f"/groups/{_segment(project_id)}/clusters/{_segment(name)}",
            json=cluster.to_atlas(),
        )
        return Cluster.model_validate(data or {})

    async def delete_cluster(self, project_id: str, name: str) -> None:
        await self._request(
            "DELETE", f"/groups/{_segment(project_id)}/clusters/{_segment(name)}"
        )

    # Atlas users

    async def create_atlas_user(self, user: AtlasUser) -> AtlasUser:
        data = await self._request("POST", "/users", json=user.to_atlas())
        return AtlasUser.model_validate(data or user.to_atlas())

    async def get_atlas_user_by_name(self, username: str) -> AtlasUser:
        data = await self._request("GET", f"/users/byName/{_segment(username)}")
        return AtlasUser.model_validate(data or {})

    async def remove_user_from_project(self, project_id: str, user_id: str) -> None:
        await self._request(
            "DELETE", f"/groups/{_segment(project_id)}/users/{_segment(user_id)}"
        )


class AtlasClientFactory:
    """Builds and caches one AtlasClient per organization."""

    def __init__(
        self,
        credentials: BrokerCredentials,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = base_url or settings.atlas_api_url
        self.timeout = timeout if timeout is not None else settings.atlas_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.atlas_max_retries
        self.transport = transport
        self._clients: Dict[str, AtlasClient] = {}

    def for_org(self, org_id: str) -> AtlasClient:
        """
        Get the client for an organization.

        Raises:
            CredentialsNotFoundError: If no API key is configured for the organization
        """
        if org_id in self._clients:
            return self._clients[org_id]

        api_key = self.credentials.for_org(org_id)
        if api_key is None:
            raise CredentialsNotFoundError(org_id)

        client = AtlasClient(
            base_url=self.base_url,
            api_key=api_key,
            timeout=self.timeout,
            max_retries=self.max_retries,
            transport=self.transport,
        )
        self._clients[org_id] = client
        logger.debug("atlas_client_created", org_id=org_id)
        return client

    async def close(self) -> None:
        """Close all cached clients."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
