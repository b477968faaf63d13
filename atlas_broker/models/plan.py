"""
Pydantic models for resolved plans and the Atlas resources they describe.

Field names follow Python conventions; the camelCase aliases match both the
plan template documents and the Atlas admin API payloads, so a rendered plan
can be sent to Atlas without a separate mapping layer.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MASKED = "*****"


def _as_str(v: Any) -> str:
    # Rendered YAML turns empty template values into None and hex-less IDs into ints
    if v is None:
        return ""
    if isinstance(v, bool):
        return str(v).lower()
    return str(v)


class AtlasModel(BaseModel):
    """Base model with camelCase aliases; unknown attributes are passed through to Atlas."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_atlas(self) -> Dict[str, Any]:
        """Serialize into an Atlas API request body."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Project(AtlasModel):
    """Atlas project (group). An empty ID means the project is still to be created."""

    id: str = ""
    name: str = ""
    org_id: str = ""

    @field_validator("id", "name", "org_id", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str:
        return _as_str(v)


class ProviderSettings(AtlasModel):
    provider_name: str = ""
    instance_size_name: str = ""
    region_name: Optional[str] = None
    backing_provider_name: Optional[str] = None

    @field_validator("provider_name", "instance_size_name", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str:
        return _as_str(v)


class Cluster(AtlasModel):
    """Atlas cluster definition, also used for the live cluster returned by Atlas."""

    # Left unset in partial update requests such as pause/unpause
    name: Optional[str] = None
    cluster_type: Optional[str] = None
    paused: Optional[bool] = None
    provider_backup_enabled: Optional[bool] = None
    provider_settings: Optional[ProviderSettings] = None
    state_name: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> Optional[str]:
        return None if v is None else _as_str(v)


class Role(AtlasModel):
    role_name: str
    database_name: str = "admin"
    collection_name: Optional[str] = None


class DatabaseUser(AtlasModel):
    username: str
    password: Optional[str] = None
    database_name: str = "admin"
    roles: List[Role] = Field(default_factory=list)


class IPWhitelistEntry(AtlasModel):
    cidr_block: Optional[str] = None
    ip_address: Optional[str] = None
    comment: Optional[str] = None


class AtlasRole(AtlasModel):
    group_id: Optional[str] = None
    org_id: Optional[str] = None
    role_name: str


class AtlasUser(AtlasModel):
    """Atlas (organization-level) user, managed by the project user operations."""

    id: Optional[str] = None
    username: str
    email_address: str
    password: Optional[str] = None
    country: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[AtlasRole] = Field(default_factory=list)


class Plan(AtlasModel):
    """
    Resolved plan: the concrete specification of one instance.

    Produced by rendering a plan template against a request context and
    persisted (encoded) inside the stored instance record.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    name: str = ""
    description: str = ""
    free: bool = False
    project: Project = Field(default_factory=Project)
    cluster: Optional[Cluster] = None
    database_users: List[DatabaseUser] = Field(default_factory=list)
    ip_whitelists: List[IPWhitelistEntry] = Field(default_factory=list)
    settings: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "description", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str:
        return _as_str(v)

    @field_validator("project", mode="before")
    @classmethod
    def default_project(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("database_users", "ip_whitelists", mode="before")
    @classmethod
    def default_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("settings", mode="before")
    @classmethod
    def coerce_settings(cls, v: Any) -> Dict[str, str]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("settings must be a mapping")
        return {str(k): _as_str(val) for k, val in v.items()}

    def encode(self) -> Dict[str, Any]:
        """Encode the plan into the snapshot stored with the instance record."""
        return self.to_atlas()

    @classmethod
    def decode(cls, data: Dict[str, Any]) -> "Plan":
        """Rebuild a plan from a stored snapshot."""
        return cls.model_validate(data)

    def safe_copy(self) -> "Plan":
        """Copy of the plan with secrets masked, suitable for logs and API responses."""
        masked = self.model_copy(deep=True)
        for user in masked.database_users:
            if user.password:
                user.password = MASKED
        return masked
