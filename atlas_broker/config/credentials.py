"""
Atlas API credentials, one programmatic API key per organization.

The credentials file is YAML (or JSON, which YAML accepts):

    orgs:
      5e1f2a...:
        publicKey: abcdefgh
        privateKey: 0000-1111-...
        desc: production org

Declaration order is preserved; it is the order in which organizations are
searched when an instance is looked up without knowing its organization.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from atlas_broker.config.logging import get_logger

logger = get_logger(__name__)


class APIKey(BaseModel):
    """Programmatic API key of one Atlas organization."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    public_key: str
    private_key: str
    desc: Optional[str] = None


class BrokerCredentials(BaseModel):
    orgs: Dict[str, APIKey] = Field(default_factory=dict)

    def org_ids(self) -> List[str]:
        """Organization IDs in declaration order."""
        return list(self.orgs)

    def for_org(self, org_id: str) -> Optional[APIKey]:
        return self.orgs.get(org_id)

    def template_context(self) -> Dict[str, Any]:
        """Credentials as exposed to plan templates (``credentials.orgs``)."""
        return {
            "orgs": {
                org_id: key.model_dump(by_alias=True, exclude_none=True)
                for org_id, key in self.orgs.items()
            }
        }


def load_credentials(path: Optional[str]) -> BrokerCredentials:
    """
    Load credentials from a YAML/JSON file.

    Args:
        path: File path; None yields empty credentials

    Returns:
        Parsed credentials

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a valid credentials document
    """
    if not path:
        logger.warning("no_credentials_file_configured")
        return BrokerCredentials()

    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"credentials file {path} must contain a mapping")

    credentials = BrokerCredentials.model_validate(raw)
    logger.info("credentials_loaded", path=path, orgs=credentials.org_ids())
    return credentials
