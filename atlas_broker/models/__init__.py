from atlas_broker.models.plan import Cluster, DatabaseUser, Plan, Project, ProviderSettings
from atlas_broker.models.context import PlanContext
# Note: InstanceDocument is a Beanie Document model, not a Pydantic model
# Import it from atlas_broker.repositories.models instead

__all__ = [
    "Cluster",
    "DatabaseUser",
    "Plan",
    "PlanContext",
    "Project",
    "ProviderSettings",
]
