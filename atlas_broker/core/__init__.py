"""
Core broker logic for Atlas cluster lifecycle management.

This package provides:
- Plan template loading and resolution into validated Atlas plans
- The service catalog derived from plan templates
- The cluster state machine that maps Atlas states to operation verdicts
- Lifecycle orchestration for provision, update, deprovision and polling
"""

# Import lazily to avoid circular dependencies at module load time
# Users should import directly from submodules:
# from atlas_broker.core.plan_resolver import PlanResolver
# from atlas_broker.core.state_machine import ClusterState, ClusterStateMachine
# from atlas_broker.core.orchestrator import LifecycleOrchestrator

__all__ = [
    "ClusterState",
    "ClusterStateMachine",
    "LifecycleOrchestrator",
    "PlanResolver",
]
