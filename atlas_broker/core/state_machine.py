"""
Operation state machine for Atlas cluster lifecycle polling.

The platform polls the last operation of an instance until a terminal state
is reported. This module maps the operation in flight and the live cluster
state reported by Atlas onto the state returned to the platform. It is a pure
mapping: side effects triggered by terminal states (project and record
cleanup) are performed by the orchestrator.

Usage:
    >>> from atlas_broker.core.state_machine import ClusterStateMachine, Operation
    >>>
    >>> ClusterStateMachine.evaluate(Operation.PROVISION, "IDLE").state
    <LastOperationState.SUCCEEDED: 'succeeded'>
    >>>
    >>> ClusterStateMachine.evaluate(Operation.DEPROVISION, None).state
    <LastOperationState.SUCCEEDED: 'succeeded'>
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

import structlog

logger = structlog.get_logger(__name__)


class Operation(str, Enum):
    """Asynchronous operations returned to the platform and echoed back on polls"""
    PROVISION = "provision"
    UPDATE = "update"
    DEPROVISION = "deprovision"


class ClusterState(str, Enum):
    """Cluster states reported by the Atlas API"""
    IDLE = "IDLE"
    CREATING = "CREATING"
    UPDATING = "UPDATING"
    REPAIRING = "REPAIRING"
    DELETING = "DELETING"
    DELETED = "DELETED"


class LastOperationState(str, Enum):
    """Last operation states understood by the platform"""
    IN_PROGRESS = "in progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Verdict:
    """Result of evaluating one poll."""

    state: LastOperationState
    description: str = ""
    # Set when the cluster is confirmed gone and deprovision cleanup must run
    cleanup: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state != LastOperationState.IN_PROGRESS


class ClusterStateMachine:
    """
    Maps (operation, live cluster state) to the platform-facing verdict.

    A cluster state of None means Atlas reported the cluster as not found.
    """

    # Cluster states that mean an operation is still running
    PENDING_STATES: Dict[Operation, Set[ClusterState]] = {
        Operation.PROVISION: {
            ClusterState.CREATING,
            ClusterState.UPDATING,
            ClusterState.REPAIRING,
        },
        Operation.UPDATE: {
            ClusterState.CREATING,
            ClusterState.UPDATING,
            ClusterState.REPAIRING,
        },
        Operation.DEPROVISION: {
            ClusterState.DELETING,
        },
    }

    # Cluster states that complete an operation
    COMPLETED_STATES: Dict[Operation, Set[ClusterState]] = {
        Operation.PROVISION: {ClusterState.IDLE},
        Operation.UPDATE: {ClusterState.IDLE},
        Operation.DEPROVISION: {ClusterState.DELETED},
    }

    @classmethod
    def parse_operation(cls, raw: Optional[str]) -> Optional[Operation]:
        """
        Parse the operation echoed back by the platform.

        Returns:
            The operation, or None if the value is not one this broker issues
        """
        try:
            return Operation(raw)
        except ValueError:
            return None

    @classmethod
    def evaluate(cls, operation: Operation, cluster_state: Optional[str]) -> Verdict:
        """
        Evaluate one poll.

        Args:
            operation: Operation in flight
            cluster_state: Raw cluster state name, or None if the cluster was not found

        Returns:
            Verdict for the platform

        Example:
            >>> ClusterStateMachine.evaluate(Operation.UPDATE, "UPDATING")
            Verdict(state=<LastOperationState.IN_PROGRESS: 'in progress'>, description='UPDATING', cleanup=False)
        """
        if operation == Operation.DEPROVISION:
            if cluster_state is None or cluster_state == ClusterState.DELETED.value:
                return Verdict(LastOperationState.SUCCEEDED, cleanup=True)
        elif cluster_state is None:
            return Verdict(LastOperationState.FAILED, "cluster not found")

        if cluster_state in {s.value for s in cls.COMPLETED_STATES[operation]}:
            return Verdict(LastOperationState.SUCCEEDED)

        if cluster_state not in {s.value for s in cls.PENDING_STATES[operation]}:
            # Unrecognized states are treated as transient; never fail on them alone
            logger.warning(
                "unknown_cluster_state",
                operation=operation.value,
                cluster_state=cluster_state,
            )

        return Verdict(LastOperationState.IN_PROGRESS, cluster_state)

    @classmethod
    def unknown_operation(cls, raw: Optional[str]) -> Verdict:
        """Verdict for an operation value this broker never issued."""
        return Verdict(LastOperationState.FAILED, f"unknown operation {raw!r}")

    @classmethod
    def local_error(cls, error: Exception) -> Verdict:
        """Verdict for a local failure while evaluating a poll."""
        message = getattr(error, "message", None) or str(error)
        return Verdict(LastOperationState.FAILED, f"got error: {message}")
