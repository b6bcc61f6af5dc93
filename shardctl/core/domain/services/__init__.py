"""Domain services - pure business logic."""

from shardctl.core.domain.services.actions import UpdateActionExecutor
from shardctl.core.domain.services.lifecycle import ClusterLifecycleService
from shardctl.core.domain.services.poller import OperationPoller
from shardctl.core.domain.services.reconciler import TopologyReconciler
from shardctl.core.domain.services.sequencer import ChangePlan, UpdateSequencer
from shardctl.core.domain.services.spec_loader import SpecLoader
from shardctl.core.domain.services.translator import SpecTranslator

__all__ = [
    "SpecTranslator",
    "OperationPoller",
    "TopologyReconciler",
    "UpdateActionExecutor",
    "UpdateSequencer",
    "ChangePlan",
    "ClusterLifecycleService",
    "SpecLoader",
]
