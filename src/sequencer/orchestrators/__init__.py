"""Orchestration strategies."""

from sequencer.orchestrators.base import Orchestrator, Stages
from sequencer.orchestrators.registry import (
    ORCHESTRATORS,
    available_strategies,
    create_orchestrator,
)
from sequencer.orchestrators.sequential import ScheduledOrchestrator, SequentialOrchestrator
from sequencer.orchestrators.waves import (
    AllowedToFailBatchOrchestrator,
    BatchOrchestrator,
    DependencyGraphOrchestrator,
    TransactionalBatchOrchestrator,
)

__all__ = [
    "ORCHESTRATORS",
    "AllowedToFailBatchOrchestrator",
    "BatchOrchestrator",
    "DependencyGraphOrchestrator",
    "Orchestrator",
    "ScheduledOrchestrator",
    "SequentialOrchestrator",
    "Stages",
    "TransactionalBatchOrchestrator",
    "available_strategies",
    "create_orchestrator",
]
