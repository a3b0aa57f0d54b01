"""Deposit and withdraw flow orchestration."""

from vaultflow.orchestrator.deposit import DepositOrchestrator
from vaultflow.orchestrator.states import (
    Approving,
    Confirming,
    Depositing,
    Done,
    Error,
    FlowState,
    Input,
    Withdrawing,
    describe_state,
    state_name,
)
from vaultflow.orchestrator.withdraw import WithdrawOrchestrator

__all__ = [
    "DepositOrchestrator",
    "WithdrawOrchestrator",
    "FlowState",
    "Input",
    "Approving",
    "Depositing",
    "Withdrawing",
    "Confirming",
    "Done",
    "Error",
    "describe_state",
    "state_name",
]
