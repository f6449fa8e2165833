"""EduChain Backend Services"""
from .stellar_client import StellarClient, get_stellar_client, close_stellar_client
from .provisioning import ProvisioningService
from .minting import MintingService
from .trustline import TrustlineService
from .task_workflow import TaskWorkflowService
from .settlement import SettlementService
from .redemption import RedemptionService
from .reconciliation import ReconciliationService, ReconciliationScheduler

__all__ = [
    "StellarClient",
    "get_stellar_client",
    "close_stellar_client",
    # Ledger-backed operations
    "ProvisioningService",
    "MintingService",
    "TrustlineService",
    "SettlementService",
    "RedemptionService",
    # Off-chain workflow and recovery
    "TaskWorkflowService",
    "ReconciliationService",
    "ReconciliationScheduler",
]
