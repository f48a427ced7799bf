"""Detection module registry."""

from .base import DetectionModule
from .cash_discrepancy import CashDiscrepancyModule
from .cpf_abuse import CpfAbuseModule
from .ghost_cancellation import GhostCancellationModule
from .no_sale import NoSaleModule
from .pbm_deviation import PbmDeviationModule

ALL_MODULES: list[DetectionModule] = [
    GhostCancellationModule(),
    PbmDeviationModule(),
    NoSaleModule(),
    CpfAbuseModule(),
    CashDiscrepancyModule(),
]

__all__ = [
    "ALL_MODULES",
    "CashDiscrepancyModule",
    "CpfAbuseModule",
    "DetectionModule",
    "GhostCancellationModule",
    "NoSaleModule",
    "PbmDeviationModule",
]
