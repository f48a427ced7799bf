"""Fraud detection domain."""

from .models import (
    AlertType,
    DetectionRunResult,
    DetectionWindow,
    FraudAlert,
    ModuleResult,
    RiskLevel,
    RiskScoreDetails,
    Severity,
)
from .modules import ALL_MODULES
from .orchestrator import DetectionOrchestrator, get_orchestrator, module_catalogue
from .risk_aggregator import RiskScoreAggregator

__all__ = [
    "ALL_MODULES",
    "AlertType",
    "DetectionOrchestrator",
    "DetectionRunResult",
    "DetectionWindow",
    "FraudAlert",
    "ModuleResult",
    "RiskLevel",
    "RiskScoreAggregator",
    "RiskScoreDetails",
    "Severity",
    "get_orchestrator",
    "module_catalogue",
]
