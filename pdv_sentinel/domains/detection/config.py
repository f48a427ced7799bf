"""Detection thresholds and scoring constants with sensible defaults."""

import os
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class GhostCancellationThresholds:
    delay_seconds: int = 60


@dataclass
class PbmThresholds:
    match_window_seconds: int = 5 * 60


@dataclass
class NoSaleThresholds:
    events_per_shift: int = 3
    points_per_event: int = 20
    shift_cap: int = 60
    shift_timezone: str = "America/Sao_Paulo"


@dataclass
class CpfAbuseThresholds:
    employee_document_max: int = 10
    customer_document_max: int = 20


@dataclass
class CashDiscrepancyThresholds:
    minimum_amount: Decimal = Decimal("10.00")
    medium_from: Decimal = Decimal("50.00")
    high_from: Decimal = Decimal("200.00")
    critical_from: Decimal = Decimal("500.00")


@dataclass
class RiskPoints:
    ghost_cancellation: int = 30
    pbm_deviation: int = 40
    no_sale: int = 20
    cpf_abuse: int = 50
    cash_discrepancy: int = 35


@dataclass
class RiskLevelBands:
    low_max: int = 50
    medium_max: int = 150
    high_max: int = 300


@dataclass
class DetectionConfig:
    lookback_days: int = 30
    parallel_modules: bool = True
    ghost: GhostCancellationThresholds = field(default_factory=GhostCancellationThresholds)
    pbm: PbmThresholds = field(default_factory=PbmThresholds)
    no_sale: NoSaleThresholds = field(default_factory=NoSaleThresholds)
    cpf: CpfAbuseThresholds = field(default_factory=CpfAbuseThresholds)
    cash: CashDiscrepancyThresholds = field(default_factory=CashDiscrepancyThresholds)
    points: RiskPoints = field(default_factory=RiskPoints)
    levels: RiskLevelBands = field(default_factory=RiskLevelBands)

    @classmethod
    def from_env(cls) -> "DetectionConfig":
        """Load config with env var overrides. Env vars use DETECTION_ prefix."""
        config = cls()

        if v := os.getenv("DETECTION_LOOKBACK_DAYS"):
            config.lookback_days = int(v)
        if v := os.getenv("DETECTION_PARALLEL_MODULES"):
            config.parallel_modules = v.lower() in ("1", "true", "yes")

        # Module thresholds
        if v := os.getenv("DETECTION_GHOST_DELAY_SECONDS"):
            config.ghost.delay_seconds = int(v)
        if v := os.getenv("DETECTION_PBM_WINDOW_SECONDS"):
            config.pbm.match_window_seconds = int(v)
        if v := os.getenv("DETECTION_NO_SALE_EVENTS_PER_SHIFT"):
            config.no_sale.events_per_shift = int(v)
        if v := os.getenv("DETECTION_SHIFT_TIMEZONE"):
            config.no_sale.shift_timezone = v
        if v := os.getenv("DETECTION_CPF_EMPLOYEE_MAX"):
            config.cpf.employee_document_max = int(v)
        if v := os.getenv("DETECTION_CPF_CUSTOMER_MAX"):
            config.cpf.customer_document_max = int(v)
        if v := os.getenv("DETECTION_CASH_MINIMUM_AMOUNT"):
            config.cash.minimum_amount = Decimal(v)

        return config


# Module-level default instance
default_config = DetectionConfig()
