"""Score-to-severity and score-to-risk-level mappings."""

from decimal import Decimal

from .config import DetectionConfig, default_config
from .models import AlertType, RiskLevel, RiskScoreDetails, Severity


def severity_from_score(score: int) -> Severity:
    """Generic alert severity bucketed by the alert's risk score."""
    if score <= 30:
        return Severity.LOW
    if score <= 50:
        return Severity.MEDIUM
    if score <= 80:
        return Severity.HIGH
    return Severity.CRITICAL


def severity_from_discrepancy(
    amount: Decimal, config: DetectionConfig = default_config
) -> Severity:
    """Cash discrepancy severity bucketed by absolute magnitude, not by score."""
    amount = abs(amount)
    if amount < config.cash.medium_from:
        return Severity.LOW
    if amount < config.cash.high_from:
        return Severity.MEDIUM
    if amount < config.cash.critical_from:
        return Severity.HIGH
    return Severity.CRITICAL


def risk_level(score: int, config: DetectionConfig = default_config) -> RiskLevel:
    if score <= config.levels.low_max:
        return RiskLevel.LOW
    if score <= config.levels.medium_max:
        return RiskLevel.MEDIUM
    if score <= config.levels.high_max:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def points_for(alert_type: AlertType, config: DetectionConfig = default_config) -> int:
    return {
        AlertType.GHOST_CANCELLATION: config.points.ghost_cancellation,
        AlertType.PBM_DEVIATION: config.points.pbm_deviation,
        AlertType.NO_SALE: config.points.no_sale,
        AlertType.CPF_ABUSE: config.points.cpf_abuse,
        AlertType.CASH_DISCREPANCY: config.points.cash_discrepancy,
    }[alert_type]


def score_operator(
    operator_id: str,
    counts: dict[AlertType, int],
    config: DetectionConfig = default_config,
) -> RiskScoreDetails:
    """Weighted total of per-type alert counts, classified into a risk level."""
    total = sum(points_for(alert_type, config) * n for alert_type, n in counts.items())
    return RiskScoreDetails(
        operator_id=operator_id,
        ghost_cancellations=counts.get(AlertType.GHOST_CANCELLATION, 0),
        pbm_deviations=counts.get(AlertType.PBM_DEVIATION, 0),
        no_sale_events=counts.get(AlertType.NO_SALE, 0),
        cpf_abuse_count=counts.get(AlertType.CPF_ABUSE, 0),
        cash_discrepancies=counts.get(AlertType.CASH_DISCREPANCY, 0),
        total_score=total,
        risk_level=risk_level(total, config),
    )
