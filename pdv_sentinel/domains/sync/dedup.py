"""Deduplication keys for ingested ERP transactions.

Two rows collide when they share pdv, operator, amount (to the cent) and
reference and their timestamps fall in the same fixed-width bucket. Buckets
are aligned to the Unix epoch, so a row one bucket-width later never
collides with the first.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from .models import TransactionRow

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class DedupKey:
    pdv: str
    operator: str
    amount: Decimal
    bucket: datetime
    reference: str | None = None

    def as_string(self) -> str:
        return "|".join(
            [
                self.pdv,
                self.operator,
                f"{self.amount:.2f}",
                self.bucket.isoformat(),
                self.reference or "",
            ]
        )


def bucket_for(timestamp: datetime, window_minutes: int) -> datetime:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    width = window_minutes * 60
    epoch = int(timestamp.timestamp())
    return datetime.fromtimestamp(epoch - epoch % width, tz=UTC)


def generate_dedup_key(row: TransactionRow, window_minutes: int = 5) -> DedupKey:
    return DedupKey(
        pdv=row.pdv,
        operator=row.operator,
        amount=row.amount.quantize(CENTS, rounding=ROUND_HALF_UP),
        bucket=bucket_for(row.timestamp, window_minutes),
        reference=row.reference,
    )
