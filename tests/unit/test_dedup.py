"""Unit tests for transaction deduplication keys."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from pdv_sentinel.domains.sync.dedup import DedupKey, bucket_for, generate_dedup_key
from tests.fakes import T0, make_row


class TestBucketFor:
    def test_aligned_to_window(self):
        ts = datetime(2026, 1, 15, 14, 3, 27, tzinfo=UTC)
        assert bucket_for(ts, 5) == datetime(2026, 1, 15, 14, 0, tzinfo=UTC)

    def test_boundary_starts_new_bucket(self):
        ts = datetime(2026, 1, 15, 14, 5, 0, tzinfo=UTC)
        assert bucket_for(ts, 5) == ts

    def test_naive_taken_as_utc(self):
        naive = datetime(2026, 1, 15, 14, 3)
        assert bucket_for(naive, 5) == datetime(2026, 1, 15, 14, 0, tzinfo=UTC)

    def test_offset_timezones_agree(self):
        utc = datetime(2026, 1, 15, 14, 3, tzinfo=UTC)
        local = utc.astimezone(datetime.now().astimezone().tzinfo)
        assert bucket_for(local, 5) == bucket_for(utc, 5)


class TestGenerateDedupKey:
    def test_same_bucket_collides(self):
        a = generate_dedup_key(make_row("T-1", T0 + timedelta(minutes=1)))
        b = generate_dedup_key(make_row("T-2", T0 + timedelta(minutes=3)))
        assert a == b
        assert a.as_string() == b.as_string()

    def test_next_bucket_does_not_collide(self):
        a = generate_dedup_key(make_row("T-1", T0 + timedelta(minutes=4)))
        b = generate_dedup_key(make_row("T-2", T0 + timedelta(minutes=6)))
        assert a != b

    def test_reference_distinguishes(self):
        a = generate_dedup_key(make_row("T-1", T0, reference="NF-1"))
        b = generate_dedup_key(make_row("T-2", T0, reference="NF-2"))
        assert a != b

    def test_amount_distinguishes(self):
        a = generate_dedup_key(make_row("T-1", T0, amount="50.00"))
        b = generate_dedup_key(make_row("T-2", T0, amount="50.01"))
        assert a != b

    def test_sub_cent_amounts_collide(self):
        a = generate_dedup_key(make_row("T-1", T0, amount="10.004"))
        b = generate_dedup_key(make_row("T-2", T0, amount="10.001"))
        assert a == b
        assert a.amount == Decimal("10.00")
        assert a.as_string() == b.as_string()

    def test_wider_window(self):
        a = generate_dedup_key(make_row("T-1", T0 + timedelta(minutes=1)), window_minutes=15)
        b = generate_dedup_key(make_row("T-2", T0 + timedelta(minutes=14)), window_minutes=15)
        assert a == b

    def test_string_form(self):
        key = DedupKey(
            pdv="PDV-01",
            operator="11111111111",
            amount=Decimal("50"),
            bucket=T0,
            reference=None,
        )
        assert key.as_string() == "PDV-01|11111111111|50.00|2026-01-15T14:00:00+00:00|"
