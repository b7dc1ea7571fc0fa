"""Daily settlement and attempt-audit report contents."""

from datetime import datetime, timezone

from topup.services.fulfillment.models import ExternalOutcome
from topup.services.order.models import FulfillmentAttempt, Order
from topup.tooling.reports import attempt_audit, external_settlement, internal_settlement, today_range

TZ = "Asia/Jakarta"
# 12:00 local time on 2026-03-10.
NOW = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)
TODAY = datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc)
YESTERDAY = datetime(2026, 3, 9, 16, 0, tzinfo=timezone.utc)


def order(order_id, status, created_at, amount=10000, fee=1500):
    return Order(
        id=order_id,
        amount=amount,
        admin_fee=fee,
        operator="telkomsel",
        destination_phone="0815-000-0001",
        total=amount + fee,
        status=status,
        created_at=created_at,
    )


def test_today_range_uses_local_midnight():
    today, start, end = today_range(TZ, NOW)
    assert today == "2026-03-10"
    assert start == datetime(2026, 3, 9, 17, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)


def test_external_settlement_totals(session_factory):
    with session_factory() as db:
        db.add_all(
            [
                ExternalOutcome(
                    order_id="a", destination_phone="0815", amount=5000, status="success", processed_at=TODAY
                ),
                ExternalOutcome(
                    order_id="a", destination_phone="0815", amount=5000, status="success", processed_at=TODAY
                ),
                ExternalOutcome(
                    order_id="b",
                    destination_phone="0817",
                    amount=2000,
                    status="error",
                    error="Random error occurred",
                    processed_at=TODAY,
                ),
                ExternalOutcome(
                    order_id="c", destination_phone="0896", amount=9000, status="success", processed_at=YESTERDAY
                ),
            ]
        )
        db.commit()

    report = external_settlement(session_factory, TZ, now=NOW)

    assert report.startswith("Settlement for 2026-03-10 (Asia/Jakarta):")
    assert "Total orders: 3" in report
    assert "Total settled amount: 10000" in report
    assert "Total failed amount: 2000" in report
    assert "2026-03-10 08:00:00" in report


def test_internal_settlement_counts_fulfilment_totals(session_factory):
    with session_factory() as db:
        db.add_all(
            [
                order("o-1", "fulfilment", TODAY),
                order("o-2", "paid", TODAY),
                order("o-3", "fulfilment", YESTERDAY),
            ]
        )
        db.commit()

    report = internal_settlement(session_factory, TZ, now=NOW)

    assert "Total internal orders: 2" in report
    assert "Total fulfilled amount: 11500" in report
    assert "o-3" not in report


def test_empty_reports_say_so(session_factory):
    assert "No orders processed today" in external_settlement(session_factory, TZ, now=NOW)
    assert "No internal orders created today" in internal_settlement(session_factory, TZ, now=NOW)
    assert "No fulfillment attempts today" in attempt_audit(session_factory, TZ, now=NOW)


def test_attempt_audit_sequences_despite_duplicate_numbers(session_factory):
    with session_factory() as db:
        for minute in range(3):
            db.add(
                FulfillmentAttempt(
                    order_id="o-1",
                    attempt_number=1,
                    payload={"order_id": "o-1"},
                    attempted_at=TODAY.replace(minute=minute),
                )
            )
        db.commit()

    report = attempt_audit(session_factory, TZ, now=NOW)
    rows = [line for line in report.splitlines() if "o-1" in line]
    sequences = [int(line.split("│")[3]) for line in rows]
    stored = [int(line.split("│")[4]) for line in rows]

    assert sequences == [3, 2, 1]
    assert stored == [1, 1, 1]
    assert "Total fulfillment attempts: 3" in report
