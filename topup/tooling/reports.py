"""Daily settlement and attempt-audit reports printed as box tables."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import func, select

from topup.common.state_machine import FULFILMENT
from topup.services.fulfillment.models import ExternalOutcome
from topup.services.order.models import FulfillmentAttempt, Order


def today_range(tz_name: str, now: datetime | None = None) -> tuple[str, datetime, datetime]:
    """Return `(YYYY-MM-DD, start, end)` of the current local day, bounds in UTC."""

    zone = ZoneInfo(tz_name)
    now = (now or datetime.now(timezone.utc)).astimezone(zone)
    start = datetime(now.year, now.month, now.day, tzinfo=zone)
    end = start + timedelta(days=1)
    return now.strftime("%Y-%m-%d"), start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_time(value: datetime, tz_name: str) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S")


def truncate(value: str, max_len: int) -> str:
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."


@dataclass
class Column:
    header: str
    width: int
    align: str = "left"


class Table:
    """Fixed-width box-drawing table writer."""

    def __init__(self, title: str, columns: list[Column]) -> None:
        self.title = title
        self.columns = columns

    def _border(self, left: str, mid: str, right: str) -> str:
        return left + mid.join("─" * c.width for c in self.columns) + right

    def _cell(self, column: Column, value) -> str:
        text = str(value)
        if column.align == "right":
            return " " + text.rjust(column.width - 1)
        return " " + text.ljust(column.width - 1)

    def render(self, rows: list[list], empty_message: str) -> str:
        lines = [f"{self.title}:", self._border("┌", "┬", "┐")]
        lines.append("│" + "│".join(self._cell(c, c.header) for c in self.columns) + "│")
        lines.append(self._border("├", "┼", "┤"))
        if not rows:
            inner = sum(c.width for c in self.columns) + len(self.columns) - 1
            lines.append("│" + empty_message.center(inner) + "│")
        for row in rows:
            lines.append("│" + "│".join(self._cell(c, v) for c, v in zip(self.columns, row)) + "│")
        lines.append(self._border("└", "┴", "┘"))
        return "\n".join(lines)


def external_settlement(session_factory, tz_name: str, now: datetime | None = None) -> str:
    """Today's vendor outcomes with settled (success) and failed amount totals."""

    today, start, end = today_range(tz_name, now)
    with session_factory() as db:
        outcomes = list(
            db.execute(
                select(ExternalOutcome)
                .where(ExternalOutcome.processed_at >= start, ExternalOutcome.processed_at < end)
                .order_by(ExternalOutcome.processed_at)
            ).scalars()
        )
    settled = sum(o.amount for o in outcomes if o.status == "success")
    failed = sum(o.amount for o in outcomes if o.status != "success")
    table = Table(
        f"Settlement for {today} ({tz_name})",
        [
            Column("ID", 5),
            Column("Order ID", 38),
            Column("Amount", 8, "right"),
            Column("Status", 9),
            Column("Destination", 15),
            Column("Processed At", 21),
        ],
    )
    rows = [
        [
            o.id,
            truncate(o.order_id, 36),
            o.amount,
            o.status,
            truncate(o.destination_phone, 14),
            local_time(o.processed_at, tz_name),
        ]
        for o in outcomes
    ]
    return "\n".join(
        [
            table.render(rows, "No orders processed today"),
            f"Total orders: {len(outcomes)}",
            f"Total settled amount: {settled}",
            f"Total failed amount: {failed}",
        ]
    )


def internal_settlement(session_factory, tz_name: str, now: datetime | None = None) -> str:
    """Today's orders; fulfilled amount sums `total` of orders in `fulfilment`."""

    today, start, end = today_range(tz_name, now)
    with session_factory() as db:
        orders = list(
            db.execute(
                select(Order).where(Order.created_at >= start, Order.created_at < end).order_by(Order.created_at)
            ).scalars()
        )
    fulfilled = sum(o.total for o in orders if o.status == FULFILMENT)
    table = Table(
        f"Internal Settlement for {today} ({tz_name})",
        [
            Column("Order ID", 38),
            Column("Amount", 7, "right"),
            Column("Fee", 5, "right"),
            Column("Status", 12),
            Column("Operator", 10),
            Column("Destination", 15),
            Column("Created At", 21),
        ],
    )
    rows = [
        [
            truncate(o.id, 36),
            o.amount,
            o.admin_fee,
            o.status,
            truncate(o.operator, 8),
            truncate(o.destination_phone, 14),
            local_time(o.created_at, tz_name),
        ]
        for o in orders
    ]
    return "\n".join(
        [
            table.render(rows, "No internal orders created today"),
            f"Total internal orders: {len(orders)}",
            f"Total fulfilled amount: {fulfilled}",
        ]
    )


def attempt_audit(session_factory, tz_name: str, now: datetime | None = None) -> str:
    """Today's fulfillment attempts, numbered per order by attempt time.

    The sequence column is recomputed with a window function, so it stays
    gap-free even when stored `attempt_number` values collide.
    """

    today, start, end = today_range(tz_name, now)
    sequence = (
        func.row_number()
        .over(partition_by=FulfillmentAttempt.order_id, order_by=(FulfillmentAttempt.attempted_at, FulfillmentAttempt.id))
        .label("sequence")
    )
    with session_factory() as db:
        rows = db.execute(
            select(FulfillmentAttempt, sequence).where(
                FulfillmentAttempt.attempted_at >= start, FulfillmentAttempt.attempted_at < end
            )
        ).all()
    rows = sorted(rows, key=lambda r: (r[0].order_id, -r.sequence))
    table = Table(
        f"Fulfillment Audit for {today} ({tz_name})",
        [
            Column("ID", 5),
            Column("Order ID", 38),
            Column("Attempt", 9, "right"),
            Column("Stored", 8, "right"),
            Column("Payload", 60),
            Column("Attempted At", 21),
        ],
    )
    body = [
        [
            attempt.id,
            truncate(attempt.order_id, 36),
            seq,
            attempt.attempt_number,
            truncate(str(attempt.payload), 58),
            local_time(attempt.attempted_at, tz_name),
        ]
        for attempt, seq in rows
    ]
    return "\n".join(
        [
            table.render(body, "No fulfillment attempts today"),
            f"Total fulfillment attempts: {len(rows)}",
        ]
    )
