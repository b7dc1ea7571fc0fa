"""Operator tooling: reset the schema, run the simulator, print daily reports."""

import argparse
import asyncio

from topup.common.config import settings
from topup.common.db import SessionLocal, create_tables, reset_tables
from topup.common.http import OutboundClient
from topup.common.logging import configure_logging
from topup.tooling.reports import attempt_audit, external_settlement, internal_settlement
from topup.tooling.sandbox import ORDER_URL, PAYMENT_URL, build_sandbox
from topup.tooling.simulator import Simulator, print_summary


async def simulate(count: int, in_process: bool) -> None:
    """Run the simulator against live services, or against an in-process sandbox."""

    sandbox = None
    if in_process:
        create_tables()
        sandbox = build_sandbox(
            SessionLocal,
            idempotency_check=settings.idempotency_check,
            external_idempotency_check=settings.external_idempotency_check,
            payment_delay_ms=settings.payment_timeout_ms,
            fulfillment_timeout_ms=settings.fulfillment_timeout_ms,
            tz_name=settings.timezone,
        )
        outbound = sandbox.outbound
        order_url, payment_url = ORDER_URL, PAYMENT_URL
    else:
        outbound = OutboundClient("simulator")
        order_url, payment_url = settings.order_service_url, settings.payment_service_url

    simulator = Simulator(
        outbound,
        order_url,
        payment_url,
        payment_timeout_ms=settings.payment_timeout_ms,
        create_order_timeout_ms=settings.create_order_timeout_ms,
        workers=settings.simulator_workers,
        max_attempts=settings.simulator_max_attempts,
        delay_ms=settings.simulator_delay_ms,
    )
    print(f"Starting simulation with {count} iterations using {settings.simulator_workers} workers")
    try:
        summary = await simulator.run(count)
    finally:
        if sandbox is not None:
            await sandbox.close()
        else:
            await outbound.close()
    print_summary(summary)


def main() -> None:
    """CLI entrypoint for simulation and settlement checks."""

    parser = argparse.ArgumentParser(description="Top-up idempotency lab tooling.")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("resetdb", help="Drop and recreate all tables")
    simulator = commands.add_parser("simulator", help="Run the end-to-end simulation")
    simulator.add_argument("count", type=int)
    simulator.add_argument(
        "--in-process",
        action="store_true",
        help="Run all services in this process with an in-memory channel",
    )
    commands.add_parser("external-settlement", help="Print today's external settlement")
    commands.add_parser("internal-settlement", help="Print today's internal settlement")
    commands.add_parser("attempt", help="Print today's fulfillment attempt audit log")
    args = parser.parse_args()

    configure_logging()
    if args.command == "resetdb":
        reset_tables()
        print("Database reset completed")
    elif args.command == "simulator":
        asyncio.run(simulate(args.count, args.in_process))
    elif args.command == "external-settlement":
        print(external_settlement(SessionLocal, settings.timezone))
    elif args.command == "internal-settlement":
        print(internal_settlement(SessionLocal, settings.timezone))
    elif args.command == "attempt":
        print(attempt_audit(SessionLocal, settings.timezone))


if __name__ == "__main__":
    main()
