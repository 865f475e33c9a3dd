"""
Manual review automation operations against the configured database.

Usage:
    python scripts/review_request_cli.py trigger --company 42 --company-name "Acme Plumbing" \
        --customer "Jane Doe" --email jane@example.com --technician 7 --service "Drain Cleaning"
    python scripts/review_request_cli.py run-pass
    python scripts/review_request_cli.py stats --company 42
"""
import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal

from reviewflow.database import async_session_factory, dispose_engine
from reviewflow.schemas.service_event import ServiceEvent
from reviewflow.services.review_automation import (
    create_request_from_service_event,
    get_automation_stats,
    get_or_create_config,
)
from reviewflow.workers.review_scheduler import process_due_requests

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def trigger(args):
    """Create a review request for a service completed now."""
    event = ServiceEvent(
        check_in_id=args.check_in,
        technician_id=args.technician,
        technician_name=args.technician_name,
        customer_name=args.customer,
        customer_email=args.email,
        customer_phone=args.phone,
        service_type=args.service,
        location=args.location,
        invoice_amount=Decimal(args.invoice),
        positive_experience=args.positive,
        completed_at=datetime.now(timezone.utc),
    )
    async with async_session_factory() as db:
        await get_or_create_config(db, args.company, args.company_name)
        status = await create_request_from_service_event(db, args.company, event)
        await db.commit()

    if status:
        logger.info("Review request created: id=%s token=%s", status.id, status.review_token)
    else:
        logger.info("Service event was not admitted (see log above)")


async def run_pass(args):
    counts = await process_due_requests()
    logger.info("Scheduler pass finished: %s", counts)


async def stats(args):
    async with async_session_factory() as db:
        result = await get_automation_stats(db, args.company)
    print(json.dumps(result, indent=2))


async def main():
    parser = argparse.ArgumentParser(description="Review automation operations")
    sub = parser.add_subparsers(dest="command", required=True)

    p_trigger = sub.add_parser("trigger", help="Create a review request from a service event")
    p_trigger.add_argument("--company", type=int, required=True)
    p_trigger.add_argument("--company-name", default="Test Company")
    p_trigger.add_argument("--customer", required=True)
    p_trigger.add_argument("--email")
    p_trigger.add_argument("--phone")
    p_trigger.add_argument("--technician", type=int, required=True)
    p_trigger.add_argument("--technician-name", default="")
    p_trigger.add_argument("--service", default="service")
    p_trigger.add_argument("--location")
    p_trigger.add_argument("--invoice", default="0")
    p_trigger.add_argument("--check-in", type=int)
    p_trigger.add_argument("--positive", action="store_true", default=None)

    sub.add_parser("run-pass", help="Run one scheduler pass now")

    p_stats = sub.add_parser("stats", help="Print review automation stats for a company")
    p_stats.add_argument("--company", type=int, required=True)

    args = parser.parse_args()
    handlers = {"trigger": trigger, "run-pass": run_pass, "stats": stats}
    try:
        await handlers[args.command](args)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
