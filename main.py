"""
Command-line entry point for the service concierge.

Creates a request, drives it with ``advance`` and prints the resulting
request as JSON. Research requests stop at ``recommended`` unless
``--select`` picks a provider (1 = top recommendation).

Usage:
    Direct task: python main.py direct "Dr. Lee's office" "+1 864 555 0100" \
                     "Reschedule my appointment to next week"
    Research:    python main.py research "plumber" "Greenville SC" \
                     --lat 34.85 --lng -82.40 \
                     --criteria "licensed, available this week" --select 1 \
                     --notify-phone "+1 864 555 0199" --contact-preference text
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from concierge.context import AppContext
from concierge.errors import ConciergeError
from concierge.schemas.request_schema import (
    ContactPreference,
    DirectContact,
    RequestInput,
    RequestType,
)
from concierge.schemas.research_schema import Coordinates

logger = logging.getLogger(__name__)


def _add_notify_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--notify-phone", help="Your number, for the recommendation notice")
    parser.add_argument(
        "--contact-preference",
        choices=[p.value for p in ContactPreference],
        help="How to send the recommendation notice",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delegate a phone task to the concierge.")
    sub = parser.add_subparsers(dest="command", required=True)

    direct = sub.add_parser("direct", help="Call a known contact and perform a task")
    direct.add_argument("name", help="Contact name")
    direct.add_argument("phone", help="Contact phone number")
    direct.add_argument("task", help="What the call should accomplish")
    direct.add_argument("--user-id")
    _add_notify_arguments(direct)

    research = sub.add_parser("research", help="Find, call and book a service provider")
    research.add_argument("service", help="Service needed, e.g. 'plumber'")
    research.add_argument("location", help="Where the service is needed")
    research.add_argument("--criteria", default="", help="Requirements for the provider")
    research.add_argument(
        "--select", type=int, metavar="RANK",
        help="Book the recommendation with this rank (1 = best)",
    )
    research.add_argument("--lat", type=float, help="Latitude of the service location")
    research.add_argument("--lng", type=float, help="Longitude of the service location")
    research.add_argument("--user-id")
    _add_notify_arguments(research)
    return parser


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if (getattr(args, "lat", None) is None) != (getattr(args, "lng", None) is None):
        parser.error("--lat and --lng must be given together")
    return args


def _to_input(args: argparse.Namespace) -> RequestInput:
    contact = {
        "user_id": args.user_id,
        "user_phone": args.notify_phone,
        "contact_preference": args.contact_preference,
    }
    if args.command == "direct":
        return RequestInput(
            type=RequestType.DIRECT_TASK,
            title=f"Call {args.name}",
            description=args.task,
            direct_contact=DirectContact(name=args.name, phone=args.phone),
            **contact,
        )
    coordinates = None
    if args.lat is not None and args.lng is not None:
        coordinates = Coordinates(latitude=args.lat, longitude=args.lng)
    return RequestInput(
        type=RequestType.RESEARCH_AND_BOOK,
        title=args.service,
        criteria=args.criteria,
        location=args.location,
        coordinates=coordinates,
        **contact,
    )


async def _run(args: argparse.Namespace) -> int:
    context = AppContext()
    try:
        manager = context.build_manager()
        request = await manager.create_request(_to_input(args))
        request = await manager.advance(request.id)

        rank = getattr(args, "select", None)
        if rank is not None and request.recommendations:
            if not 1 <= rank <= len(request.recommendations):
                logger.error("--select must be between 1 and %d", len(request.recommendations))
                return 2
            choice = request.recommendations[rank - 1]
            await manager.select_provider(request.id, choice.provider_id)
            request = await manager.advance(request.id)

        print(request.model_dump_json(indent=2))
        return 0 if request.status.value != "failed" else 1
    except ConciergeError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await context.aclose()


if __name__ == "__main__":
    sys.exit(asyncio.run(_run(_parse_args())))
