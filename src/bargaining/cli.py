"""Operator CLI for the negotiation store.

Provides an argparse-based command-line tool to run an expiry sweep on
demand, inspect one negotiation, page through a participant's negotiations
and print aggregate statistics.  Output formats: table (default) or JSON.

Usage::

    python -m bargaining.cli sweep
    python -m bargaining.cli show 3f2c9a...
    python -m bargaining.cli list --user cust_1 --role initiator --status pending
    python -m bargaining.cli stats --user art_1 --role counterparty --format json
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from bargaining.config import get_settings
from bargaining.domain.clock import utc_now
from bargaining.domain.models import ListFilters, Negotiation, NegotiationStats, NegotiationSummary
from bargaining.domain.types import NegotiationKind, NegotiationStatus, ParticipantRole
from bargaining.state.store import NegotiationStore


MAX_PAGE_SIZE = 100


def _positive_int(value: str) -> int:
    """Parse a page number (at least 1)."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _page_size(value: str) -> int:
    """Parse a page size within ``1..MAX_PAGE_SIZE``."""
    number = _positive_int(value)
    if number > MAX_PAGE_SIZE:
        raise argparse.ArgumentTypeError(
            f"must be between 1 and {MAX_PAGE_SIZE}, got {number}"
        )
    return number


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per operation.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Inspect and maintain negotiations")
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the negotiation database (default: BARGAINING_DATABASE_PATH)",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sweep", help="Expire every open negotiation past its deadline")

    show = sub.add_parser("show", help="Show one negotiation with its history")
    show.add_argument("negotiation_id", type=str)

    listing = sub.add_parser("list", help="List a participant's negotiations")
    listing.add_argument("--user", type=str, required=True, help="Participant ID")
    listing.add_argument(
        "--role",
        type=str,
        required=True,
        choices=[r.value for r in ParticipantRole],
        help="Which side the participant is on",
    )
    listing.add_argument(
        "--status",
        type=str,
        action="append",
        choices=[s.value for s in NegotiationStatus],
        help="Filter by status (repeatable)",
    )
    listing.add_argument(
        "--kind",
        type=str,
        action="append",
        choices=[k.value for k in NegotiationKind],
        help="Filter by kind (repeatable)",
    )
    listing.add_argument("--page", type=_positive_int, default=1, help="Page number (default: 1)")
    listing.add_argument(
        "--limit",
        type=_page_size,
        default=10,
        help=f"Page size, 1-{MAX_PAGE_SIZE} (default: 10)",
    )

    stats = sub.add_parser("stats", help="Print aggregate statistics")
    stats.add_argument("--user", type=str, help="Participant ID (default: everyone)")
    stats.add_argument(
        "--role",
        type=str,
        choices=[r.value for r in ParticipantRole],
        help="Which side the participant is on (required with --user)",
    )

    return parser


def _truncate(value: object, width: int) -> str:
    s = str(value if value is not None else "")
    if len(s) > width:
        return s[: width - 3] + "..."
    return s


def format_summaries_table(items: list[NegotiationSummary]) -> str:
    """Format negotiation summaries as a human-readable table.

    Columns: ID, Kind, Subject, Status, Offer, Final, Expires.

    Args:
        items: Summaries from ``NegotiationStore.list_for``.

    Returns:
        Formatted table string with header row.
    """
    if not items:
        return "No results found."

    headers = ["ID", "Kind", "Subject", "Status", "Offer", "Final", "Expires"]
    widths = [32, 12, 24, 15, 12, 12, 20]

    lines: list[str] = []
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    lines.append(header_line)
    lines.append("-" * len(header_line))

    for item in items:
        cells = [
            _truncate(item.id, widths[0]),
            _truncate(item.kind, widths[1]),
            _truncate(item.subject_label, widths[2]),
            _truncate(item.status, widths[3]),
            _truncate(item.current_offer, widths[4]),
            _truncate(item.final_value, widths[5]),
            _truncate(item.expires_at.strftime("%Y-%m-%d %H:%M"), widths[6]),
        ]
        lines.append("  ".join(c.ljust(w) for c, w in zip(cells, widths, strict=True)))

    return "\n".join(lines)


def format_negotiation(negotiation: Negotiation) -> str:
    """Format one negotiation and its history as indented text."""
    lines = [
        f"Negotiation {negotiation.id} ({negotiation.kind})",
        f"  Subject:      {negotiation.subject_label} [{negotiation.subject_key}]",
        f"  Initiator:    {negotiation.initiator_id}",
        f"  Counterparty: {negotiation.counterparty_id}",
        f"  Status:       {negotiation.status}"
        + (f" (awaiting {negotiation.awaiting_role})" if negotiation.awaiting_role else ""),
        f"  Reference:    {negotiation.reference_value if negotiation.reference_value else '-'}",
        f"  Current:      {negotiation.current_offer}",
        f"  Final:        {negotiation.final_value if negotiation.final_value else '-'}",
        f"  Quantity:     {negotiation.quantity}",
        f"  Expires:      {negotiation.expires_at.isoformat()}",
        "  History:",
    ]
    for event in negotiation.history:
        detail = event.model_dump(exclude={"action", "actor", "at"}, exclude_none=True)
        rendered = ", ".join(f"{k}={v}" for k, v in detail.items())
        lines.append(f"    {event.at.isoformat()}  {event.actor:<12}  {event.action:<8}  {rendered}")
    return "\n".join(lines)


def format_stats(stats: NegotiationStats) -> str:
    """Format statistics as aligned key/value lines."""
    return "\n".join(f"{key:<16}{value}" for key, value in stats.model_dump().items())


def format_json(payload: Any) -> str:
    """Format a pydantic model (or dict) as pretty-printed JSON."""
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(mode="json")
    return json.dumps(payload, indent=2)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the subcommand and print its output.

    Returns:
        Process exit code: 0 on success, 1 when the negotiation is not found
        or the arguments are inconsistent.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    db_path = Path(args.db) if args.db else get_settings().database_path
    db_path.expanduser().parent.mkdir(parents=True, exist_ok=True)
    store = NegotiationStore(db_path.expanduser())
    as_json = args.output_format == "json"

    try:
        if args.command == "sweep":
            count = store.sweep_expired(utc_now())
            print(format_json({"expired": count}) if as_json else f"Expired {count} negotiation(s)")
            return 0

        if args.command == "show":
            negotiation = store.get(args.negotiation_id)
            if negotiation is None:
                print(f"Negotiation {args.negotiation_id} not found", file=sys.stderr)
                return 1
            print(format_json(negotiation) if as_json else format_negotiation(negotiation))
            return 0

        if args.command == "list":
            filters = ListFilters(
                kinds=[NegotiationKind(k) for k in args.kind] if args.kind else None,
                statuses=[NegotiationStatus(s) for s in args.status] if args.status else None,
                page=args.page,
                limit=args.limit,
            )
            page = store.list_for(args.user, ParticipantRole(args.role), filters)
            if as_json:
                print(format_json(page))
            else:
                print(format_summaries_table(page.items))
                print(f"\nPage {page.page}/{page.total_pages or 1} ({page.total} total)")
            return 0

        # stats
        if args.user and not args.role:
            print("--role is required with --user", file=sys.stderr)
            return 1
        stats = store.stats(
            args.user,
            ParticipantRole(args.role) if args.user else None,
        )
        print(format_json(stats) if as_json else format_stats(stats))
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
