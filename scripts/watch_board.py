#!/usr/bin/env python3
"""Print the delivery board and keep it current from the change feed.

Configuration comes from the ``DESKDROP_*`` environment variables (at
least ``DESKDROP_BASE_URL`` and ``DESKDROP_API_KEY``). Without
``DESKDROP_BROKER_HOST`` the board is printed once and the script exits.

Usage::

    python scripts/watch_board.py                 # today's tracking board
    python scripts/watch_board.py --view mine     # this device's orders
    python scripts/watch_board.py --sort createdAt --status ordered
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from deskdrop import (  # noqa: E402
    DeskdropClient,
    DeskdropConfig,
    DeskdropError,
    OrderStatus,
    SortKey,
    ViewKind,
    ViewState,
    evaluate_urgency,
    sort_orders,
)
from deskdrop._time import resolve_zone, to_local, utcnow  # noqa: E402


def _render(state: ViewState, *, sort_key: SortKey, status: OrderStatus | None, config: DeskdropConfig) -> str:
    zone = resolve_zone(config.time_zone)
    now = utcnow()
    lines = [f"--- {to_local(now, zone):%H:%M:%S} ---"]
    if state.loading:
        lines.append("(loading)")
    if state.error:
        lines.append(f"error: {state.error}")
    orders = sort_orders(state.orders, sort_key, status=status)
    if not orders and not state.loading:
        lines.append("No orders.")
    for order in orders:
        urgency = evaluate_urgency(
            order.status,
            order.estimated_delivery_time,
            now,
            imminent_minutes=config.imminent_minutes,
        )
        eta = to_local(order.estimated_delivery_time, zone)
        lines.append(
            f"{order.order_reference:<14} {order.owner_name:<18} {order.platform or '-':<10} "
            f"{eta:%H:%M}  {order.status.label:<10} {urgency.describe()}"
        )
    return "\n".join(lines)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Watch the office delivery board")
    parser.add_argument("--view", choices=[kind.value for kind in ViewKind], default=ViewKind.TRACKING.value)
    parser.add_argument("--sort", choices=[key.value for key in SortKey], default=SortKey.DELIVERY_TIME.value)
    parser.add_argument("--status", choices=[status.value for status in OrderStatus], help="Only show this status")
    parser.add_argument("--once", action="store_true", help="Print the board once and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config = DeskdropConfig.from_env()
    except DeskdropError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    sort_key = SortKey(args.sort)
    status = OrderStatus(args.status) if args.status else None
    follow = not args.once and config.broker_host is not None

    def on_change(state: ViewState) -> None:
        if not state.loading:
            print(_render(state, sort_key=sort_key, status=status, config=config), flush=True)

    async with DeskdropClient(config) as client:
        async with client.open_view(ViewKind(args.view), follow_feed=follow, on_change=on_change):
            if not follow:
                return 0
            # Runs until interrupted; leaving the context unsubscribes.
            await asyncio.Event().wait()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
