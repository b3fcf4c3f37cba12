"""
Cliente de línea de comandos del flujo de compra.

Usage:
  python -m agnivirya.client checkout --base http://localhost:8000 --email reader@gmail.com
  python -m agnivirya.client verify --base http://localhost:8000 --timeout 60

`checkout` crea la orden y la guarda en el archivo de estado; `verify` hace el
poll de esa orden igual que la página de descarga.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .checkout import CheckoutClient, CheckoutError
from .download_flow import DownloadFlow
from .storage import LocalOrderStorage
from .verification import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, VerificationState

DEFAULT_STATE_FILE = Path.home() / ".agnivirya" / "client-state.json"


async def run_checkout(args) -> int:
    client = CheckoutClient(args.base)
    storage = LocalOrderStorage(args.state_file)
    try:
        order = await client.create_order(args.email, amount=args.amount, currency=args.currency)
    except CheckoutError as e:
        print(f"Checkout failed: {e}", file=sys.stderr)
        return 1
    storage.save_order(order)
    print(f"Order:    {order.order_id}")
    if order.cf_order_id:
        print(f"CF order: {order.cf_order_id}")
    print(f"Checkout: {order.checkout_url or '(no checkout url)'}")
    return 0


async def run_verify(args) -> int:
    client = CheckoutClient(args.base)
    storage = LocalOrderStorage(args.state_file)
    flow = DownloadFlow(storage, client.verify_payment, interval=args.interval, timeout=args.timeout)
    query = {"payment_status": args.payment_status} if args.payment_status else {}
    try:
        state = await flow.run(query)
        if state != VerificationState.SUCCESS and args.retry:
            state = await flow.retry()
    finally:
        flow.cancel()

    attempts = flow.task.attempts if flow.task is not None else 0
    print(f"State: {state.value}   Attempts: {attempts}")
    return 0 if state == VerificationState.SUCCESS else 2


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(prog="agnivirya.client", description="AgniVirya purchase flow client")
    ap.add_argument("--base", default="http://localhost:8000", help="API base URL")
    ap.add_argument("--state-file", type=Path, default=DEFAULT_STATE_FILE, help="local order state file")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    c = sub.add_parser("checkout", help="create an order and store it locally")
    c.add_argument("--email", required=True)
    c.add_argument("--amount", type=float, default=None)
    c.add_argument("--currency", default=None)

    v = sub.add_parser("verify", help="poll the stored order until paid or timeout")
    v.add_argument("--interval", type=float, default=DEFAULT_INTERVAL)
    v.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    v.add_argument("--payment-status", default=None, help="payment_status from the return URL")
    v.add_argument("--retry", action="store_true", help="one manual retry if not verified")

    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command == "checkout":
        return asyncio.run(run_checkout(args))
    return asyncio.run(run_verify(args))


if __name__ == "__main__":
    sys.exit(main())
