"""
Command-line interface for the Gateway Payments SDK.
"""

import argparse
import dataclasses
import json
import sys
from typing import List, Optional

from gateway_payments.config import GatewaySettings
from gateway_payments.exceptions import GatewayPaymentsError
from gateway_payments.logging_config import setup_logging
from gateway_payments.providers import PaymentProvider, create_payment_provider


def create_provider(args: argparse.Namespace) -> PaymentProvider:
    settings = GatewaySettings.from_env()
    if args.sandbox is not None:
        settings = dataclasses.replace(settings, sandbox=args.sandbox)
    return create_payment_provider("cybersource", settings=settings)


def cmd_capture_context(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    context = provider.issue_capture_context(args.store_url, card_types=args.card_types)
    print(json.dumps(context.to_public_parameters(), indent=2))


def cmd_transaction(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    details = provider.get_transaction(args.transaction_id)
    print(json.dumps(details, indent=2, default=str))


def cmd_webhooks_list(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    subscriptions = provider.list_webhooks()
    if not subscriptions:
        print("No webhook subscriptions found.")
        return
    print(f"Webhook subscriptions ({len(subscriptions)}):")
    for subscription in subscriptions:
        print(f"\n{subscription.name} ({subscription.id}):")
        print(f"  Status: {subscription.status or 'unknown'}")
        print(f"  Events: {', '.join(subscription.event_types)}")
        if subscription.webhook_url:
            print(f"  URL: {subscription.webhook_url}")


def cmd_webhooks_register(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    subscription = provider.register_webhooks()
    if subscription is None:
        print("Webhook registration was accepted without a subscription id.")
    else:
        print(f"Registered webhook subscription {subscription.id} ({subscription.name})")


def cmd_webhooks_unregister(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    removed = provider.unregister_webhooks()
    print(f"Removed {removed} webhook subscription(s)")


def cmd_webhooks_products(args: argparse.Namespace) -> None:
    provider = create_provider(args)
    products = provider.list_webhook_products()
    if not products:
        print("No webhook products available.")
        return
    print(f"Webhook products ({len(products)}):")
    for product in products:
        print(f"\n{product.product_name or product.product_id} ({product.product_id}):")
        for event_type in product.event_types:
            print(f"  - {event_type}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gateway-payments",
        description="Gateway Payments SDK Command Line Interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s capture-context --store-url https://shop.example.com
  %(prog)s --production webhooks list
  %(prog)s webhooks register
  %(prog)s transaction 7012345678901234567890
        """,
    )
    environment = parser.add_mutually_exclusive_group()
    environment.add_argument("--sandbox", dest="sandbox", action="store_true", default=None, help="Use the sandbox gateway")
    environment.add_argument("--production", dest="sandbox", action="store_false", help="Use the production gateway")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    context_parser = subparsers.add_parser("capture-context", help="Issue a verified capture context")
    context_parser.add_argument("--store-url", required=True, help="Origin of the checkout page")
    context_parser.add_argument("--card-types", help="Comma-separated card brands (default: configured card types)")
    context_parser.set_defaults(func=cmd_capture_context)

    transaction_parser = subparsers.add_parser("transaction", help="Show a gateway transaction's details")
    transaction_parser.add_argument("transaction_id", help="Gateway transaction id")
    transaction_parser.set_defaults(func=cmd_transaction)

    webhooks_parser = subparsers.add_parser("webhooks", help="Manage webhook subscriptions")
    webhooks_subparsers = webhooks_parser.add_subparsers(dest="webhooks_command", help="Webhook commands")
    list_parser = webhooks_subparsers.add_parser("list", help="List webhook subscriptions")
    list_parser.set_defaults(func=cmd_webhooks_list)
    register_parser = webhooks_subparsers.add_parser("register", help="Replace the configured webhook subscription")
    register_parser.set_defaults(func=cmd_webhooks_register)
    unregister_parser = webhooks_subparsers.add_parser("unregister", help="Remove the configured webhook subscription")
    unregister_parser.set_defaults(func=cmd_webhooks_unregister)
    products_parser = webhooks_subparsers.add_parser("products", help="List products available for webhook subscriptions")
    products_parser.set_defaults(func=cmd_webhooks_products)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)

    setup_logging(level=args.log_level)
    try:
        args.func(args)
    except GatewayPaymentsError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
