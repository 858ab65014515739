"""
Command line access to the wallet backends.

Credentials persist between invocations when ``WALLET_CREDENTIALS_FILE`` and
``WALLET_CREDENTIALS_KEY`` are set; otherwise every invocation starts signed out.
"""

import argparse
import asyncio
import getpass
import json
import sys
from typing import Any, List, Optional

import pydantic

from shared.config import get_config
from shared.errors import AuthenticationExpired, WalletClientError
from shared.logging import configure_logging

from .main import WalletApp, create_app
from .models import SignInCredentials, SignUpData, TransactionDto
from .transactions.history import DateRange, HistoryQuery, SortBy, SortOrder, apply_filters

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SESSION_EXPIRED = 2
EXIT_INTERRUPTED = 130


def _dump(value: Any) -> Any:
    if isinstance(value, pydantic.BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _print(value: Any):
    print(json.dumps(_dump(value), indent=2, ensure_ascii=False))


async def _login(app: WalletApp, args: argparse.Namespace):
    password = args.password or getpass.getpass("Password: ")
    await app.auth.sign_in(SignInCredentials(email=args.email, password=password))
    _print(await app.auth.get_current_user())


async def _register(app: WalletApp, args: argparse.Namespace):
    password = args.password or getpass.getpass("Password: ")
    confirm = args.password or getpass.getpass("Confirm password: ")
    await app.auth.sign_up(SignUpData(
        email=args.email,
        password=password,
        confirm_password=confirm,
        full_name=args.full_name,
    ))
    _print(await app.auth.get_current_user())


async def _logout(app: WalletApp, args: argparse.Namespace):
    await app.auth.sign_out()
    _print({"signedOut": True})


async def _whoami(app: WalletApp, args: argparse.Namespace):
    user = await app.auth.restore_session()
    if user is None:
        raise AuthenticationExpired("Not signed in")
    _print(user)


async def _wallet(app: WalletApp, args: argparse.Namespace):
    _print(await app.wallet.get_or_create_wallet())


async def _history(app: WalletApp, args: argparse.Namespace):
    query = HistoryQuery(
        search=args.search,
        type=args.type,
        status=args.status,
        date_range=DateRange(args.range),
        sort_by=SortBy(args.sort_by),
        sort_order=SortOrder(args.order),
    )
    _print(apply_filters(await app.transactions.history(), query))


async def _fund(app: WalletApp, args: argparse.Namespace):
    _print(await app.transactions.fund(args.amount))


async def _transfer(app: WalletApp, args: argparse.Namespace):
    pin = args.pin or getpass.getpass("PIN: ")
    if not await app.wallet.verify_pin(pin):
        raise WalletClientError("INVALID_PIN", "Invalid PIN")
    _print(await app.transactions.transfer(TransactionDto(
        to_user_id=args.to,
        amount=args.amount,
        description=args.description,
    )))


async def _recipients(app: WalletApp, args: argparse.Namespace):
    if args.search:
        _print(await app.recipients.search(args.search))
    elif args.add:
        _print(await app.recipients.add(args.add))
    else:
        _print(await app.recipients.list())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wallet-cli", description="Wallet Gateway command line client.")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Sign in and store credentials")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Prompted when omitted")
    login.set_defaults(handler=_login)

    register = commands.add_parser("register", help="Create an account")
    register.add_argument("--email", required=True)
    register.add_argument("--full-name", required=True)
    register.add_argument("--password", help="Prompted (twice) when omitted")
    register.set_defaults(handler=_register)

    commands.add_parser("logout", help="Sign out and forget credentials").set_defaults(handler=_logout)
    commands.add_parser("whoami", help="Show the signed-in user").set_defaults(handler=_whoami)
    commands.add_parser("wallet", help="Show wallet balance, creating the wallet if needed").set_defaults(handler=_wallet)

    history = commands.add_parser("history", help="List transactions")
    history.add_argument("--search", default="", help="Match description or reference")
    history.add_argument("--type", default="all", choices=["all", "credit", "debit", "transfer"])
    history.add_argument("--status", default="all", choices=["all", "pending", "completed", "failed"])
    history.add_argument("--range", default="all", choices=[r.value for r in DateRange])
    history.add_argument("--sort-by", default="date", choices=[s.value for s in SortBy])
    history.add_argument("--order", default="desc", choices=[o.value for o in SortOrder])
    history.set_defaults(handler=_history)

    fund = commands.add_parser("fund", help="Fund the wallet")
    fund.add_argument("amount", type=float)
    fund.set_defaults(handler=_fund)

    transfer = commands.add_parser("transfer", help="Send money to a user")
    transfer.add_argument("--to", required=True, help="Recipient user id")
    transfer.add_argument("--amount", type=float, required=True)
    transfer.add_argument("--description")
    transfer.add_argument("--pin", help="Prompted when omitted")
    transfer.set_defaults(handler=_transfer)

    recipients = commands.add_parser("recipients", help="List, search or add beneficiaries")
    selector = recipients.add_mutually_exclusive_group()
    selector.add_argument("--search", metavar="ACCOUNT_NUMBER")
    selector.add_argument("--add", metavar="ACCOUNT_NUMBER")
    recipients.set_defaults(handler=_recipients)

    return parser


async def run(args: argparse.Namespace, app: Optional[WalletApp] = None) -> int:
    """Execute a parsed command; returns the process exit code."""
    app = app or create_app()
    async with app:
        try:
            await args.handler(app, args)
        except AuthenticationExpired as e:
            print(f"[wallet-cli] {e.message}; sign in again", file=sys.stderr)
            return EXIT_SESSION_EXPIRED
        except WalletClientError as e:
            print(f"[wallet-cli] {e.code}: {e.message}", file=sys.stderr)
            return EXIT_ERROR
        except pydantic.ValidationError as e:
            print(f"[wallet-cli] invalid input: {e.errors()[0]['msg']}", file=sys.stderr)
            return EXIT_ERROR
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging("wallet-cli", config.log_level)
    try:
        return asyncio.run(run(args, create_app(config)))
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
