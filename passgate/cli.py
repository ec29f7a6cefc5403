"""Command line interface for passgate.

``passgate shell`` runs one client context: the session lives in memory for as
long as the shell does, credentials go to the durable SQLite directory, and
the software authenticator asks for confirmation instead of a fingerprint.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import pathlib
import sys
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from passgate.auth.ceremonies import CeremonyEngine
from passgate.auth.gate import AccessGate
from passgate.auth.passkey_service import PasskeyService
from passgate.auth.session import SessionManager
from passgate.config.logging import setup_logging
from passgate.config.settings import get_settings
from passgate.exceptions import ConfigError, PassgateError
from passgate.platform.software import SoftwareAuthenticator
from passgate.storage.database import get_engine, init_db
from passgate.storage.repositories.credentials import CredentialDirectory
from passgate.storage.session_store import InMemoryKeyValueStore
from passgate.types import GateVerdict

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from passgate.config.settings import Settings

logger = structlog.get_logger(__name__)

LineReader = Callable[[str], Awaitable[str]]
Writer = Callable[[str], None]

SHELL_HELP = """\
Commands:
  register <username>   create a passkey and sign in
  login <username>      sign in with your passkey
  logout                end the session
  whoami                show the current session
  open <path>           request a protected page
  users                 list registered users
  delete <username>     remove a user's passkey record
  support               check biometric support
  help                  show this help
  quit                  leave the shell"""


async def _read_terminal_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


def build_service(
    settings: Settings,
    engine: AsyncEngine,
    read_line: LineReader = _read_terminal_line,
) -> PasskeyService:
    """Wire a PasskeyService for one terminal client context."""

    async def confirm(prompt: str) -> bool:
        answer = await read_line(f"{prompt} [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    directory = CredentialDirectory(engine)
    key_file = None
    if settings.authenticator_key_file:
        key_file = pathlib.Path(settings.authenticator_key_file)
    platform = SoftwareAuthenticator(settings.origin, verify_user=confirm, key_file=key_file)
    sessions = SessionManager(
        InMemoryKeyValueStore(),
        key=settings.session_key,
        max_age_ms=settings.session_max_age_seconds * 1000,
    )
    gate = AccessGate(settings.auth_path, settings.default_destination)
    ceremonies = CeremonyEngine.from_settings(settings, directory, platform)
    return PasskeyService(ceremonies, sessions, directory, platform, gate)


async def run_shell(
    service: PasskeyService,
    read_line: LineReader = _read_terminal_line,
    write: Writer = print,
) -> None:
    """Interactive loop; returns on ``quit`` or end of input."""
    await service.start()
    return_to: str | None = None
    write("passgate shell. Type 'help' for commands.")

    while True:
        try:
            line = await read_line("passgate> ")
        except EOFError:
            break
        parts = line.split()
        if not parts:
            continue
        command, args = parts[0].lower(), parts[1:]
        if command in {"quit", "exit"}:
            break

        try:
            if command in {"register", "login"}:
                if len(args) != 1:
                    write(f"usage: {command} <username>")
                    continue
                if command == "register":
                    session = await service.register(args[0])
                    write(f"Passkey created for {session.username}. Signed in.")
                else:
                    session = await service.authenticate(args[0])
                    write(f"Welcome back, {session.username}.")
                if return_to is not None:
                    write(f"Returning to {service.gate.destination_after_auth(return_to)}")
                    return_to = None
            elif command == "logout":
                await service.logout()
                write("Signed out.")
            elif command == "whoami":
                current = await service.current_session()
                if current is None:
                    write("Not signed in.")
                else:
                    since = datetime.fromtimestamp(current.established_at / 1000, tz=UTC)
                    write(f"Signed in as {current.username} since {since.isoformat()}")
            elif command == "open":
                path = args[0] if args else service.gate.destination_after_auth(None)
                decision = await service.check_access(path)
                if decision.verdict == GateVerdict.ADMIT:
                    write(f"Access granted: {path}")
                elif decision.verdict == GateVerdict.REDIRECT:
                    return_to = decision.return_to
                    write(f"Authentication required. Redirecting to {decision.redirect_to}.")
                else:
                    write("Checking authentication...")
            elif command == "users":
                users = await service.registered_users()
                write("\n".join(users) if users else "No registered users.")
            elif command == "delete":
                if len(args) != 1:
                    write("usage: delete <username>")
                    continue
                await _delete_user(service, args[0], write)
            elif command == "support":
                support = await service.check_biometric_support()
                write(support.reason)
            elif command == "help":
                write(SHELL_HELP)
            else:
                write(f"Unknown command: {command}. Type 'help'.")
        except PassgateError as exc:
            logger.debug("shell_command_failed", command=command, error=type(exc).__name__)
            write(f"error: {exc}")


async def _list_users(engine: AsyncEngine, as_json: bool, write: Writer = print) -> int:
    directory = CredentialDirectory(engine)
    if not await directory.has_any():
        write("{}" if as_json else "No registered users.")
        return 0
    if as_json:
        records = await directory.records()
        write(json.dumps({r.username: r.as_layout() for r in records}, indent=2))
        return 0
    for username in await directory.list():
        write(username)
    return 0


async def _delete_user(service: PasskeyService, username: str, write: Writer = print) -> int:
    if await service.remove_user(username):
        write(f"Deleted {username}.")
        return 0
    write(f"No such user: {username}")
    return 1


async def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    engine = get_engine()
    await init_db(engine)
    try:
        if args.command == "users":
            return await _list_users(engine, args.json)
        service = build_service(settings, engine)
        if args.command == "delete":
            return await _delete_user(service, args.username)
        if args.command == "support":
            support = await service.check_biometric_support()
            print(json.dumps(support.model_dump()))
            return 0 if support.supported else 1
        await run_shell(service)
        return 0
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="passgate",
        description="Passwordless sign-in with passkeys.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("shell", help="Start an interactive sign-in session (default)")
    users = subparsers.add_parser("users", help="List registered users")
    users.add_argument("--json", action="store_true", help="Print full credential records")
    delete = subparsers.add_parser("delete", help="Remove a user's credential record")
    delete.add_argument("username")
    subparsers.add_parser("support", help="Check biometric support")
    parser.set_defaults(command="shell")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``passgate`` console script."""
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    setup_logging(log_level=settings.log_level, json_output=settings.json_logs)
    try:
        return asyncio.run(_dispatch(args, settings))
    except PassgateError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
