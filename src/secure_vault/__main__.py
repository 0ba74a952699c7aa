# Secure Vault - Command Line Entry Point
#
#   secure-vault generate [--length N] [--count N] [--no-symbols] ...
#   secure-vault strength [PASSWORD]
#   secure-vault export --user USER_ID [--output FILE]
#   secure-vault import --user USER_ID FILE
#
# The master password is always read from the terminal, never from argv
# or the environment. Store location comes from VaultConfig.from_env().

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core import EventSeverity, EventType, VaultConfig, VaultException, get_audit_logger
from .generator import GeneratorPolicy, generate_many, score
from .vault import SessionManager, VaultManager


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secure-vault",
        description="Secure Vault - encrypted personal credential vault",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Secure Vault v{__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate random passwords")
    gen.add_argument("--length", type=int, default=16, help="Password length, 4-128 (default: 16)")
    gen.add_argument("--count", type=int, default=1, help="How many passwords (default: 1)")
    gen.add_argument("--no-upper", action="store_true", help="Exclude uppercase letters")
    gen.add_argument("--no-lower", action="store_true", help="Exclude lowercase letters")
    gen.add_argument("--no-numbers", action="store_true", help="Exclude digits")
    gen.add_argument("--no-symbols", action="store_true", help="Exclude symbols")
    gen.add_argument("--exclude-similar", action="store_true", help="Drop il1Lo0O")
    gen.add_argument("--exclude-ambiguous", action="store_true", help="Drop brackets, quotes and markup punctuation")

    strength = sub.add_parser("strength", help="Score a password")
    strength.add_argument("password", nargs="?", help="Password to score (prompted if omitted)")

    export = sub.add_parser("export", help="Write a plaintext JSON backup")
    export.add_argument("--user", required=True, help="Vault owner's user id")
    export.add_argument("--output", type=Path, help="Output file (default: stdout)")

    imp = sub.add_parser("import", help="Replace the vault from a JSON backup")
    imp.add_argument("--user", required=True, help="Vault owner's user id")
    imp.add_argument("file", type=Path, help="Backup file written by export")

    return parser


def _cmd_generate(args) -> int:
    policy = GeneratorPolicy(
        length=args.length,
        include_uppercase=not args.no_upper,
        include_lowercase=not args.no_lower,
        include_numbers=not args.no_numbers,
        include_symbols=not args.no_symbols,
        exclude_similar=args.exclude_similar,
        exclude_ambiguous=args.exclude_ambiguous,
    )
    for password in generate_many(policy, args.count):
        print(password)
    return 0


def _cmd_strength(args) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass("Password to score: ")
    report = score(password)
    print(f"{report.label} ({report.score}/100)")
    for advice in report.feedback:
        print(f"  - {advice}")
    return 0


def _open_vault(config: VaultConfig, user_id: str) -> VaultManager:
    manager = VaultManager(
        config.build_store(),
        session=SessionManager(auto_lock_minutes=config.auto_lock_minutes),
    )
    manager.unlock(user_id, getpass.getpass("Master password: "))
    return manager


def _cmd_export(args, config: VaultConfig) -> int:
    manager = _open_vault(config, args.user)
    try:
        document = manager.export()
    finally:
        manager.sign_out()

    if args.output:
        args.output.write_text(document + "\n", encoding="utf-8")
        print(f"Exported vault to {args.output}", file=sys.stderr)
    else:
        print(document)
    return 0


def _cmd_import(args, config: VaultConfig) -> int:
    try:
        document = args.file.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot read {args.file}: {exc}", file=sys.stderr)
        return 1

    manager = _open_vault(config, args.user)
    try:
        result = manager.import_document(document)
    finally:
        manager.sign_out()

    print(
        f"Imported {result.passwords} password(s)"
        + (" and settings" if result.settings else ""),
        file=sys.stderr,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for Secure Vault."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "generate":
            return _cmd_generate(args)
        if args.command == "strength":
            return _cmd_strength(args)

        config = VaultConfig.from_env()
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_START,
            severity=EventSeverity.INFO,
            message="Secure Vault CLI starting",
            details={
                "version": __version__,
                "command": args.command,
                "store": "remote" if config.uses_remote_store else "sqlite",
            },
        )
        if args.command == "export":
            return _cmd_export(args, config)
        return _cmd_import(args, config)

    except (VaultException, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
