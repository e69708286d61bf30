"""
Command line front end for SentinelVault.

Usage:
    sentinelvault init                  # Create a vault
    sentinelvault list [--show-secrets] # List records
    sentinelvault add SERVICE LOGIN     # Add a record
    sentinelvault update ID [...]       # Change a record
    sentinelvault delete ID             # Remove a record
    sentinelvault passwd                # Change the master passphrase
    sentinelvault generate              # Print a random password
    sentinelvault vaults                # List vaults in the vault directory
"""

import sys
import argparse
import logging
from getpass import getpass
from typing import List, Optional

from . import config
from . import vault_manager
from .crypto import KdfParams, KeyDerivation
from .engine import VaultEngine
from .errors import VaultError
from .generator import check_master_passphrase, generate_password, password_strength
from .storage import VaultStore

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sentinelvault",
        description=f"{config.APP_NAME} - local encrypted secret vault.",
        epilog=config.APP_DISCLAIMER,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {config.APP_VERSION}")
    parser.add_argument("--vault", default=config.DEFAULT_STORAGE_KEY,
                        help="Storage key of the vault (default: %(default)s)")
    parser.add_argument("--dir", dest="directory", default=None,
                        help=f"Vault directory (default: ${config.CONFIG_DIR_ENV} or ~/{config.CONFIG_DIR_NAME})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create a new vault")

    list_parser = subparsers.add_parser("list", help="List records")
    list_parser.add_argument("--show-secrets", action="store_true", help="Print secret values")

    add_parser = subparsers.add_parser("add", help="Add a record")
    add_parser.add_argument("service", help="Service name")
    add_parser.add_argument("login", help="Login or username")
    secret_group = add_parser.add_mutually_exclusive_group()
    secret_group.add_argument("--secret", action="store_true", help="Prompt for a secret value")
    secret_group.add_argument("--generate", action="store_true", help="Store a generated password")
    add_parser.add_argument("--length", type=int, default=config.PASSWORD_GENERATOR_DEFAULT_LENGTH,
                            help="Generated password length (default: %(default)s)")

    update_parser = subparsers.add_parser("update", help="Change a record")
    update_parser.add_argument("id", help="Record id")
    update_parser.add_argument("--service", help="New service name")
    update_parser.add_argument("--login", help="New login")
    update_parser.add_argument("--secret", action="store_true", help="Prompt for a new secret value")
    update_parser.add_argument("--clear-secret", action="store_true", help="Remove the secret value")

    delete_parser = subparsers.add_parser("delete", help="Delete a record")
    delete_parser.add_argument("id", help="Record id")

    subparsers.add_parser("passwd", help="Change the master passphrase")

    generate_parser = subparsers.add_parser("generate", help="Print a random password")
    generate_parser.add_argument("--length", type=int, default=config.PASSWORD_GENERATOR_DEFAULT_LENGTH)
    generate_parser.add_argument("--no-symbols", action="store_true", help="Letters and digits only")
    generate_parser.add_argument("--exclude-ambiguous", action="store_true",
                                 help=f"Leave out {config.PASSWORD_GENERATOR_AMBIGUOUS_CHARS}")

    subparsers.add_parser("vaults", help="List vaults, most recently used first")
    return parser


def _prompt_new_passphrase(prompt: str = "New passphrase: ") -> str:
    passphrase = getpass(prompt)
    ok, message = check_master_passphrase(passphrase)
    if not ok:
        raise ValueError(message)
    if getpass("Repeat passphrase: ") != passphrase:
        raise ValueError("Passphrases do not match")
    return passphrase


def _open(engine: VaultEngine) -> None:
    engine.unlock(getpass("Passphrase: "))


def _run(args, engine: VaultEngine, directory: str) -> int:
    if args.command == "init":
        engine.create(_prompt_new_passphrase())
        print(f"Created vault {args.vault!r} at {engine.store.path}")

    elif args.command == "list":
        _open(engine)
        for record in engine.list_records():
            line = f"{record.id}  {record.service_name}  {record.login}"
            if args.show_secrets and record.secret_value is not None:
                line += f"  {record.secret_value}"
            print(line)

    elif args.command == "add":
        secret = None
        if args.secret:
            secret = getpass("Secret value: ")
        elif args.generate:
            secret = generate_password(length=args.length)
        _open(engine)
        record = engine.add_record(args.service, args.login, secret)
        print(record.id)

    elif args.command == "update":
        fields = {}
        if args.service is not None:
            fields["service_name"] = args.service
        if args.login is not None:
            fields["login"] = args.login
        if args.secret:
            fields["secret_value"] = getpass("New secret value: ")
        elif args.clear_secret:
            fields["secret_value"] = None
        if not fields:
            raise ValueError("Nothing to update")
        _open(engine)
        engine.update_record(args.id, **fields)
        print(f"Updated {args.id}")

    elif args.command == "delete":
        _open(engine)
        engine.delete_record(args.id)
        print(f"Deleted {args.id}")

    elif args.command == "passwd":
        old = getpass("Current passphrase: ")
        engine.change_passphrase(old, _prompt_new_passphrase())
        print("Passphrase changed")

    vault_manager.save_recent_storage_key(args.vault, directory)
    return 0


def main(argv: Optional[List[str]] = None, kdf_params: Optional[KdfParams] = None) -> int:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format=config.LOG_FORMAT)

    if args.command == "generate":
        try:
            password = generate_password(length=args.length, symbols=not args.no_symbols,
                                         exclude_ambiguous=args.exclude_ambiguous)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        print(password)
        print(f"Strength: {password_strength(password)}", file=sys.stderr)
        return 0

    directory = args.directory or vault_manager.default_vault_dir()

    if args.command == "vaults":
        recent = vault_manager.get_recent_storage_keys(directory)
        others = [k for k in vault_manager.list_storage_keys(directory) if k not in recent]
        for key in recent + others:
            print(key)
        return 0

    try:
        store = VaultStore(directory, args.vault)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    with VaultEngine(store, kdf=KeyDerivation(kdf_params)) as engine:
        try:
            return _run(args, engine, directory)
        except VaultError as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2


if __name__ == "__main__":
    sys.exit(main())
