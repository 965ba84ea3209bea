"""Verify that the environment holds a usable warehouse configuration.

The tool performs two main checks:

1. It loads ``AppSettings`` from the provided ``.env`` file and parses the
   service-account key, including its RSA private key, so a broken
   ``GCP_SERVICE_ACCOUNT_JSON`` is caught before any request needs a token.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.

Example usages::

    python -m scripts.check_env check --env-file .env

    python -m scripts.check_env record --env-file /srv/trends/.env \
        --hash-file /srv/trends/.env.sha256

    python -m scripts.check_env verify --env-file /srv/trends/.env \
        --hash-file /srv/trends/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from app.clients.google_auth import ServiceAccountTokenError, ServiceAccountTokenSigner
from app.core.config import AppSettings, load_settings
from app.models.warehouse import ServiceAccountCredential

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_CREDENTIAL_ERROR = 4
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _validate_settings(env_file: Path) -> AppSettings:
    return load_settings(env_file)


def _validate_credential(settings: AppSettings) -> str:
    """Parse the key document and sign a throwaway assertion with it."""
    warehouse = settings.warehouse
    credential = ServiceAccountCredential.from_json(warehouse.service_account_json)
    if not (warehouse.project_id or credential.project_id):
        raise ValueError("No project id in GCP_PROJECT_ID or the service account key.")
    signer = ServiceAccountTokenSigner(
        credential, warehouse.scopes, token_url=warehouse.token_url
    )
    signer.build_assertion()
    return credential.client_email


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate warehouse settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text, needs_hash in (
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare the checksum with the baseline.", True),
        ("check", "Validate settings without touching any checksum files.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash:
            subparser.add_argument("--hash-file", required=True, type=Path)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = _validate_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    try:
        client_email = _validate_credential(settings)
    except (ValueError, ValidationError, ServiceAccountTokenError) as exc:
        print(f"Service account credential is unusable: {exc}", file=sys.stderr)
        return EXIT_CREDENTIAL_ERROR
    print(f"Service account {client_email} can sign token assertions.")

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
