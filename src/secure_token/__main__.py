# Main Entry Point - Secure Token CLI
#
# Thin command-line caller over the vault and TOTP engine, plus `serve` to
# run the FastAPI service. Configuration comes from the environment / .env
# (see secure_token.config).
#
# Exit codes: 0 success, 1 refused/invalid request, 2 configuration error.

import argparse
import json
import sys
from datetime import timedelta
from typing import List, Optional

from . import __version__
from .config import Settings, load_settings, set_settings
from .core import AuditLogger
from .exceptions import (
    CiphertextError,
    ConfigurationError,
    ExpiredError,
    NotFoundError,
    RevokedError,
    SecureTokenError,
)
from .mfa import TOTPEngine
from .vault import TokenVault

EXIT_OK = 0
EXIT_REFUSED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secure-token",
        description="Payload tokenization vault and TOTP multi-factor engine",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"secure-token v{__version__}"
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file (default: ./.env if present)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    tokenize = sub.add_parser("tokenize", help="Store a payload and print its token")
    tokenize.add_argument("payload")
    expiry = tokenize.add_mutually_exclusive_group()
    expiry.add_argument(
        "--expires-in",
        type=int,
        metavar="SECONDS",
        help="Expire the token this many seconds from now (default: configured TTL)"
    )
    expiry.add_argument(
        "--never-expires",
        action="store_true",
        help="Store the token without an expiry"
    )

    for name, help_text in [
        ("detokenize", "Print the payload behind a token"),
        ("status", "Print token metadata as JSON"),
        ("revoke", "Revoke a token permanently"),
        ("track-usage", "Count a use of a token"),
    ]:
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("token")

    sub.add_parser("mfa-secret", help="Generate a new TOTP secret")

    code = sub.add_parser("mfa-code", help="Print the current one-time code for a secret")
    code.add_argument("secret")
    code.add_argument("--at", type=float, default=None, help="Unix time instead of now")

    verify = sub.add_parser("mfa-verify", help="Verify a one-time code")
    verify.add_argument("secret")
    verify.add_argument("otp")
    verify.add_argument(
        "--strict",
        action="store_true",
        help="Only accept the current time step (no ±1 step drift)"
    )

    uri = sub.add_parser("mfa-uri", help="Print the otpauth:// enrollment URI")
    uri.add_argument("secret")
    uri.add_argument("issuer")
    uri.add_argument("account")

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")

    return parser


def _engine(settings: Settings, audit_logger: Optional[AuditLogger] = None) -> TOTPEngine:
    return TOTPEngine(
        digits=settings.otp_digits,
        time_step=settings.otp_time_step,
        drift_steps=settings.otp_drift_steps,
        audit_logger=audit_logger,
    )


def _run_vault_command(args: argparse.Namespace, vault: TokenVault) -> int:
    if args.command == "tokenize":
        expiry = None
        if args.expires_in is not None:
            expiry = vault.now() + timedelta(seconds=args.expires_in)
        print(vault.tokenize(args.payload, expiry=expiry, never_expires=args.never_expires))
        return EXIT_OK

    if args.command == "detokenize":
        print(vault.detokenize(args.token))
        return EXIT_OK

    if args.command == "status":
        record = vault.get_record(args.token)
        print(json.dumps(record.to_metadata(vault.now()), indent=2))
        return EXIT_OK

    if args.command == "revoke":
        if vault.revoke(args.token):
            print("revoked")
            return EXIT_OK
        print("unchanged (already revoked or not found)")
        return EXIT_REFUSED

    if args.command == "track-usage":
        vault.track_usage(args.token)
        print("ok")
        return EXIT_OK

    raise ValueError(f"Unknown vault command: {args.command}")


def _run_mfa_command(args: argparse.Namespace, engine: TOTPEngine) -> int:
    if args.command == "mfa-secret":
        print(engine.generate_secret_key())
        return EXIT_OK

    if args.command == "mfa-code":
        print(engine.compute_otp(args.secret, engine.time_step_index(args.at)))
        return EXIT_OK

    if args.command == "mfa-verify":
        if args.strict:
            valid = engine.verify(args.secret, args.otp)
        else:
            valid = engine.verify_with_drift(args.secret, args.otp)
        print("valid" if valid else "invalid")
        return EXIT_OK if valid else EXIT_REFUSED

    if args.command == "mfa-uri":
        print(engine.enrollment_uri(args.secret, args.issuer, args.account))
        return EXIT_OK

    raise ValueError(f"Unknown MFA command: {args.command}")


def _describe(error: SecureTokenError) -> str:
    # Ciphertext problems read exactly like unknown tokens
    if isinstance(error, (NotFoundError, CiphertextError)):
        return "Token not found"
    if isinstance(error, ExpiredError):
        return "Token has expired"
    if isinstance(error, RevokedError):
        return "Token has been revoked"
    return str(error)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the secure-token CLI.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(env_file=args.env_file)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "serve":
        set_settings(settings)
        from .api.main import start_api_server

        print(f"Starting secure token API on {args.host}:{args.port} (Ctrl+C to stop)")
        try:
            start_api_server(host=args.host, port=args.port)
        except KeyboardInterrupt:
            print("\nShutting down...")
        return EXIT_OK

    audit_logger = AuditLogger(log_dir=settings.audit_log_dir)

    try:
        if args.command.startswith("mfa-"):
            return _run_mfa_command(args, _engine(settings, audit_logger))

        vault = TokenVault.from_settings(settings, audit_logger=audit_logger)
        return _run_vault_command(args, vault)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except SecureTokenError as e:
        print(f"Error: {_describe(e)}", file=sys.stderr)
        return EXIT_REFUSED
    finally:
        audit_logger.close()


if __name__ == "__main__":
    sys.exit(main())
