"""acmeissue command-line entry point.

Usage::

    acmeissue -m me@example.com -d example.com -a run
    acmeissue -m me@example.com -d example.com --dns exec run
    acmeissue -c acmeissue.yaml -m me@example.com --csr request.pem run
    acmeissue -m me@example.com -d example.com renew --days 30
    acmeissue -m me@example.com -d example.com revoke --reason 4
    python -m acmeissue --help

Flags are merged over the configuration file (when one is given) before
the settings tree is built.  The exit status is 1 on any error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from acmeissue import __version__
from acmeissue.config import (
    AcmeissueConfig,
    ConfigValidationError,
    build_settings,
    check_config_data,
    merge_overrides,
)
from acmeissue.config.settings import DEFAULT_DIRECTORY_URL
from acmeissue.errors import AcmeError

if TYPE_CHECKING:
    from acmeissue.config.settings import AcmeissueSettings

log = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acmeissue",
        description="Obtain, renew and revoke certificates from an ACME authority",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Configuration file (YAML or JSON); flags override its values.",
    )
    parser.add_argument(
        "-s",
        "--server",
        metavar="URL",
        help=f"ACME directory URL (default {DEFAULT_DIRECTORY_URL}).",
    )
    parser.add_argument("-m", "--email", help="Email used for registration and recovery contact.")
    parser.add_argument(
        "-d",
        "--domains",
        action="append",
        default=[],
        metavar="DOMAIN",
        help="Domain to include in the certificate; repeat for more.",
    )
    parser.add_argument("--csr", metavar="PATH", help="Certificate signing request to use.")
    parser.add_argument(
        "-k",
        "--key-type",
        metavar="TYPE",
        help="Certificate key type: RSA2048, RSA4096, RSA8192, EC256 or EC384.",
    )
    parser.add_argument("--path", help="Directory for accounts and certificates.")
    parser.add_argument(
        "-a",
        "--accept-tos",
        action="store_true",
        default=None,
        help="Accept the authority's current terms of service.",
    )
    parser.add_argument("--eab", action="store_true", help="Use external account binding.")
    parser.add_argument("--kid", help="Key identifier for external account binding.")
    parser.add_argument("--hmac", help="Base64url MAC key for external account binding.")
    parser.add_argument(
        "-x",
        "--exclude",
        action="append",
        default=[],
        metavar="TYPE",
        help="Challenge type never to use: http-01, dns-01 or tls-alpn-01.",
    )
    parser.add_argument(
        "--http",
        metavar="ADDRESS",
        help="Interface and port for the HTTP-01 listener (iface:port or :port).",
    )
    parser.add_argument(
        "--http.webroot",
        dest="http_webroot",
        metavar="DIR",
        help="Solve HTTP-01 by writing into an existing web server's root.",
    )
    parser.add_argument(
        "--tls",
        metavar="ADDRESS",
        help="Interface and port for the TLS-ALPN-01 listener (iface:port or :port).",
    )
    parser.add_argument(
        "--dns",
        metavar="PROVIDER",
        help="Solve DNS-01 with this provider; disables the other challenges "
        "unless --http or --tls is given.",
    )
    parser.add_argument(
        "--dns.resolvers",
        dest="dns_resolvers",
        action="append",
        default=[],
        metavar="HOST",
        help="Resolver used for DNS propagation checks; repeat for more.",
    )
    parser.add_argument(
        "--dns.propagation",
        dest="dns_propagation",
        choices=["authoritative", "recursive", "none"],
        help="How to check DNS propagation before validation.",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        metavar="SECONDS",
        help="Timeout for requests to the authority.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Register an account, then obtain a certificate",
    )
    run_parser.add_argument("--no-bundle", action="store_true", help="Do not bundle the issuer chain.")
    run_parser.add_argument(
        "--must-staple",
        action="store_true",
        help="Request the OCSP must-staple extension.",
    )

    renew_parser = subparsers.add_parser("renew", help="Renew a stored certificate")
    renew_parser.add_argument(
        "--days",
        type=int,
        help="Only renew when fewer days than this remain.",
    )
    renew_parser.add_argument(
        "--reuse-key",
        action="store_true",
        help="Keep the existing private key.",
    )
    renew_parser.add_argument("--no-bundle", action="store_true", help="Do not bundle the issuer chain.")
    renew_parser.add_argument(
        "--must-staple",
        action="store_true",
        help="Request the OCSP must-staple extension.",
    )

    revoke_parser = subparsers.add_parser("revoke", help="Revoke a stored certificate")
    revoke_parser.add_argument(
        "--reason",
        type=int,
        metavar="CODE",
        help="RFC 5280 revocation reason code.",
    )

    return parser


def _overrides(args: argparse.Namespace) -> dict:
    """Translate command-line flags into config data; ``None`` means unset."""
    return {
        "server": {"directory_url": args.server, "timeout_seconds": args.http_timeout},
        "account": {
            "email": args.email,
            "accept_tos": args.accept_tos,
            "eab": {"kid": args.kid, "hmac_key": args.hmac} if args.eab else None,
        },
        "certificate": {"key_type": args.key_type},
        "challenges": {
            "http01": {"address": args.http, "webroot": args.http_webroot},
            "tlsalpn01": {"address": args.tls},
            "dns01": {
                "provider": args.dns,
                "resolvers": args.dns_resolvers or None,
                "propagation": args.dns_propagation,
            },
        },
        "storage": {"path": args.path},
        "logging": {"level": "DEBUG" if args.debug else None},
    }


def _excluded(data: dict, args: argparse.Namespace) -> list[str]:
    """Exclusions from the file and flags; ``--dns`` alone excludes the rest."""
    excluded = list((data.get("challenges") or {}).get("exclude", ()))
    extra = list(args.exclude)
    if args.dns:
        if not (args.http or args.http_webroot):
            extra.append("http-01")
        if not args.tls:
            extra.append("tls-alpn-01")
    for name in extra:
        if name not in excluded:
            excluded.append(name)
    return excluded


def load_settings(args: argparse.Namespace) -> AcmeissueSettings:
    """Build the settings tree from the optional file plus flags.

    Raises
    ------
    ConfigValidationError
        If the merged data fails the cross-field checks.

    """
    base: dict = {}
    if args.config:
        base = dict(AcmeissueConfig(config_file=args.config, schema_file="bundled").data)
    data = merge_overrides(base, _overrides(args))
    data.setdefault("challenges", {})["exclude"] = _excluded(data, args)
    errors = check_config_data(data)
    if errors:
        raise ConfigValidationError(errors)
    return build_settings(data)


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"acmeissue: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Parses arguments, loads config, runs a command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.domains and args.csr:
        parser.error("specify either --domains/-d or --csr, not both")
    if args.command == "run" and not (args.domains or args.csr):
        parser.error("specify --domains/-d (or --csr if you already have a CSR)")
    if args.command in ("renew", "revoke") and not (args.domains or args.csr):
        parser.error(f"{args.command} needs --domains/-d (or --csr)")
    if args.eab and not (args.kid and args.hmac):
        parser.error("--eab requires --kid and --hmac")
    if args.config and not Path(args.config).is_file():
        _print_error(f"configuration file not found: {args.config}")
        return 1

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = load_settings(args)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        return 1
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        return 1

    # -- replace bootstrap logging with the configured handlers ---
    from acmeissue.logging import configure_logging  # noqa: PLC0415

    configure_logging(settings.logging)

    if args.command == "run":
        from acmeissue.cli.commands.run import run_run as handler  # noqa: PLC0415
    elif args.command == "renew":
        from acmeissue.cli.commands.renew import run_renew as handler  # noqa: PLC0415
    else:
        from acmeissue.cli.commands.revoke import run_revoke as handler  # noqa: PLC0415

    try:
        return handler(settings, args)
    except AcmeError as exc:
        if args.debug:
            log.exception("%s failed", args.command)
        _print_error(str(exc))
        return 1
