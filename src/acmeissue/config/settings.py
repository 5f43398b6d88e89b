"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the engine actually reads.

Access pattern::

    from acmeissue.config.settings import build_settings

    settings = build_settings({"account": {"email": "me@example.com"}})
    print(settings.challenges.max_parallel)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_DIRECTORY_URL = "https://acme-v02.api.letsencrypt.org/directory"
STAGING_DIRECTORY_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"

# ---------------------------------------------------------------------------
# Server (the authority)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthoritySettings:
    """Where the ACME directory lives and how to talk to it."""

    directory_url: str
    user_agent: str | None
    timeout_seconds: float
    ca_bundle: str | None
    verify_ssl: bool


def _build_server(data: dict | None) -> AuthoritySettings:
    d = data or {}
    return AuthoritySettings(
        directory_url=d.get("directory_url", DEFAULT_DIRECTORY_URL),
        user_agent=d.get("user_agent"),
        timeout_seconds=d.get("timeout_seconds", 30),
        ca_bundle=d.get("ca_bundle"),
        verify_ssl=d.get("verify_ssl", True),
    )


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EabSettings:
    """External account binding credentials (RFC 8555 §7.3.4)."""

    kid: str | None
    hmac_key: str | None

    @property
    def enabled(self) -> bool:
        return bool(self.kid and self.hmac_key)


@dataclass(frozen=True)
class AccountSettings:
    email: str | None
    key_type: str
    accept_tos: bool
    eab: EabSettings


def _build_account(data: dict | None) -> AccountSettings:
    d = data or {}
    e = d.get("eab") or {}
    return AccountSettings(
        email=d.get("email"),
        key_type=d.get("key_type", "EC256"),
        accept_tos=d.get("accept_tos", False),
        eab=EabSettings(kid=e.get("kid"), hmac_key=e.get("hmac_key")),
    )


# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertificateSettings:
    """Defaults for newly requested certificates."""

    key_type: str
    bundle: bool
    must_staple: bool
    preferred_chain: str | None
    renew_days: int


def _build_certificate(data: dict | None) -> CertificateSettings:
    d = data or {}
    return CertificateSettings(
        key_type=d.get("key_type", "RSA2048"),
        bundle=d.get("bundle", True),
        must_staple=d.get("must_staple", False),
        preferred_chain=d.get("preferred_chain"),
        renew_days=d.get("renew_days", 30),
    )


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Http01Settings:
    """``address`` is ``None`` when the built-in listener is disabled."""

    address: str | None
    webroot: str | None


@dataclass(frozen=True)
class TlsAlpn01Settings:
    address: str | None


@dataclass(frozen=True)
class Dns01Settings:
    """DNS provider selection and propagation checking."""

    provider: str | None
    provider_config: dict[str, Any]
    resolvers: tuple[str, ...]
    propagation: str
    propagation_timeout_seconds: float
    propagation_interval_seconds: float
    query_timeout_seconds: float


@dataclass(frozen=True)
class ChallengeSettings:
    """Challenge selection, parallelism and per-type solver settings."""

    preferred: str | None
    exclude: tuple[str, ...]
    max_parallel: int
    http01: Http01Settings
    tlsalpn01: TlsAlpn01Settings
    dns01: Dns01Settings


def _build_challenges(data: dict | None) -> ChallengeSettings:
    d = data or {}
    h = d.get("http01") or {}
    t = d.get("tlsalpn01") or {}
    n = d.get("dns01") or {}
    return ChallengeSettings(
        preferred=d.get("preferred"),
        exclude=tuple(d.get("exclude", ())),
        max_parallel=d.get("max_parallel", 4),
        http01=Http01Settings(
            address=h.get("address", ":80"),
            webroot=h.get("webroot"),
        ),
        tlsalpn01=TlsAlpn01Settings(
            address=t.get("address", ":443"),
        ),
        dns01=Dns01Settings(
            provider=n.get("provider"),
            provider_config=dict(n.get("provider_config") or {}),
            resolvers=tuple(n.get("resolvers", ())),
            propagation=n.get("propagation", "authoritative"),
            propagation_timeout_seconds=n.get("propagation_timeout_seconds", 60),
            propagation_interval_seconds=n.get("propagation_interval_seconds", 2),
            query_timeout_seconds=n.get("query_timeout_seconds", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollSettings:
    """Deadline and backoff of one polling loop."""

    timeout_seconds: float
    interval_seconds: float
    max_interval_seconds: float


@dataclass(frozen=True)
class PollingSettings:
    authorization: PollSettings
    challenge: PollSettings
    finalization: PollSettings


def _build_poll(data: dict | None, timeout: float) -> PollSettings:
    d = data or {}
    return PollSettings(
        timeout_seconds=d.get("timeout_seconds", timeout),
        interval_seconds=d.get("interval_seconds", 1),
        max_interval_seconds=d.get("max_interval_seconds", 10),
    )


def _build_polling(data: dict | None) -> PollingSettings:
    d = data or {}
    return PollingSettings(
        authorization=_build_poll(d.get("authorization"), 120),
        challenge=_build_poll(d.get("challenge"), 120),
        finalization=_build_poll(d.get("finalization"), 90),
    )


# ---------------------------------------------------------------------------
# Storage / logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StorageSettings:
    path: str


def _build_storage(data: dict | None) -> StorageSettings:
    d = data or {}
    return StorageSettings(path=d.get("path", ".acmeissue"))


@dataclass(frozen=True)
class LoggingSettings:
    """Client logging configuration (level, format, optional file)."""

    level: str
    format: str
    file: str | None = None


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
        file=d.get("file"),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeissueSettings:
    server: AuthoritySettings
    account: AccountSettings
    certificate: CertificateSettings
    challenges: ChallengeSettings
    polling: PollingSettings
    storage: StorageSettings
    logging: LoggingSettings = field(default_factory=lambda: _build_logging(None))


def build_settings(data: dict | None = None) -> AcmeissueSettings:
    """Build the full typed settings tree from raw config data.

    Called after schema validation and environment-variable
    resolution, with any command-line overrides already merged in.
    """
    data = data or {}
    return AcmeissueSettings(
        server=_build_server(data.get("server")),
        account=_build_account(data.get("account")),
        certificate=_build_certificate(data.get("certificate")),
        challenges=_build_challenges(data.get("challenges")),
        polling=_build_polling(data.get("polling")),
        storage=_build_storage(data.get("storage")),
        logging=_build_logging(data.get("logging")),
    )
