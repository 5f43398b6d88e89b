"""Error taxonomy for the issuance engine.

Provides the RFC 8555 problem-type URNs, :class:`AcmeProblem` (a
problem document returned by the authority, decoded into an
exception) and the typed errors raised by every layer of the engine.

Usage::

    try:
        client.certificate.obtain(request)
    except ObtainError as exc:
        for domain, failure in exc.failures.items():
            print(domain, failure.detail)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# ACME error-type URNs (RFC 8555 §6.7)
# ---------------------------------------------------------------------------
_P = "urn:ietf:params:acme:error:"

ACCOUNT_DOES_NOT_EXIST = _P + "accountDoesNotExist"
ALREADY_REVOKED = _P + "alreadyRevoked"
BAD_CSR = _P + "badCSR"
BAD_NONCE = _P + "badNonce"
BAD_PUBLIC_KEY = _P + "badPublicKey"
BAD_REVOCATION_REASON = _P + "badRevocationReason"
BAD_SIGNATURE_ALGORITHM = _P + "badSignatureAlgorithm"
CAA = _P + "caa"
CONNECTION = _P + "connection"
DNS = _P + "dns"
EXTERNAL_ACCOUNT_REQUIRED = _P + "externalAccountRequired"
INCORRECT_RESPONSE = _P + "incorrectResponse"
MALFORMED = _P + "malformed"
ORDER_NOT_READY = _P + "orderNotReady"
RATE_LIMITED = _P + "rateLimited"
REJECTED_IDENTIFIER = _P + "rejectedIdentifier"
SERVER_INTERNAL = _P + "serverInternal"
TLS = _P + "tls"
UNAUTHORIZED = _P + "unauthorized"
USER_ACTION_REQUIRED = _P + "userActionRequired"

# Content type for RFC 7807 responses
PROBLEM_CONTENT_TYPE = "application/problem+json"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class AcmeError(Exception):
    """Base class for every error raised by the engine.

    Parameters
    ----------
    detail:
        Human-readable description.
    retryable:
        Whether repeating the same call later could succeed.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Configuration errors (raised before any network call)
# ---------------------------------------------------------------------------


class ConfigurationError(AcmeError):
    """Invalid or missing client configuration."""


class UnsupportedKeyType(ConfigurationError):
    """Key type name outside the supported set."""

    def __init__(self, key_type: str) -> None:
        self.key_type = key_type
        super().__init__(f"Unsupported key type: {key_type!r}")


class UnknownProvider(ConfigurationError):
    """No solver plug-in registered under the requested name."""

    def __init__(self, name: str, known: list[str] | None = None) -> None:
        self.name = name
        hint = f"; known providers: {', '.join(known)}" if known else ""
        super().__init__(f"Unknown challenge provider {name!r}{hint}")


class ToSNotAgreed(ConfigurationError):
    """The authority publishes terms of service that were not accepted."""

    def __init__(self, terms_url: str) -> None:
        self.terms_url = terms_url
        super().__init__(
            f"The authority requires agreement to its terms of service ({terms_url})",
        )


class ExternalBindingRequired(ConfigurationError):
    """The authority requires an external account binding."""


# ---------------------------------------------------------------------------
# Transport & protocol errors
# ---------------------------------------------------------------------------


class TransportError(AcmeError):
    """Network-level failure talking to the authority."""

    def __init__(self, url: str, detail: str) -> None:
        self.url = url
        super().__init__(f"{url}: {detail}", retryable=True)


@dataclass(frozen=True)
class Subproblem:
    """One entry of a problem document's ``subproblems`` array."""

    error_type: str
    detail: str
    identifier: dict[str, str] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subproblem:
        return cls(
            error_type=data.get("type", "about:blank"),
            detail=data.get("detail", ""),
            identifier=data.get("identifier"),
        )


class AcmeProblem(AcmeError):
    """An RFC 7807 problem document returned by the authority.

    Parameters
    ----------
    error_type:
        The problem-type URN (one of the constants above) or
        ``"about:blank"``.
    detail:
        Human-readable explanation from the authority.
    status:
        HTTP status code of the response carrying the problem.
    title:
        Optional short summary.
    subproblems:
        Per-identifier breakdown (RFC 8555 §6.7.1).
    headers:
        Response headers (lower-cased names), e.g. ``retry-after``.

    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        title: str | None = None,
        subproblems: tuple[Subproblem, ...] = (),
        headers: dict[str, str] | None = None,
    ) -> None:
        self.error_type = error_type
        self.status = status
        self.title = title
        self.subproblems = subproblems
        self.headers = headers or {}
        super().__init__(detail, retryable=error_type in _RETRYABLE_TYPES)

    def __str__(self) -> str:
        text = f"{self.error_type} ({self.status}): {self.detail}"
        for sub in self.subproblems:
            ident = sub.identifier.get("value") if sub.identifier else "-"
            text += f"\n  {ident}: {sub.error_type}: {sub.detail}"
        return text

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        status: int = 400,
        headers: dict[str, str] | None = None,
    ) -> AcmeProblem:
        """Decode a problem document, picking the matching subclass."""
        error_type = data.get("type") or "about:blank"
        problem_cls = _PROBLEM_CLASSES.get(error_type, AcmeProblem)
        return problem_cls(
            error_type,
            data.get("detail", ""),
            int(data.get("status", status)),
            title=data.get("title"),
            subproblems=tuple(Subproblem.from_dict(s) for s in data.get("subproblems") or ()),
            headers=headers,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the RFC 7807 JSON structure."""
        body: dict[str, Any] = {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
        }
        if self.title is not None:
            body["title"] = self.title
        if self.subproblems:
            body["subproblems"] = [
                {"type": s.error_type, "detail": s.detail, "identifier": s.identifier}
                for s in self.subproblems
            ]
        return body


class BadNonceProblem(AcmeProblem):
    """The authority rejected the request nonce."""


class RateLimitedProblem(AcmeProblem):
    """The authority is rate limiting this client."""

    @property
    def retry_after(self) -> str | None:
        return self.headers.get("retry-after")


class ExternalAccountRequiredProblem(AcmeProblem, ExternalBindingRequired):
    """The authority refused a registration lacking an external binding."""


_RETRYABLE_TYPES = frozenset({BAD_NONCE, RATE_LIMITED, SERVER_INTERNAL})

_PROBLEM_CLASSES: dict[str, type[AcmeProblem]] = {
    BAD_NONCE: BadNonceProblem,
    RATE_LIMITED: RateLimitedProblem,
    EXTERNAL_ACCOUNT_REQUIRED: ExternalAccountRequiredProblem,
}


# ---------------------------------------------------------------------------
# Challenge / authorization failures (per domain)
# ---------------------------------------------------------------------------


class DomainError(AcmeError):
    """An error attributable to a single domain of an order."""

    def __init__(self, domain: str, detail: str, *, retryable: bool = False) -> None:
        self.domain = domain
        super().__init__(f"{domain}: {detail}", retryable=retryable)


class NoUsableChallenge(DomainError):
    """None of the offered challenges has a configured, non-excluded solver."""

    def __init__(self, domain: str, offered: list[str]) -> None:
        self.offered = offered
        super().__init__(
            domain,
            f"no usable challenge among offered types {offered or '(none)'}",
        )


class ChallengeSetupFailed(DomainError):
    """A solver failed to present its proof artifact."""


class AuthorizationFailed(DomainError):
    """The authority marked the authorization (or its challenge) invalid."""

    def __init__(self, domain: str, problem: AcmeProblem | None = None, status: str = "invalid") -> None:
        self.problem = problem
        self.status = status
        detail = f"authorization {status}"
        if problem is not None:
            detail += f": {problem.error_type}: {problem.detail}"
        super().__init__(domain, detail)


class OperationCancelled(AcmeError):
    """Work was abandoned because a sibling operation failed."""


class ObtainError(AcmeError):
    """An issuance attempt failed for one or more domains.

    Attributes
    ----------
    failures:
        Maps each failed domain to the error it produced, in the order
        the failures were observed.

    """

    def __init__(self, failures: dict[str, AcmeError]) -> None:
        self.failures = failures
        lines = [f"{domain}: {err.detail}" for domain, err in failures.items()]
        super().__init__("error obtaining certificate:\n" + "\n".join(lines))

    @property
    def first(self) -> AcmeError:
        return next(iter(self.failures.values()))


# ---------------------------------------------------------------------------
# Finalization
# ---------------------------------------------------------------------------


class FinalizationFailed(AcmeError):
    """The order became invalid during or after finalization."""

    def __init__(self, order_url: str, problem: AcmeProblem | None = None) -> None:
        self.order_url = order_url
        self.problem = problem
        detail = f"order {order_url} failed to finalize"
        if problem is not None:
            detail += f": {problem.error_type}: {problem.detail}"
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class PollTimeout(AcmeError):
    """A polling loop exceeded its deadline.

    Attributes
    ----------
    phase:
        Which loop expired: ``authorization``, ``challenge``,
        ``propagation`` or ``finalization``.
    subject:
        The domain or resource URL being polled.

    """

    phase = "poll"

    def __init__(self, subject: str, timeout: float) -> None:
        self.subject = subject
        self.timeout = timeout
        super().__init__(
            f"{self.phase} timed out after {timeout:g}s for {subject}",
            retryable=True,
        )

    @property
    def domain(self) -> str:
        return self.subject


class AuthorizationTimeout(PollTimeout):
    phase = "authorization"


class ChallengeTimeout(PollTimeout):
    phase = "challenge"


class PropagationTimeout(PollTimeout):
    phase = "propagation"


class FinalizationTimeout(PollTimeout, FinalizationFailed):
    """Finalization polling expired; also a :class:`FinalizationFailed`."""

    phase = "finalization"

    def __init__(self, subject: str, timeout: float) -> None:
        self.subject = subject
        self.timeout = timeout
        self.order_url = subject
        self.problem = None
        AcmeError.__init__(
            self,
            f"{self.phase} timed out after {timeout:g}s for {subject}",
            retryable=True,
        )
