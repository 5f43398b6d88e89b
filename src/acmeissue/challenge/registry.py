"""Challenge solver registry.

An explicit :class:`SolverRegistry` value maps provider names to solver
classes.  It is built once at process start (built-in providers plus
anything the caller registers) and handed to whoever configures the
solvers, so tests can substitute fakes without touching module state.

Names starting with ``ext:`` are loaded on demand by fully-qualified
class name.

Usage::

    from acmeissue.challenge.registry import SolverRegistry, build_solvers

    registry = SolverRegistry()
    solver = registry.create("webroot", {"webroot": "/var/www"})
    solvers = build_solvers(settings.challenges, registry)
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.core.types import ChallengeType
from acmeissue.errors import ConfigurationError, UnknownProvider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from acmeissue.config.settings import ChallengeSettings

log = logging.getLogger(__name__)

# Maps provider name → (module_path, class_name)
_BUILTIN_SOLVERS: dict[str, tuple[str, str]] = {
    "http": ("acmeissue.challenge.http01", "HttpServerSolver"),
    "webroot": ("acmeissue.challenge.http01", "WebrootSolver"),
    "tls": ("acmeissue.challenge.tls_alpn01", "TlsAlpnSolver"),
    "manual": ("acmeissue.challenge.providers.manual", "ManualDnsSolver"),
    "exec": ("acmeissue.challenge.providers.exec", "ExecDnsSolver"),
}


class SolverRegistry:
    """Name-keyed registry of solver classes.

    Parameters
    ----------
    include_builtins:
        Register the providers shipped with acmeissue.

    """

    def __init__(self, *, include_builtins: bool = True) -> None:
        self._classes: dict[str, type[Solver]] = {}
        self._lazy: dict[str, tuple[str, str]] = dict(_BUILTIN_SOLVERS) if include_builtins else {}

    def register(self, name: str, cls: type[Solver]) -> None:
        """Register *cls* under *name*, replacing any previous entry."""
        self._validate_class(cls, name)
        self._classes[name] = cls
        self._lazy.pop(name, None)

    def names(self) -> list[str]:
        return sorted({*self._classes, *self._lazy})

    def get_class(self, name: str) -> type[Solver]:
        """Resolve *name* to a solver class.

        Raises
        ------
        UnknownProvider
            If nothing is registered under *name*.

        """
        if name in self._classes:
            return self._classes[name]
        if name in self._lazy:
            mod_path, cls_name = self._lazy[name]
            cls = getattr(importlib.import_module(mod_path), cls_name)
            self.register(name, cls)
            return cls
        if name.startswith("ext:"):
            cls = self._load_external(name[4:])
            self.register(name, cls)
            return cls
        raise UnknownProvider(name, self.names())

    def create(self, name: str, config: Mapping[str, Any] | None = None) -> Solver:
        """Instantiate the solver registered under *name*.

        Raises
        ------
        UnknownProvider
            If nothing is registered under *name*.
        ConfigurationError
            If the solver rejects *config*.

        """
        cls = self.get_class(name)
        try:
            solver = cls(config)
        except SolverError as exc:
            msg = f"{name}: {exc.detail}"
            raise ConfigurationError(msg) from exc
        log.debug("Configured %s solver '%s'", cls.challenge_type.value, name)
        return solver

    def describe(self) -> dict[str, str]:
        """Return ``{name: description}`` for every known provider."""
        return {name: self.get_class(name).description for name in self.names()}

    @staticmethod
    def _load_external(fqn: str) -> type[Solver]:
        """Load an external solver by fully-qualified class name.

        Parameters
        ----------
        fqn:
            e.g. ``"mycompany.dns.CloudSolver"``

        """
        module_path, _, cls_name = fqn.rpartition(".")
        if not module_path:
            raise UnknownProvider(f"ext:{fqn}")
        try:
            module = importlib.import_module(module_path)
            cls = getattr(module, cls_name)
        except (ImportError, AttributeError) as exc:
            msg = f"Cannot load external solver '{fqn}': {exc}"
            raise ConfigurationError(msg) from exc
        if not (isinstance(cls, type) and issubclass(cls, Solver)):
            msg = f"External solver '{fqn}' must be a subclass of Solver"
            raise ConfigurationError(msg)
        return cls

    @staticmethod
    def _validate_class(cls: type, label: str) -> None:
        """Verify that a solver class declares a valid challenge type."""
        challenge_type = getattr(cls, "challenge_type", None)
        if not isinstance(challenge_type, ChallengeType):
            msg = (
                f"Solver class '{label}' has challenge_type="
                f"{challenge_type!r}, which is not a valid ChallengeType"
            )
            raise ConfigurationError(msg)


def build_solvers(
    settings: ChallengeSettings,
    registry: SolverRegistry,
) -> dict[ChallengeType, Solver]:
    """Instantiate one solver per configured challenge type.

    Excluded types are skipped.  A webroot takes precedence over an
    HTTP listener address.

    Raises
    ------
    UnknownProvider
        If the DNS provider name is not registered.
    ConfigurationError
        If no solver ends up configured.

    """
    excluded = {ChallengeType(t) for t in settings.exclude}
    solvers: dict[ChallengeType, Solver] = {}

    if ChallengeType.HTTP_01 not in excluded:
        if settings.http01.webroot:
            solvers[ChallengeType.HTTP_01] = registry.create(
                "webroot",
                {"webroot": settings.http01.webroot},
            )
        elif settings.http01.address is not None:
            solvers[ChallengeType.HTTP_01] = registry.create(
                "http",
                {"address": settings.http01.address},
            )

    if ChallengeType.TLS_ALPN_01 not in excluded and settings.tlsalpn01.address is not None:
        solvers[ChallengeType.TLS_ALPN_01] = registry.create(
            "tls",
            {"address": settings.tlsalpn01.address},
        )

    if ChallengeType.DNS_01 not in excluded and settings.dns01.provider:
        solver = registry.create(settings.dns01.provider, settings.dns01.provider_config)
        if solver.challenge_type is not ChallengeType.DNS_01:
            msg = f"Provider '{settings.dns01.provider}' does not solve dns-01"
            raise ConfigurationError(msg)
        solvers[ChallengeType.DNS_01] = solver

    if not solvers:
        msg = "No challenge solver configured: set an HTTP, TLS-ALPN or DNS provider"
        raise ConfigurationError(msg)
    return solvers
