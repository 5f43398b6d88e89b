"""acmeissue configuration loader built on ConfigKit.

Lifecycle::

    # 1. CLI creates the singleton when a config file is given
    cfg = AcmeissueConfig(config_file="acmeissue.yaml", schema_file="bundled")

    # 2. Raw data, merged with command-line overrides by the CLI
    cfg.data

    # 3. Typed and dynamic access
    cfg.settings.challenges.max_parallel
    cfg.get("challenges.dns01.provider_config.command")

Without a config file the CLI builds its data from flags alone and runs
the same cross-field checks through :func:`check_config_data`.
"""

from __future__ import annotations

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any

from configkit import ConfigKit, ConfigKitMeta

from acmeissue.config.settings import AcmeissueSettings, build_settings
from acmeissue.core.types import ChallengeType, KeyType, PropagationStrategy

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_KNOWN_CHALLENGE_TYPES = frozenset(t.value for t in ChallengeType)
_KNOWN_KEY_TYPES = frozenset(t.value for t in KeyType)
_KNOWN_PROPAGATION = frozenset(s.value for s in PropagationStrategy)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when cross-field validation finds one or more problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Cross-field checks
# ---------------------------------------------------------------------------


def check_config_data(data: dict) -> list[str]:  # noqa: C901, PLR0912
    """Return the semantic errors in raw config *data*.

    Warnings are logged; an empty list means the data is usable.
    """
    errors: list[str] = []
    warnings: list[str] = []

    server = data.get("server") or {}
    account = data.get("account") or {}
    certificate = data.get("certificate") or {}
    challenges = data.get("challenges") or {}
    dns01 = challenges.get("dns01") or {}
    polling = data.get("polling") or {}

    # -- server --
    url = server.get("directory_url")
    if url is not None and not url.startswith(("https://", "http://")):
        errors.append(f"server.directory_url must be an http(s) URL (got '{url}')")
    if url and url.startswith("http://"):
        warnings.append(f"server.directory_url '{url}' is not using TLS")
    if server.get("verify_ssl") is False:
        warnings.append("server.verify_ssl is disabled; the authority is not authenticated")

    # -- account / certificate --
    for section, values in (("account", account), ("certificate", certificate)):
        key_type = values.get("key_type")
        if key_type is not None and str(key_type).upper() not in _KNOWN_KEY_TYPES:
            errors.append(
                f"{section}.key_type '{key_type}' is not one of {sorted(_KNOWN_KEY_TYPES)}",
            )
    eab = account.get("eab") or {}
    if bool(eab.get("kid")) != bool(eab.get("hmac_key")):
        errors.append("account.eab.kid and account.eab.hmac_key must be set together")

    # -- challenges --
    excluded = set(challenges.get("exclude", ()))
    for name in sorted(excluded - _KNOWN_CHALLENGE_TYPES):
        errors.append(f"challenges.exclude contains unknown type '{name}'")
    preferred = challenges.get("preferred")
    if preferred is not None:
        if preferred not in _KNOWN_CHALLENGE_TYPES:
            errors.append(f"challenges.preferred '{preferred}' is not a known challenge type")
        elif preferred in excluded:
            errors.append(f"challenges.preferred '{preferred}' is also excluded")
    if excluded >= _KNOWN_CHALLENGE_TYPES:
        errors.append("challenges.exclude rules out every challenge type")
    if challenges.get("max_parallel", 1) < 1:
        errors.append("challenges.max_parallel must be at least 1")
    if dns01.get("provider_config") and not dns01.get("provider"):
        warnings.append("challenges.dns01.provider_config is set but no provider is selected")
    propagation = dns01.get("propagation")
    if propagation is not None and propagation not in _KNOWN_PROPAGATION:
        errors.append(
            f"challenges.dns01.propagation '{propagation}' is not one of "
            f"{sorted(_KNOWN_PROPAGATION)}",
        )

    # -- polling --
    for phase in ("authorization", "challenge", "finalization"):
        p = polling.get(phase) or {}
        interval = p.get("interval_seconds")
        max_interval = p.get("max_interval_seconds")
        if interval is not None and max_interval is not None and max_interval < interval:
            errors.append(
                f"polling.{phase}.max_interval_seconds ({max_interval}) must be >= "
                f"interval_seconds ({interval})",
            )

    for w in warnings:
        log.warning("Config warning: %s", w)
    return errors


def merge_overrides(base: dict, overrides: dict) -> dict:
    """Deep-merge *overrides* onto a copy of *base*.

    ``None`` values in *overrides* mean "not given" and leave *base*
    untouched.
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_overrides(merged[key], value)
        elif isinstance(value, dict):
            merged[key] = merge_overrides({}, value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class AcmeissueConfig(ConfigKit):
    """Configuration file for the acmeissue client.

    Subclasses :class:`configkit.ConfigKit`.  The JSON schema is
    bundled at ``config/schema.json``; callers pass ``schema_file="bundled"``.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(
        self,
        *,
        config_file: str | Path,
        schema_file: str | Path | None = None,  # noqa: ARG002
    ) -> None:
        """Load, validate and materialise the configuration singleton.

        Parameters
        ----------
        config_file:
            Path to the YAML/JSON configuration file.
        schema_file:
            Required by the :class:`ConfigKitMeta` singleton guard on
            first instantiation; pass ``"bundled"``.  The bundled
            schema is always used.

        """
        super().__init__(
            config_file=config_file,
            schema_file=_SCHEMA_PATH,
        )
        self._settings: AcmeissueSettings = build_settings(self.data)

    # -- lifecycle overrides ------------------------------------------------

    def _load(self) -> None:
        """Load config file then resolve ``${VAR}`` env-var references.

        Runs env-var resolution **before** schema validation so that
        substituted values are checked against the schema.
        """
        super()._load()
        resolve_env_vars(self._data)

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> AcmeissueSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:
        """Semantic & cross-field validation.

        Called automatically by ConfigKit **after** schema validation
        passes.
        """
        errors = check_config_data(self.data)
        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        ConfigKitMeta.reset()

    def __repr__(self) -> str:
        source = self.data.get("_source", "?")
        return f"<AcmeissueConfig config_file={source}>"
