"""Configuration subsystem for acmeissue.

Public API::

    from acmeissue.config import AcmeissueConfig, build_settings, merge_overrides

    # From a file (CLI only):
    cfg = AcmeissueConfig(config_file="acmeissue.yaml", schema_file="bundled")
    data = merge_overrides(cfg.data, {"account": {"email": "me@example.com"}})
    settings = build_settings(data)

    # From plain data (library use, tests):
    settings = build_settings({"challenges": {"exclude": ["tls-alpn-01"]}})
"""

from acmeissue.config.acmeissue_config import (
    AcmeissueConfig,
    ConfigValidationError,
    check_config_data,
    merge_overrides,
)
from acmeissue.config.settings import (
    AccountSettings,
    AcmeissueSettings,
    AuthoritySettings,
    CertificateSettings,
    ChallengeSettings,
    Dns01Settings,
    EabSettings,
    Http01Settings,
    LoggingSettings,
    PollingSettings,
    PollSettings,
    StorageSettings,
    TlsAlpn01Settings,
    build_settings,
)

__all__ = [
    "AccountSettings",
    # Core
    "AcmeissueConfig",
    # Root
    "AcmeissueSettings",
    # Sections
    "AuthoritySettings",
    "CertificateSettings",
    "ChallengeSettings",
    "ConfigValidationError",
    "Dns01Settings",
    "EabSettings",
    "Http01Settings",
    "LoggingSettings",
    "PollSettings",
    "PollingSettings",
    "StorageSettings",
    "TlsAlpn01Settings",
    "build_settings",
    "check_config_data",
    "merge_overrides",
]
