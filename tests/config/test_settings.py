"""Tests for acmeissue.config.settings builders and defaults."""

from __future__ import annotations

import dataclasses

import pytest

from acmeissue.config.settings import DEFAULT_DIRECTORY_URL, build_settings


class TestDefaults:
    def test_empty_data(self):
        settings = build_settings()
        assert settings.server.directory_url == DEFAULT_DIRECTORY_URL
        assert settings.server.verify_ssl is True
        assert settings.account.key_type == "EC256"
        assert settings.account.accept_tos is False
        assert not settings.account.eab.enabled
        assert settings.certificate.key_type == "RSA2048"
        assert settings.certificate.bundle is True
        assert settings.certificate.renew_days == 30
        assert settings.storage.path == ".acmeissue"
        assert settings.logging.level == "INFO"

    def test_challenge_defaults(self):
        challenges = build_settings().challenges
        assert challenges.preferred is None
        assert challenges.exclude == ()
        assert challenges.max_parallel == 4
        assert challenges.http01.address == ":80"
        assert challenges.http01.webroot is None
        assert challenges.tlsalpn01.address == ":443"
        assert challenges.dns01.provider is None
        assert challenges.dns01.propagation == "authoritative"

    def test_polling_defaults(self):
        polling = build_settings().polling
        assert polling.authorization.timeout_seconds == 120
        assert polling.finalization.timeout_seconds == 90
        assert polling.challenge.interval_seconds == 1
        assert polling.challenge.max_interval_seconds == 10


class TestBuild:
    def test_sections_are_read(self):
        settings = build_settings(
            {
                "server": {"directory_url": "https://ca.internal/dir", "timeout_seconds": 5},
                "account": {"email": "ops@example.com", "eab": {"kid": "k", "hmac_key": "h"}},
                "challenges": {
                    "exclude": ["tls-alpn-01"],
                    "dns01": {"provider": "exec", "resolvers": ["192.0.2.53"]},
                },
                "polling": {"challenge": {"timeout_seconds": 30}},
            },
        )
        assert settings.server.directory_url == "https://ca.internal/dir"
        assert settings.server.timeout_seconds == 5
        assert settings.account.eab.enabled
        assert settings.challenges.exclude == ("tls-alpn-01",)
        assert settings.challenges.dns01.resolvers == ("192.0.2.53",)
        assert settings.polling.challenge.timeout_seconds == 30
        # untouched phases keep their defaults
        assert settings.polling.authorization.timeout_seconds == 120

    def test_eab_needs_both_values(self):
        settings = build_settings({"account": {"eab": {"kid": "k"}}})
        assert not settings.account.eab.enabled

    def test_listener_can_be_disabled(self):
        settings = build_settings({"challenges": {"http01": {"address": None}}})
        assert settings.challenges.http01.address is None

    def test_settings_are_frozen(self):
        settings = build_settings()
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.server.directory_url = "https://elsewhere"  # type: ignore[misc]

    def test_provider_config_is_copied(self):
        raw = {"command": "hook"}
        settings = build_settings({"challenges": {"dns01": {"provider_config": raw}}})
        raw["command"] = "changed"
        assert settings.challenges.dns01.provider_config == {"command": "hook"}
