"""Root conftest for the acmeissue test suite."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` and the test helpers importable without installing
# ---------------------------------------------------------------------------
_TESTS = str(Path(__file__).resolve().parent)
_SRC = str(Path(__file__).resolve().parent.parent / "src")
for _path in (_SRC, _TESTS):
    if _path not in sys.path:
        sys.path.insert(0, _path)

from acmeissue.core.types import ChallengeType  # noqa: E402

from fake_authority import FakeAuthority  # noqa: E402
from helpers import RecordingSolver, make_settings  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture()
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture()
def http_solver() -> RecordingSolver:
    return RecordingSolver()


@pytest.fixture()
def make_client(authority, settings):
    """Factory building a :class:`Client` against the fake authority."""
    from acmeissue.client import Client
    from acmeissue.core.crypto import generate_private_key
    from acmeissue.models.account import Account

    clients = []

    def factory(*, solvers=None, settings_=None, key=None, email="admin@example.com", account=None):
        if account is None:
            account = Account(email=email, key=key or generate_private_key("EC256"))
        if solvers is None:
            solvers = {ChallengeType.HTTP_01: RecordingSolver()}
        client = Client(settings_ or settings, account, solvers=solvers, opener=authority)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture()
def tmp_config_file(tmp_path: Path):
    """Write a small YAML configuration and return its path."""

    def write(data: dict) -> Path:
        cfg = tmp_path / "acmeissue.yaml"
        cfg.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8")
        return cfg

    return write


# ---------------------------------------------------------------------------
# ConfigKit singleton cleanup, autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the AcmeissueConfig singleton before and after every test."""
    from acmeissue.config.acmeissue_config import AcmeissueConfig

    AcmeissueConfig.reset()
    yield
    AcmeissueConfig.reset()


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo ``configure_logging`` so caplog keeps seeing acmeissue records."""
    import logging

    yield
    root = logging.getLogger("acmeissue")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)
