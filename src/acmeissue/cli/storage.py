"""On-disk storage of accounts and certificates for the CLI.

Layout below the storage root::

    accounts/<authority host>/<email>/account.json
    accounts/<authority host>/<email>/keys/<email>.key
    certificates/<domain>.crt          leaf (or bundle)
    certificates/<domain>.issuer.crt   issuer chain
    certificates/<domain>.key          certificate private key
    certificates/<domain>.csr          CSR, for CSR-driven certificates
    certificates/<domain>.json         URLs and domain

Wildcard domains are stored with ``*`` replaced by ``_``.  Keys are
written exactly as generated, so they load back byte-for-byte.
"""

from __future__ import annotations

import json
import logging
import os
import urllib.parse
from pathlib import Path
from typing import TYPE_CHECKING

from acmeissue.core.crypto import generate_private_key, load_private_key_pem, private_key_to_pem
from acmeissue.errors import ConfigurationError
from acmeissue.models.account import Account, Registration
from acmeissue.models.certificate import CertificateResource

if TYPE_CHECKING:
    from acmeissue.config.settings import AcmeissueSettings
    from acmeissue.core.jws import PrivateKey

log = logging.getLogger(__name__)

_FILE_MODE = 0o600
_DIR_MODE = 0o700


def _write_private(path: Path, data: bytes) -> None:
    path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def server_path(directory_url: str) -> str:
    """Directory name for an authority: its host, ``:`` replaced by ``_``."""
    host = urllib.parse.urlsplit(directory_url).netloc
    return host.replace(":", "_") or "default"


def sanitized_domain(domain: str) -> str:
    return domain.replace("*", "_")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountsStorage:
    """Account files for one email address at one authority."""

    def __init__(self, settings: AcmeissueSettings, email: str) -> None:
        if not email:
            msg = "An account email is required (--email / account.email)"
            raise ConfigurationError(msg)
        self.email = email
        self.key_type = settings.account.key_type
        self.root = Path(settings.storage.path) / "accounts" / server_path(
            settings.server.directory_url,
        )
        self.account_dir = self.root / email
        self.account_file = self.account_dir / "account.json"
        self.key_file = self.account_dir / "keys" / f"{email}.key"

    def exists(self) -> bool:
        return self.account_file.is_file()

    def private_key(self) -> PrivateKey:
        """Load the account key, generating and saving one on first use."""
        if self.key_file.is_file():
            return load_private_key_pem(self.key_file.read_bytes())
        log.info("No key found for account %s, generating a %s key", self.email, self.key_type)
        key = generate_private_key(self.key_type)
        _write_private(self.key_file, private_key_to_pem(key))
        return key

    def load(self) -> Account:
        """Return the stored account; unregistered if no account file exists."""
        key = self.private_key()
        if not self.exists():
            return Account(email=self.email, key=key)
        try:
            data = json.loads(self.account_file.read_text(encoding="utf-8"))
            reg = data["registration"]
            registration = Registration.from_dict(reg["url"], reg["body"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            msg = f"Cannot load account file {self.account_file}: {exc}"
            raise ConfigurationError(msg) from exc
        return Account(email=data.get("email", self.email), key=key, registration=registration)

    def save(self, account: Account) -> None:
        data = {
            "email": account.email,
            "registration": account.registration.to_dict() if account.registration else None,
        }
        _write_private(self.account_file, json.dumps(data, indent=2).encode("utf-8"))
        _write_private(self.key_file, private_key_to_pem(account.key))
        log.info("Saved account %s to %s", account.email, self.account_dir)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


class CertificatesStorage:
    """Certificate files below ``<root>/certificates``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root) / "certificates"

    def _path(self, domain: str, suffix: str) -> Path:
        return self.root / f"{sanitized_domain(domain)}{suffix}"

    def exists(self, domain: str) -> bool:
        return self._path(domain, ".crt").is_file()

    def save(self, resource: CertificateResource) -> None:
        self.root.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
        domain = resource.domain
        self._path(domain, ".crt").write_bytes(resource.certificate)
        self._path(domain, ".issuer.crt").write_bytes(resource.issuer_certificate)
        if resource.private_key is not None:
            _write_private(self._path(domain, ".key"), resource.private_key)
        elif resource.csr is not None:
            self._path(domain, ".csr").write_bytes(resource.csr)
        self._path(domain, ".json").write_text(
            json.dumps(resource.metadata(), indent=2),
            encoding="utf-8",
        )
        log.info("Saved certificate for %s to %s", domain, self.root)

    def load(self, domain: str) -> CertificateResource:
        """Read back the resource saved for *domain*."""
        try:
            meta = json.loads(self._path(domain, ".json").read_text(encoding="utf-8"))
            certificate = self._path(domain, ".crt").read_bytes()
        except (OSError, ValueError) as exc:
            msg = f"No usable certificate stored for {domain}: {exc}"
            raise ConfigurationError(msg) from exc
        issuer = self._path(domain, ".issuer.crt")
        key = self._path(domain, ".key")
        csr = self._path(domain, ".csr")
        return CertificateResource(
            domain=meta.get("domain", domain),
            cert_url=meta.get("certUrl", ""),
            cert_stable_url=meta.get("certStableUrl", ""),
            certificate=certificate,
            issuer_certificate=issuer.read_bytes() if issuer.is_file() else b"",
            private_key=key.read_bytes() if key.is_file() else None,
            csr=csr.read_bytes() if csr.is_file() else None,
        )
