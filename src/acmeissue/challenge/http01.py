"""HTTP-01 solvers (RFC 8555 §8.3).

Two ways of publishing ``/.well-known/acme-challenge/<token>``:

* :class:`HttpServerSolver` runs a small Flask application on werkzeug's
  threaded server for as long as at least one token is presented.
* :class:`WebrootSolver` writes the key authorization into the document
  root of an existing web server.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from flask import Flask, Response, abort
from werkzeug.serving import make_server

from acmeissue.challenge.base import Solver, SolverError
from acmeissue.core.types import ChallengeType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from werkzeug.serving import BaseWSGIServer

log = logging.getLogger(__name__)

CHALLENGE_PATH = "/.well-known/acme-challenge"

_DEFAULT_PORT = 80


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port``, ``:port`` or ``host``)."""
    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        host, port = address, ""
    host = host.strip("[]") or "0.0.0.0"  # noqa: S104
    try:
        return host, int(port) if port else default_port
    except ValueError:
        msg = f"Invalid listener address {address!r}"
        raise SolverError(msg) from None


def create_challenge_app(tokens: Mapping[str, str]) -> Flask:
    """Build the Flask app answering HTTP-01 validation requests.

    Parameters
    ----------
    tokens:
        Live mapping of token to key authorization; read on every
        request so tokens added after startup are served.

    """
    app = Flask("acmeissue.http01")

    @app.get(f"{CHALLENGE_PATH}/<token>")
    def serve_token(token: str):
        key_auth = tokens.get(token)
        if key_auth is None:
            log.info("Unknown HTTP-01 token requested: %s", token)
            abort(404)
        log.info("Served key authorization for token %s", token)
        return Response(key_auth, mimetype="text/plain")

    return app


class HttpServerSolver(Solver):
    """Serve key authorizations from a built-in HTTP listener.

    Config keys: ``address`` (``host:port``, default ``:80``).
    """

    challenge_type = ChallengeType.HTTP_01
    description = "Built-in HTTP server answering on the configured address (default :80)"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        super().__init__(config)
        self.host, self.port = parse_address(self.config.get("address") or "", _DEFAULT_PORT)
        self._tokens: dict[str, str] = {}
        self._lock = threading.Lock()
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None
        self.app = create_challenge_app(self._tokens)

    @property
    def bound_port(self) -> int | None:
        """The port actually listened on (useful with port 0)."""
        return self._server.server_port if self._server else None

    def present(self, domain: str, token: str, key_auth: str) -> None:
        with self._lock:
            self._tokens[token] = key_auth
            if self._server is None:
                self._start()
        log.debug("Presented HTTP-01 token for %s", domain)

    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)
            if not self._tokens:
                self._stop()
        log.debug("Removed HTTP-01 token for %s", domain)

    def close(self) -> None:
        with self._lock:
            self._tokens.clear()
            self._stop()

    def _start(self) -> None:
        try:
            self._server = make_server(self.host, self.port, self.app, threaded=True)
        except (OSError, SystemExit) as exc:
            # werkzeug exits instead of raising when the port is taken
            msg = f"Could not start HTTP-01 listener on {self.host}:{self.port}: {exc}"
            raise SolverError(msg) from None
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="http01-listener",
            daemon=True,
        )
        self._thread.start()
        log.info("HTTP-01 listener started on %s:%d", self.host, self.bound_port)

    def _stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
        log.info("HTTP-01 listener stopped")


class WebrootSolver(Solver):
    """Write key authorizations below an existing web server's root.

    Config keys: ``webroot`` (directory served at ``/``).
    """

    challenge_type = ChallengeType.HTTP_01
    description = "Write token files into an existing web server's document root"

    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        super().__init__(config)
        webroot = self.config.get("webroot")
        if not webroot:
            msg = "webroot solver requires a 'webroot' directory"
            raise SolverError(msg)
        self.challenge_dir = Path(webroot) / CHALLENGE_PATH.lstrip("/")

    def present(self, domain: str, token: str, key_auth: str) -> None:
        try:
            self.challenge_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
            path = self.challenge_dir / token
            path.write_text(key_auth, encoding="ascii")
            path.chmod(0o644)
        except OSError as exc:
            msg = f"Could not write challenge file for {domain}: {exc}"
            raise SolverError(msg) from exc
        log.debug("Wrote %s for %s", path, domain)

    def cleanup(self, domain: str, token: str, key_auth: str) -> None:
        (self.challenge_dir / token).unlink(missing_ok=True)
