"""Tests for the HTTP-01 solvers."""

from __future__ import annotations

import urllib.error
import urllib.request

import pytest

from acmeissue.challenge.base import SolverError
from acmeissue.challenge.http01 import (
    CHALLENGE_PATH,
    HttpServerSolver,
    WebrootSolver,
    create_challenge_app,
    parse_address,
)


class TestParseAddress:
    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            (":80", ("0.0.0.0", 80)),
            ("", ("0.0.0.0", 5002)),
            ("127.0.0.1:8080", ("127.0.0.1", 8080)),
            ("[::1]:5002", ("::1", 5002)),
            ("[::1]", ("::1", 5002)),
            ("example.org", ("example.org", 5002)),
        ],
    )
    def test_forms(self, address, expected):
        assert parse_address(address, 5002) == expected

    def test_invalid_port(self):
        with pytest.raises(SolverError, match="Invalid listener address"):
            parse_address("localhost:http", 80)


class TestChallengeApp:
    def test_serves_known_token(self):
        tokens = {"tok": "tok.thumb"}
        client = create_challenge_app(tokens).test_client()
        resp = client.get(f"{CHALLENGE_PATH}/tok")
        assert resp.status_code == 200
        assert resp.data == b"tok.thumb"
        assert resp.mimetype == "text/plain"

    def test_unknown_token(self):
        client = create_challenge_app({}).test_client()
        assert client.get(f"{CHALLENGE_PATH}/missing").status_code == 404

    def test_tokens_added_later_are_served(self):
        tokens: dict[str, str] = {}
        client = create_challenge_app(tokens).test_client()
        tokens["late"] = "late.thumb"
        assert client.get(f"{CHALLENGE_PATH}/late").data == b"late.thumb"

    def test_other_paths_not_served(self):
        client = create_challenge_app({"tok": "x"}).test_client()
        assert client.get("/tok").status_code == 404


class TestHttpServerSolver:
    def test_listener_lifecycle(self):
        solver = HttpServerSolver({"address": "127.0.0.1:0"})
        try:
            solver.present("example.com", "tok1", "tok1.thumb")
            solver.present("www.example.com", "tok2", "tok2.thumb")
            port = solver.bound_port
            assert port

            url = f"http://127.0.0.1:{port}{CHALLENGE_PATH}/tok2"
            with urllib.request.urlopen(url, timeout=5) as resp:  # noqa: S310
                assert resp.read() == b"tok2.thumb"

            # the listener stays up while any token is presented
            solver.cleanup("example.com", "tok1", "tok1.thumb")
            assert solver.bound_port == port
            with pytest.raises(urllib.error.HTTPError) as exc_info:
                urllib.request.urlopen(f"http://127.0.0.1:{port}{CHALLENGE_PATH}/tok1", timeout=5)  # noqa: S310
            assert exc_info.value.code == 404

            solver.cleanup("www.example.com", "tok2", "tok2.thumb")
            assert solver.bound_port is None
        finally:
            solver.close()

    def test_port_in_use(self):
        first = HttpServerSolver({"address": "127.0.0.1:0"})
        try:
            first.present("example.com", "tok", "tok.thumb")
            second = HttpServerSolver({"address": f"127.0.0.1:{first.bound_port}"})
            with pytest.raises(SolverError, match="Could not start HTTP-01 listener"):
                second.present("example.com", "tok", "tok.thumb")
        finally:
            first.close()

    def test_close_is_idempotent(self):
        solver = HttpServerSolver({"address": "127.0.0.1:0"})
        solver.close()
        solver.close()
        assert solver.bound_port is None


class TestWebrootSolver:
    def test_present_and_cleanup(self, tmp_path):
        solver = WebrootSolver({"webroot": str(tmp_path)})
        solver.present("example.com", "tok", "tok.thumb")

        path = tmp_path / ".well-known" / "acme-challenge" / "tok"
        assert path.read_text(encoding="ascii") == "tok.thumb"

        solver.cleanup("example.com", "tok", "tok.thumb")
        assert not path.exists()
        # removing twice is harmless
        solver.cleanup("example.com", "tok", "tok.thumb")

    def test_requires_webroot(self):
        with pytest.raises(SolverError, match="requires a 'webroot'"):
            WebrootSolver({})

    def test_unwritable_webroot(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        solver = WebrootSolver({"webroot": str(blocker)})
        with pytest.raises(SolverError, match="Could not write challenge file for example.com"):
            solver.present("example.com", "tok", "tok.thumb")
