"""Tests for acmeissue.api.transport."""

from __future__ import annotations

import io
import json
import urllib.error
from email.message import Message
from unittest.mock import MagicMock

import pytest

from acmeissue.api.transport import DEFAULT_USER_AGENT, JOSE_CONTENT_TYPE, Response, Transport
from acmeissue.errors import AcmeProblem, BadNonceProblem, RateLimitedProblem, TransportError

from fake_authority import FakeResponse


def _headers(**values) -> Message:
    msg = Message()
    for name, value in values.items():
        msg[name.replace("_", "-")] = value
    return msg


def _opener(response=None, error=None):
    opener = MagicMock()
    if error is not None:
        opener.open.side_effect = error
    else:
        opener.open.return_value = response
    return opener


def _http_error(status, body: bytes, content_type="application/problem+json", **extra):
    return urllib.error.HTTPError(
        "https://x/y",
        status,
        "error",
        _headers(Content_Type=content_type, **extra),
        io.BytesIO(body),
    )


class TestResponse:
    def test_header_lookup_is_case_insensitive(self):
        resp = Response(url="u", status=200, headers={"replay-nonce": ("abc",)})
        assert resp.header("Replay-Nonce") == "abc"
        assert resp.header("missing") is None

    def test_links_by_relation(self):
        resp = Response(
            url="https://x/cert/1",
            status=200,
            headers={
                "link": (
                    '<https://x/cert/1/alt>;rel="alternate"',
                    '<https://x/directory>;rel="index"',
                    '</cert/1/alt2>; rel=alternate',
                ),
            },
        )
        assert resp.links("alternate") == ["https://x/cert/1/alt", "https://x/cert/1/alt2"]
        assert resp.links("index") == ["https://x/directory"]

    def test_json_error(self):
        resp = Response(url="u", status=200, body=b"{not json")
        with pytest.raises(TransportError):
            resp.json()

    def test_content_type_strips_parameters(self):
        resp = Response(url="u", status=200, headers={"content-type": ("Application/JSON; charset=utf-8",)})
        assert resp.content_type == "application/json"


class TestTransport:
    def test_user_agent_prefix(self):
        transport = Transport(user_agent="myapp/2.0", opener=MagicMock())
        assert transport.user_agent == f"myapp/2.0 {DEFAULT_USER_AGENT}"

    def test_post_sets_jose_content_type(self):
        opener = _opener(FakeResponse("https://x/y", 200, _headers(), b"{}"))
        Transport(opener=opener, timeout=7).post("https://x/y", b"{}")
        req = opener.open.call_args.args[0]
        assert req.get_header("Content-type") == JOSE_CONTENT_TYPE
        assert req.get_method() == "POST"
        assert opener.open.call_args.kwargs["timeout"] == 7

    def test_success_collects_headers(self):
        opener = _opener(FakeResponse("https://x/y", 201, _headers(Replay_Nonce="n1", Location="https://x/o/1"), b"{}"))
        resp = Transport(opener=opener).get("https://x/y")
        assert resp.status == 201
        assert resp.header("replay-nonce") == "n1"
        assert resp.location == "https://x/o/1"

    def test_problem_document(self):
        body = json.dumps({"type": "urn:ietf:params:acme:error:badNonce", "detail": "stale"}).encode()
        opener = _opener(error=_http_error(400, body, Replay_Nonce="n2"))
        with pytest.raises(BadNonceProblem) as exc_info:
            Transport(opener=opener).post("https://x/y", b"{}")
        assert exc_info.value.detail == "stale"
        assert exc_info.value.headers["replay-nonce"] == "n2"
        assert exc_info.value.retryable

    def test_rate_limited_retry_after(self):
        body = json.dumps({"type": "urn:ietf:params:acme:error:rateLimited", "detail": "slow down"}).encode()
        opener = _opener(error=_http_error(429, body, Retry_After="120"))
        with pytest.raises(RateLimitedProblem) as exc_info:
            Transport(opener=opener).post("https://x/y", b"{}")
        assert exc_info.value.retry_after == "120"
        assert exc_info.value.status == 429

    def test_non_problem_error_body(self):
        opener = _opener(error=_http_error(502, b"Bad Gateway", content_type="text/html"))
        with pytest.raises(AcmeProblem) as exc_info:
            Transport(opener=opener).get("https://x/y")
        assert exc_info.value.error_type == "about:blank"
        assert "Bad Gateway" in exc_info.value.detail

    def test_network_error(self):
        opener = _opener(error=urllib.error.URLError("connection refused"))
        with pytest.raises(TransportError, match="connection refused"):
            Transport(opener=opener).get("https://x/y")
