"""Shared base for authority repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from acmeissue.errors import TransportError

if TYPE_CHECKING:
    from acmeissue.api.core import AcmeApi
    from acmeissue.api.transport import Response


class AuthorityRepository:
    """Holds the signed API and decodes JSON resource bodies."""

    def __init__(self, api: AcmeApi) -> None:
        self._api = api

    @staticmethod
    def _body(resp: Response) -> dict[str, Any]:
        data = resp.json()
        if not isinstance(data, dict):
            raise TransportError(resp.url, "resource body is not a JSON object")
        return data

    @staticmethod
    def _location(resp: Response) -> str:
        if not resp.location:
            raise TransportError(resp.url, "response carried no Location header")
        return resp.location
