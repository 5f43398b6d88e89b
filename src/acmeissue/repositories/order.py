"""Order repository (RFC 8555 §7.4)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from acmeissue.core.jws import b64url_encode
from acmeissue.models.order import Identifier, Order
from acmeissue.repositories.base import AuthorityRepository

if TYPE_CHECKING:
    from collections.abc import Sequence


class OrderRepository(AuthorityRepository):
    def new(
        self,
        identifiers: Sequence[Identifier],
        *,
        not_before: str | None = None,
        not_after: str | None = None,
    ) -> Order:
        payload: dict = {"identifiers": [i.to_dict() for i in identifiers]}
        if not_before:
            payload["notBefore"] = not_before
        if not_after:
            payload["notAfter"] = not_after
        resp = self._api.post(self._api.directory.new_order, payload)
        return Order.from_dict(self._location(resp), self._body(resp))

    def fetch(self, url: str) -> tuple[Order, str | None]:
        """Return the order and the response's ``Retry-After`` value."""
        resp = self._api.post_as_get(url)
        return Order.from_dict(url, self._body(resp)), resp.header("retry-after")

    def get(self, url: str) -> Order:
        return self.fetch(url)[0]

    def finalize(self, order: Order, csr_der: bytes) -> Order:
        resp = self._api.post(order.finalize, {"csr": b64url_encode(csr_der)})
        return Order.from_dict(order.url, self._body(resp))
