"""Lookup of the caller's public IPv4 address, used to default the ingress CIDR."""

from __future__ import annotations

import ipaddress
import logging

import requests

from .exceptions import AddressLookupError

logger = logging.getLogger(__name__)

IDENT_URL = "http://v4.ident.me/"


class PublicAddressLookup:
    def __init__(self, url: str = IDENT_URL, timeout: int = 10):
        self._url = url
        self._timeout = timeout
        self._session = requests.Session()

    def lookup(self) -> str:
        """Return the caller's public IPv4 address as a string."""
        try:
            resp = self._session.get(self._url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise AddressLookupError(f"Could not reach {self._url}: {exc}") from exc

        if not resp.ok:
            raise AddressLookupError(f"{self._url} returned HTTP {resp.status_code}")

        address = resp.text.strip()
        try:
            ipaddress.IPv4Address(address)
        except ValueError:
            raise AddressLookupError(f"{self._url} returned an invalid address: {address!r}") from None

        logger.debug("Public address is %s", address)
        return address

    def lookup_cidr(self) -> str:
        return f"{self.lookup()}/32"
