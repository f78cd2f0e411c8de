"""IMDSv2 client for the per-interface network facts."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

import requests

from .config import MetadataConfig
from .exceptions import MetadataError

LOG = logging.getLogger(__name__)

TOKEN_PATH = "/latest/api/token"
MACS_PATH = "/latest/meta-data/network/interfaces/macs"
TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"

# Refresh the token this many seconds before IMDS would expire it.
TOKEN_REFRESH_MARGIN = 5


class MetadataClient:
    """Fetch address facts for an interface, keyed by its MAC address.

    A session token is requested lazily with ``PUT`` and reused until it is
    close to expiry.  Missing keys (HTTP 404) are a normal answer while EC2 is
    still attaching addresses and are returned as empty results; every other
    failure raises :class:`MetadataError` so the caller's poll loop can retry.
    """

    def __init__(
        self,
        config: Optional[MetadataConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or MetadataConfig()
        self._session = session or requests.Session()
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expiry = 0.0

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def local_ipv4s(self, mac: str) -> List[str]:
        """IPv4 addresses assigned to ``mac``, primary first."""

        return _split_lines(self._get_key(mac, "local-ipv4s"))

    def ipv6s(self, mac: str) -> List[str]:
        return _split_lines(self._get_key(mac, "ipv6s"))

    def subnet_ipv4_cidr(self, mac: str) -> Optional[str]:
        body = self._get_key(mac, "subnet-ipv4-cidr-block")
        if body is None:
            return None
        return body.strip() or None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        return self._config.endpoint.rstrip("/") + path

    def _token_value(self) -> str:
        now = self._clock()
        if self._token is not None and now < self._token_expiry:
            return self._token

        try:
            response = self._session.put(
                self._url(TOKEN_PATH),
                headers={TOKEN_TTL_HEADER: str(self._config.token_ttl)},
                timeout=self._config.timeout,
            )
        except requests.RequestException as exc:
            raise MetadataError(f"token request failed: {exc}") from exc

        if response.status_code != 200:
            raise MetadataError(f"token request returned HTTP {response.status_code}")

        self._token = response.text.strip()
        self._token_expiry = now + max(self._config.token_ttl - TOKEN_REFRESH_MARGIN, 1)
        LOG.debug("obtained IMDSv2 token (ttl=%ss)", self._config.token_ttl)
        return self._token

    def _get_key(self, mac: str, key: str) -> Optional[str]:
        path = f"{MACS_PATH}/{mac.lower()}/{key}"
        headers = {TOKEN_HEADER: self._token_value()}
        try:
            response = self._session.get(
                self._url(path), headers=headers, timeout=self._config.timeout
            )
        except requests.RequestException as exc:
            raise MetadataError(f"GET {path} failed: {exc}") from exc

        if response.status_code == 404:
            LOG.debug("GET %s: not found", path)
            return None
        if response.status_code == 401:
            # Token expired or revoked early; fetch a new one next time.
            self._token = None
            raise MetadataError(f"GET {path} rejected token (HTTP 401)")
        if response.status_code != 200:
            raise MetadataError(f"GET {path} returned HTTP {response.status_code}")
        return response.text


def _split_lines(body: Optional[str]) -> List[str]:
    if not body:
        return []
    return [line.strip() for line in body.splitlines() if line.strip()]
