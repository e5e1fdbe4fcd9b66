from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from zipball_backup import __version__
from zipball_backup.errors import ConfigurationError, TransportError

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_ACCEPT_HEADER = "application/vnd.github.v3+json"
DEFAULT_USER_AGENT = f"zipball-backup/{__version__}"


class GitHubAPI:
    """Reusable GitHub REST client carrying fixed authentication headers."""

    def __init__(
        self,
        token: Optional[str],
        base_url: str = DEFAULT_API_URL,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._session = session if session is not None else requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"token {_header_safe_token(token)}",
                "Accept": DEFAULT_ACCEPT_HEADER,
                "User-Agent": DEFAULT_USER_AGENT,
            }
        )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._log = logging.getLogger(self.__class__.__name__)

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        stream: bool = False,
    ) -> requests.Response:
        url = self.url(path)
        self._log.debug("GET %s params=%s", url, params)
        try:
            return self._session.get(url, params=params, stream=stream, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

    def close(self) -> None:
        self._session.close()


def _header_safe_token(token: Optional[str]) -> str:
    if not token:
        raise ConfigurationError("GitHub token must be provided via --token or environment variable")
    if token != token.strip():
        raise ConfigurationError("GitHub token must not contain leading or trailing whitespace")
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in token):
        raise ConfigurationError("GitHub token contains control characters")
    try:
        token.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise ConfigurationError("GitHub token cannot be encoded into an HTTP header") from exc
    return token
