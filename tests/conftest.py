"""Shared fakes for exercising the backup pipeline without network access."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest

from zipball_backup.github.api import GitHubAPI
from zipball_backup.reporter import BackupEvent, EventKind

BASE_URL = "https://api.example.test"

_MISSING = object()


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = _MISSING,
        body: bytes = b"",
        fail_after: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.status_code = status_code
        self._json = json_data
        self._body = body
        self._fail_after = fail_after
        self._error = error
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self._body.decode("utf-8", "replace")

    def json(self) -> Any:
        if self._json is _MISSING:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for index, start in enumerate(range(0, len(self._body), chunk_size)):
            if self._fail_after is not None and index >= self._fail_after:
                raise self._error
            yield self._body[start:start + chunk_size]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class FakeSession:
    """Stands in for ``requests.Session``; routes every GET through ``handler``."""

    def __init__(self, handler: Callable[[str, Dict[str, Any]], FakeResponse]) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self._handler = handler

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, stream: bool = False, timeout: Any = None):
        self.calls.append({"url": url, "params": dict(params or {}), "stream": stream, "timeout": timeout})
        return self._handler(url, dict(params or {}))

    def close(self) -> None:
        self.closed = True

    def urls(self, fragment: str = "") -> List[str]:
        return [call["url"] for call in self.calls if fragment in call["url"]]


class CollectingReporter:
    def __init__(self) -> None:
        self.events: List[BackupEvent] = []

    def record(self, event: BackupEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> List[BackupEvent]:
        return [event for event in self.events if event.kind is kind]


def repo_payload(name: str, updated_at: str = "2024-03-01T12:00:00Z", branch: str = "main", owner: str = "acme") -> Dict[str, Any]:
    return {
        "name": name,
        "full_name": f"{owner}/{name}",
        "updated_at": updated_at,
        "default_branch": branch,
        "private": False,
    }


class ForgeStub:
    """A minimal GitHub: paged listing for one owner plus per-repository archive bodies."""

    def __init__(self, owner: str = "acme", scope: str = "users", pages: Optional[List[List[Dict[str, Any]]]] = None) -> None:
        self.owner = owner
        self.scope = scope
        self.pages = pages or []
        self.archives: Dict[str, FakeResponse] = {}
        self.listing_response: Optional[FakeResponse] = None

    def add_archive(self, name: str, body: bytes = b"PK\x03\x04", status: int = 200, branch: str = "main") -> None:
        self.archives[f"/repos/{self.owner}/{name}/zipball/{branch}"] = FakeResponse(status_code=status, body=body)

    def __call__(self, url: str, params: Dict[str, Any]) -> FakeResponse:
        path = url[len(BASE_URL):]
        if path == f"/{self.scope}/{self.owner}/repos":
            if self.listing_response is not None:
                return self.listing_response
            page = int(params["page"])
            entries = self.pages[page - 1] if page <= len(self.pages) else []
            return FakeResponse(json_data=entries)
        if path in self.archives:
            response = self.archives[path]
            return FakeResponse(status_code=response.status_code, body=response._body)
        return FakeResponse(status_code=404, body=b'{"message": "Not Found"}')


@pytest.fixture
def reporter() -> CollectingReporter:
    return CollectingReporter()


@pytest.fixture
def make_api() -> Callable[..., GitHubAPI]:
    def _make(handler: Callable[[str, Dict[str, Any]], FakeResponse], token: str = "secret-token", **kwargs: Any) -> GitHubAPI:
        session = FakeSession(handler)
        return GitHubAPI(token, base_url=BASE_URL, session=session, **kwargs)

    return _make
