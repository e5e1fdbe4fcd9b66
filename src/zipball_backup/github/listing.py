from __future__ import annotations

import enum
import logging
from typing import Any, Callable, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zipball_backup.errors import ApiError, DecodeError

from .api import GitHubAPI

LOG = logging.getLogger(__name__)

PER_PAGE = 100


class OwnerType(str, enum.Enum):
    USER = "user"
    ORGANIZATION = "org"

    @classmethod
    def parse(cls, value: Any) -> "OwnerType":
        """Only ``"org"`` selects the organization scope; anything else is a user."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value == cls.ORGANIZATION.value:
            return cls.ORGANIZATION
        return cls.USER

    @property
    def path_scope(self) -> str:
        if self is OwnerType.ORGANIZATION:
            return "orgs"
        return "users"


class RepositoryDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    full_name: str
    updated_at: str
    default_branch: str = Field(min_length=1)


def listing_path(owner: str, owner_type: OwnerType) -> str:
    return f"{owner_type.path_scope}/{quote(owner, safe='')}/repos"


def list_repositories(
    api: GitHubAPI,
    owner: str,
    owner_type: OwnerType,
    per_page: int = PER_PAGE,
    on_page: Optional[Callable[[int, int], None]] = None,
) -> List[RepositoryDescriptor]:
    """Collect every repository of ``owner``, most recently updated first.

    Pages are requested until GitHub returns an empty one. ``on_page`` is
    called with the page number and its entry count for each non-empty page.
    """
    path = listing_path(owner, owner_type)
    repositories: List[RepositoryDescriptor] = []
    page = 1

    while True:
        LOG.debug("Fetching page %s of repositories for %s", page, owner)
        response = api.get(
            path,
            params={
                "per_page": per_page,
                "page": page,
                "sort": "updated",
                "direction": "desc",
            },
        )
        if not response.ok:
            LOG.error("Repository listing failed: %s %s", response.status_code, response.text)
            raise ApiError(response.status_code)

        entries = _decode_page(response, page)
        if not entries:
            break

        repositories.extend(entries)
        if on_page:
            on_page(page, len(entries))
        page += 1

    return repositories


def _decode_page(response: Any, page: int) -> List[RepositoryDescriptor]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise DecodeError(f"Listing page {page} is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise DecodeError(f"Listing page {page} is not a JSON array")

    try:
        return [RepositoryDescriptor.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise DecodeError(f"Listing page {page} has a malformed repository entry: {exc}") from exc
