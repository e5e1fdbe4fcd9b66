from .api import GitHubAPI
from .archive import Downloaded, DownloadOutcome, Skipped, archive_filename, download_archive, iter_counted
from .listing import OwnerType, RepositoryDescriptor, list_repositories

__all__ = [
    "GitHubAPI",
    "OwnerType",
    "RepositoryDescriptor",
    "list_repositories",
    "download_archive",
    "archive_filename",
    "iter_counted",
    "Downloaded",
    "DownloadOutcome",
    "Skipped",
]
