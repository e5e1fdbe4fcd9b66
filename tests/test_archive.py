"""Tests for archive naming and streaming download."""
import os

import pytest
import requests

from zipball_backup.errors import ApiError, StorageError, TransportError
from zipball_backup.github.archive import (
    Downloaded,
    Skipped,
    archive_date,
    archive_filename,
    archive_path,
    download_archive,
    iter_counted,
)
from zipball_backup.github.listing import RepositoryDescriptor

from tests.conftest import FakeResponse, ForgeStub, repo_payload


def descriptor(name="tool", updated_at="2024-03-01T12:00:00Z", branch="main"):
    return RepositoryDescriptor.model_validate(repo_payload(name, updated_at=updated_at, branch=branch))


def test_filename_replaces_slashes_and_truncates_date():
    assert archive_filename("acme", descriptor("my/repo")) == "acme_my_repo_2024-03-01.zip"


@pytest.mark.parametrize(
    "updated_at, expected",
    [
        ("2024-03-01T12:00:00Z", "2024-03-01"),
        ("2024-03-01", "unknown"),
        ("", "unknown"),
        ("T12:00:00Z", "unknown"),
    ],
)
def test_archive_date(updated_at, expected):
    assert archive_date(updated_at) == expected


def test_iter_counted_tracks_running_total_and_drops_empty_chunks():
    chunks = [b"abc", b"", b"de", b"f"]

    assert list(iter_counted(chunks)) == [(b"abc", 3), (b"de", 5), (b"f", 6)]


def test_existing_archive_is_skipped_without_request(make_api, tmp_path):
    api = make_api(ForgeStub())
    existing = tmp_path / "acme_tool_2024-03-01.zip"
    existing.write_bytes(b"old")

    outcome = download_archive(api, "acme", descriptor(), tmp_path)

    assert outcome == Skipped(path=existing)
    assert api._session.calls == []
    assert existing.read_bytes() == b"old"


def test_streams_body_to_disk_in_chunks(make_api, tmp_path):
    body = os.urandom(3 * 8192 + 17)
    stub = ForgeStub()
    stub.add_archive("tool", body=body, branch="develop")
    api = make_api(stub)
    progress = []

    outcome = download_archive(api, "acme", descriptor(branch="develop"), tmp_path, progress=progress.append)

    assert isinstance(outcome, Downloaded)
    assert outcome.path == tmp_path / "acme_tool_2024-03-01.zip"
    assert outcome.bytes == len(body)
    assert outcome.path.read_bytes() == body
    assert progress == [8192, 8192, 8192, 17]
    assert outcome.elapsed_seconds >= 0
    assert outcome.throughput > 0
    assert api._session.calls[0]["stream"] is True
    assert api._session.urls()[0].endswith("/repos/acme/tool/zipball/develop")
    assert list(tmp_path.iterdir()) == [outcome.path]


def test_error_status_writes_nothing(make_api, tmp_path):
    stub = ForgeStub()
    stub.add_archive("tool", status=500)
    api = make_api(stub)

    with pytest.raises(ApiError) as excinfo:
        download_archive(api, "acme", descriptor(), tmp_path)

    assert excinfo.value.status == 500
    assert excinfo.value.repo == "acme/tool"
    assert list(tmp_path.iterdir()) == []


def test_broken_stream_leaves_no_partial_file(make_api, tmp_path):
    def handler(url, params):
        return FakeResponse(
            body=b"x" * 20000,
            fail_after=1,
            error=requests.exceptions.ChunkedEncodingError("connection reset"),
        )

    api = make_api(handler)

    with pytest.raises(TransportError):
        download_archive(api, "acme", descriptor(), tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_unwritable_destination_is_a_storage_error(make_api, tmp_path):
    stub = ForgeStub()
    stub.add_archive("tool", body=b"data")
    api = make_api(stub)
    missing_dir = tmp_path / "missing"

    with pytest.raises(StorageError):
        download_archive(api, "acme", descriptor(), missing_dir)

    assert not missing_dir.exists()


def test_archive_path_escapes_reserved_characters_but_keeps_branch_slashes():
    assert archive_path("acme", "tool", "feature/x") == "repos/acme/tool/zipball/feature/x"
    assert archive_path("acme", "tool", "fix#12") == "repos/acme/tool/zipball/fix%2312"
    assert archive_path("acme", "tool", "100%") == "repos/acme/tool/zipball/100%25"


def test_branch_with_hash_reaches_the_zipball_endpoint(make_api, tmp_path):
    def handler(url, params):
        return FakeResponse(body=b"zip")

    api = make_api(handler)

    outcome = download_archive(api, "acme", descriptor(branch="fix#12"), tmp_path)

    assert isinstance(outcome, Downloaded)
    url = api._session.urls()[0]
    assert url.endswith("/repos/acme/tool/zipball/fix%2312")
    assert requests.Request("GET", url).prepare().path_url.endswith("/zipball/fix%2312")
