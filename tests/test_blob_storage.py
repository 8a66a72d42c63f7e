"""Tests for the local blob store."""

import io

import pytest

from utils.blob_storage import BlobNotFoundError, BlobStorage, BlobStorageError


@pytest.fixture
def blobs(tmp_path):
    return BlobStorage(tmp_path / "blobs")


def test_save_and_open(blobs):
    size = blobs.save("owner/a.bin", io.BytesIO(b"hello world"))

    assert size == 11
    assert blobs.exists("owner/a.bin")
    with blobs.open("owner/a.bin") as fh:
        assert fh.read() == b"hello world"


def test_save_leaves_no_partial_file(blobs):
    blobs.save("owner/a.bin", io.BytesIO(b"x" * 200_000))

    assert list(blobs.iter_paths()) == ["owner/a.bin"]


def test_open_missing(blobs):
    with pytest.raises(BlobNotFoundError):
        blobs.open("owner/missing.bin")


def test_delete_missing_is_not_an_error(blobs):
    blobs.save("owner/a.bin", io.BytesIO(b"data"))

    assert blobs.delete("owner/a.bin") is True
    assert blobs.delete("owner/a.bin") is False
    assert not blobs.exists("owner/a.bin")


def test_path_cannot_escape_root(blobs):
    with pytest.raises(BlobStorageError):
        blobs.save("../outside.bin", io.BytesIO(b"data"))


def test_make_path_is_unique_and_safe(blobs):
    first = blobs.make_path("owner-1", "../../etc/passwd")
    second = blobs.make_path("owner-1", "../../etc/passwd")

    assert first != second
    assert first.startswith("owner-1/")
    assert ".." not in first
    assert first.endswith("etc_passwd")


def test_iter_paths_on_missing_root(tmp_path):
    assert list(BlobStorage(tmp_path / "nope").iter_paths()) == []
