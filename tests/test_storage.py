import asyncio

import pytest

from examdesk.errors import FileNotFound, UploadFailed, ValidationFailed
from examdesk.services import GridFSObjectStorage
from fakes import FakeBucket


def test_upload_and_download(storage, bucket, jpeg_bytes):
    stored = asyncio.run(storage.upload_image(jpeg_bytes, "answer.jpg", metadata={"kind": "essay_answer"}))

    assert stored.content_type == "image/jpeg"
    assert stored.size == len(jpeg_bytes)
    assert stored.url == f"/api/files/{stored.file_id}"

    entry = next(iter(bucket.files.values()))
    assert entry["metadata"] == {"kind": "essay_answer", "content_type": "image/jpeg"}

    data, content_type, metadata = asyncio.run(storage.download(stored.file_id))
    assert data == jpeg_bytes
    assert content_type == "image/jpeg"
    assert metadata["kind"] == "essay_answer"


def test_rejects_disallowed_extension(storage, png_bytes):
    with pytest.raises(ValidationFailed):
        asyncio.run(storage.upload_image(png_bytes, "answer.gif"))


def test_rejects_oversized_file(bucket, test_settings, png_bytes):
    test_settings.MAX_UPLOAD_SIZE_MB = 0
    storage = GridFSObjectStorage(bucket, test_settings)
    with pytest.raises(ValidationFailed):
        asyncio.run(storage.upload_image(png_bytes, "answer.png"))


def test_rejects_bytes_that_are_not_an_image(storage, bucket):
    with pytest.raises(ValidationFailed):
        asyncio.run(storage.upload_image(b"hello world", "answer.png"))
    assert bucket.files == {}


def test_store_failure_is_upload_failed(test_settings, png_bytes):
    storage = GridFSObjectStorage(FakeBucket(fail_after=0), test_settings)
    with pytest.raises(UploadFailed):
        asyncio.run(storage.upload_image(png_bytes, "answer.png"))


def test_delete(storage, bucket, png_bytes):
    stored = asyncio.run(storage.upload_image(png_bytes, "answer.png"))
    asyncio.run(storage.delete(stored.file_id))
    assert bucket.files == {}

    with pytest.raises(FileNotFound):
        asyncio.run(storage.delete(stored.file_id))


@pytest.mark.parametrize("file_id", ["not-an-object-id", "65f0c0ffee0000000000beef"])
def test_download_missing(storage, file_id):
    with pytest.raises(FileNotFound):
        asyncio.run(storage.download(file_id))

