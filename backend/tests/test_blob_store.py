import hashlib
import io

import pytest
from botocore.exceptions import ClientError

from gamehost.core.errors import StorageFailure, ValidationFailed
from gamehost.services.blob_store import LocalBlobStore, S3BlobStore, normalize_blob_path


class _FakeS3:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_uploads = False

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.fail_uploads:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        buf = io.BytesIO()
        while True:
            chunk = fileobj.read(8192)
            if not chunk:
                break
            buf.write(chunk)
        self.objects[f"{bucket}/{key}"] = buf.getvalue()

    def head_object(self, Bucket, Key):
        if f"{Bucket}/{Key}" not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[f"{Bucket}/{Key}"])}

    def get_object(self, Bucket, Key):
        if f"{Bucket}/{Key}" not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[f"{Bucket}/{Key}"])}

    def download_fileobj(self, Bucket, Key, Fileobj):
        Fileobj.write(self.objects[f"{Bucket}/{Key}"])

    def delete_object(self, Bucket, Key):
        self.objects.pop(f"{Bucket}/{Key}", None)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("/storage/games/1/assets/a.zip", "games/1/assets/a.zip"),
        ("storage/games/1/assets/a.zip", "games/1/assets/a.zip"),
        ("/games/1/assets/a.zip", "games/1/assets/a.zip"),
        ("games\\1\\assets\\a.zip", "games/1/assets/a.zip"),
    ],
)
def test_normalize_blob_path(raw, expected):
    assert normalize_blob_path(raw) == expected


@pytest.mark.parametrize("raw", ["", "/", "games/../../etc/passwd"])
def test_normalize_blob_path_rejects(raw):
    with pytest.raises(ValidationFailed):
        normalize_blob_path(raw)


def test_local_store_roundtrip(tmp_path):
    store = LocalBlobStore(tmp_path, chunk_size=4)
    data = b"PK\x03\x04 some archive"
    blob = store.store(io.BytesIO(data), "games/1/assets/x.zip")

    assert blob.path == "games/1/assets/x.zip"
    assert blob.size_bytes == len(data)
    assert blob.checksum == hashlib.sha256(data).hexdigest()
    assert blob.head == data[:8]
    assert store.exists("/storage/games/1/assets/x.zip")
    with store.open_for_read(blob.path) as fh:
        assert fh.read() == data
    with store.local_copy(blob.path) as p:
        assert p.read_bytes() == data

    store.delete(blob.path)
    assert not store.exists(blob.path)
    store.delete(blob.path)


def test_local_store_limit_leaves_nothing(tmp_path):
    store = LocalBlobStore(tmp_path, chunk_size=4)
    with pytest.raises(ValidationFailed):
        store.store(io.BytesIO(b"0123456789"), "games/1/assets/x.bin", max_bytes=5)
    assert [p for p in tmp_path.rglob("*") if p.is_file()] == []


def test_s3_store_roundtrip(monkeypatch):
    from gamehost.core.config import settings

    monkeypatch.setattr(settings, "s3_public_endpoint_url", "https://cdn.example.com")
    fake = _FakeS3()
    store = S3BlobStore(bucket="assets", client=fake)
    data = b"\x1f\x8b compressed"

    blob = store.store(io.BytesIO(data), "/storage/games/2/assets/y.gz", content_type="application/gzip")
    assert blob.path == "games/2/assets/y.gz"
    assert blob.checksum == hashlib.sha256(data).hexdigest()
    assert fake.objects["assets/games/2/assets/y.gz"] == data

    assert store.exists(blob.path) is True
    assert store.exists("games/2/assets/none.gz") is False
    assert store.open_for_read(blob.path).read() == data
    with store.local_copy(blob.path) as p:
        assert p.read_bytes() == data
        local = p
    assert not local.exists()
    assert store.public_url(blob.path) == "https://cdn.example.com/assets/games/2/assets/y.gz"

    store.delete(blob.path)
    assert store.exists(blob.path) is False


def test_s3_store_errors():
    fake = _FakeS3()
    store = S3BlobStore(bucket="assets", client=fake)

    with pytest.raises(StorageFailure):
        store.open_for_read("games/1/missing.zip")

    fake.fail_uploads = True
    with pytest.raises(StorageFailure):
        store.store(io.BytesIO(b"x"), "games/1/a.zip")

    fake.fail_uploads = False
    with pytest.raises(ValidationFailed):
        store.store(io.BytesIO(b"x" * 100), "games/1/b.zip", max_bytes=10)
    assert "assets/games/1/b.zip" not in fake.objects
