import pytest

from app.meyden.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_storage_roundtrip(tmp_path):
    store = LocalStorage(root=tmp_path)
    store.put_bytes("uploads/1/a.txt", b"hello")
    assert store.exists("uploads/1/a.txt")
    with store.open("uploads/1/a.txt") as fh:
        assert fh.read() == b"hello"
    assert store.url_for_key("uploads/1/a.txt") is None


def test_keys_cannot_escape_root(tmp_path):
    store = LocalStorage(root=tmp_path / "root")
    store.put_bytes("../../etc/passwd", b"x")
    assert (tmp_path / "root" / "etc" / "passwd").read_bytes() == b"x"
    with pytest.raises(StorageError):
        store.put_bytes("../..", b"x")


def test_storage_from_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    local = storage_from_config({"STORAGE_BACKEND": "local"})
    assert isinstance(local, LocalStorage)
    assert local.root.name == "storage"
    assert local.root.parent.resolve() == tmp_path.resolve()

    s3 = storage_from_config(
        {"STORAGE_BACKEND": "s3", "S3_ENDPOINT": "nyc3.digitaloceanspaces.com", "S3_BUCKET": "meyden"}
    )
    assert isinstance(s3, S3Storage)
    assert s3.url_for_key("uploads/1/a.png") == "https://meyden.nyc3.digitaloceanspaces.com/uploads/1/a.png"
