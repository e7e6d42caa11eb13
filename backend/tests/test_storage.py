import pytest

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.storage.router import object_path
from conftest import auth_headers


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "STORAGE_DIR", str(tmp_path))
    return tmp_path


def _file(content=b"\x89PNG fake", name="avatar.png"):
    return {"file": (name, content, "image/png")}


def test_upload_at_key_then_read_publicly(client, admin, storage_dir):
    resp = client.post("/storage/v1/object/avatars/users/a1.png", files=_file(), headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json() == {"Key": "avatars/users/a1.png", "Id": "users/a1.png"}
    assert (storage_dir / "avatars" / "users" / "a1.png").read_bytes() == b"\x89PNG fake"

    public = client.get("/storage/v1/object/public/avatars/users/a1.png")
    assert public.status_code == 200
    assert public.content == b"\x89PNG fake"


def test_upload_without_key_generates_safe_name(client, admin, storage_dir):
    resp = client.post("/storage/v1/object/logos", files=_file(name="../../my logo.png"), headers=auth_headers(admin))

    key = resp.json()["Id"]
    assert key.endswith("-my_logo.png")
    assert (storage_dir / "logos" / key).is_file()


def test_upload_requires_token(client):
    assert client.post("/storage/v1/object/avatars/a.png", files=_file()).status_code == 401


def test_upload_size_limit(client, admin, monkeypatch):
    monkeypatch.setattr(settings, "STORAGE_MAX_BYTES", 4)

    resp = client.post("/storage/v1/object/avatars/a.png", files=_file(b"12345"), headers=auth_headers(admin))

    assert resp.status_code == 413


def test_missing_object_is_404(client):
    resp = client.get("/storage/v1/object/public/avatars/nope.png")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_sign_returns_public_url(client, admin):
    resp = client.get("/storage/v1/object/sign/avatars/users/a1.png", headers=auth_headers(admin))
    assert resp.json() == {"signedURL": "/storage/v1/object/public/avatars/users/a1.png"}


@pytest.mark.parametrize(
    "bucket,key",
    [("avatars", "../../etc/passwd"), ("..", "x"), ("avatars", ".hidden"), ("avatars", "a/../../b"), ("avatars", "")],
)
def test_unsafe_paths_are_rejected(bucket, key):
    with pytest.raises(ValidationFailed):
        object_path(bucket, key)


def test_object_path_stays_under_root(storage_dir):
    assert object_path("avatars", "users//a1.png") == (storage_dir / "avatars" / "users" / "a1.png").resolve()
