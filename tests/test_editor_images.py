"""Editor image upload tests (filesystem and database storage)."""

import io
import os

import pytest
import sqlalchemy as sa

from qahub.models import db
from qahub.models.editor import EditorImage

URL = "/api/v1/editor/images"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _upload(client, headers, payload=PNG, name="shot.png", mimetype="image/png"):
    return client.post(
        URL,
        data={"image": (io.BytesIO(payload), name, mimetype)},
        headers=headers,
        content_type="multipart/form-data",
    )


@pytest.fixture()
def upload_dir(app, tmp_path, monkeypatch):
    monkeypatch.setitem(app.config, "UPLOAD_DIR", str(tmp_path))
    monkeypatch.setitem(app.config, "EDITOR_IMAGE_STORAGE", "filesystem")
    return tmp_path


class TestEditorImages:
    def test_upload_to_filesystem(self, client, auth_headers, upload_dir):
        res = _upload(client, auth_headers)
        assert res.status_code == 201
        image = res.get_json()["data"]
        assert image["storage"] == "filesystem"
        assert image["size"] == len(PNG)
        assert image["url"] == f"{URL}/{image['id']}/file"
        assert os.path.exists(os.path.join(upload_dir, "editor-images", image["filename"]))

        raw = client.get(image["url"], headers=auth_headers)
        assert raw.status_code == 200
        assert raw.mimetype == "image/png"
        assert raw.data == PNG

    def test_upload_to_database(self, app, client, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "EDITOR_IMAGE_STORAGE", "database")
        image = _upload(client, auth_headers).get_json()["data"]
        assert image["storage"] == "database"
        assert client.get(image["url"], headers=auth_headers).data == PNG

    def test_stored_bytes_load_on_access(self, app, client, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "EDITOR_IMAGE_STORAGE", "database")
        image_id = _upload(client, auth_headers).get_json()["data"]["id"]
        db.session.expunge_all()
        row = db.session.get(EditorImage, image_id)
        assert "data" not in sa.inspect(row).dict
        assert row.data == PNG

    def test_missing_file(self, client, auth_headers, upload_dir):
        res = client.post(URL, data={}, headers=auth_headers, content_type="multipart/form-data")
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "NO_FILE"

    def test_rejects_non_image(self, client, auth_headers, upload_dir):
        res = _upload(client, auth_headers, payload=b"%PDF-1.4", name="notes.pdf", mimetype="application/pdf")
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "INVALID_FILE_TYPE"

    def test_size_limit(self, app, client, auth_headers, upload_dir, monkeypatch):
        monkeypatch.setitem(app.config, "EDITOR_IMAGE_MAX_BYTES", 8)
        res = _upload(client, auth_headers)
        assert res.status_code == 413
        assert res.get_json()["error"]["code"] == "FILE_TOO_LARGE"

    def test_images_are_private_to_uploader(self, client, auth_headers, register_and_login, upload_dir):
        image = _upload(client, auth_headers).get_json()["data"]
        _, other = register_and_login("peer@example.com")
        assert client.get(f"{URL}/{image['id']}", headers=other).status_code == 404
        assert client.get(URL, headers=other).get_json()["data"] == []

    def test_delete_removes_file(self, client, auth_headers, upload_dir):
        image = _upload(client, auth_headers).get_json()["data"]
        path = os.path.join(upload_dir, "editor-images", image["filename"])
        assert client.delete(f"{URL}/{image['id']}", headers=auth_headers).status_code == 200
        assert not os.path.exists(path)
        res = client.get(f"{URL}/{image['id']}", headers=auth_headers)
        assert res.get_json()["error"]["code"] == "IMAGE_NOT_FOUND"
