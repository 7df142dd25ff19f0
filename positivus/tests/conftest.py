import io
import re
import uuid
from datetime import datetime

import pytest
from werkzeug.datastructures import FileStorage

from positivus import create_app
from positivus.gateway import GatewayError
from positivus.images import ImageStaging

CSRF_TOKEN_RE = re.compile(r'name="_csrf_token" value="([^"]+)"')
GATEWAY_STAMP = datetime(2024, 5, 1, 12, 0, 0)


def extract_csrf_token(html):
    match = CSRF_TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"positivus_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"
    staging_path = tmp_path / f"staging_{uuid.uuid4().hex[:8]}"

    monkeypatch.setenv("ADMIN_PASSWORD", "admin123")

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "UPLOAD_FOLDER": str(upload_path),
        "STAGING_FOLDER": str(staging_path),
        "LOG_JSON": False,
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    return build_test_app(tmp_path, monkeypatch)


@pytest.fixture()
def client(app):
    return app.test_client()


def admin_login(client):
    login_page = client.get("/admin/login")
    csrf_token = extract_csrf_token(login_page.get_data(as_text=True))
    assert csrf_token

    response = client.post(
        "/admin/login",
        data={
            "_csrf_token": csrf_token,
            "username": "admin",
            "password": "admin123",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)


@pytest.fixture()
def admin_client(client):
    admin_login(client)
    return client


@pytest.fixture()
def csrf(admin_client):
    page = admin_client.get("/admin/services")
    token = extract_csrf_token(page.get_data(as_text=True))
    assert token
    return token


class FakeGateway:
    """In-memory stand-in for DataGateway that records every call."""

    def __init__(self, rows=None, calls=None):
        self.rows = {table: [dict(row) for row in items] for table, items in (rows or {}).items()}
        self.calls = calls if calls is not None else []
        self.fail = set()
        self.counter = 0

    def list(self, table, order=("sort_order",), filters=None):
        self.calls.append(("list", table))
        return [dict(row) for row in self.rows.get(table, [])]

    def get(self, table, row_id):
        self.calls.append(("get", table, row_id))
        for row in self.rows.get(table, []):
            if row["id"] == row_id:
                return dict(row)
        return None

    def insert(self, table, row):
        self.calls.append(("insert", table, dict(row)))
        if "insert" in self.fail:
            raise GatewayError("insert failed")
        self.counter += 1
        created = dict(row, id=f"row-{self.counter}", created_at=GATEWAY_STAMP, updated_at=GATEWAY_STAMP)
        self.rows.setdefault(table, []).append(created)
        return dict(created)

    def update(self, table, row_id, patch):
        self.calls.append(("update", table, row_id, dict(patch)))
        if "update" in self.fail:
            raise GatewayError("update failed")
        for row in self.rows.get(table, []):
            if row["id"] == row_id:
                row.update(patch)
        return True

    def delete(self, table, row_id):
        self.calls.append(("delete", table, row_id))
        if "delete" in self.fail:
            raise GatewayError("delete failed")
        self.rows[table] = [row for row in self.rows.get(table, []) if row["id"] != row_id]
        return True

    def writes(self):
        return [call for call in self.calls if call[0] in {"insert", "update", "delete", "upload", "remove"}]


class FakeStorage:
    def __init__(self, calls, fail=False):
        self.calls = calls
        self.fail = fail

    def upload(self, bucket, file):
        self.calls.append(("upload", bucket, file.filename))
        if self.fail:
            raise GatewayError("upload failed")
        return f"/storage/{bucket}/abc123_{file.filename}"

    def remove(self, bucket, url):
        self.calls.append(("remove", bucket, url))
        return True

    def owns(self, bucket, url):
        return bool(url) and url.startswith(f"/storage/{bucket}/")


def image_file(filename="icon.png", content_type="image/png", payload=b"\x89PNG fake image bytes"):
    return FileStorage(stream=io.BytesIO(payload), filename=filename, content_type=content_type)


@pytest.fixture()
def staging(tmp_path):
    return ImageStaging(str(tmp_path / "staging"), max_bytes=5 * 1024 * 1024)
