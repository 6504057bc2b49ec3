import pytest
from fastapi.testclient import TestClient

SUPER_ADMIN = {"username": "admin", "password": "admin123"}


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "formcraft.db"))
    monkeypatch.setenv("JSON_PATH", str(tmp_path / "formcraft.json"))
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("SEED_SUPER_ADMIN", "1")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return tmp_path


@pytest.fixture(params=["sqlite", "json"])
def client(request, env, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", request.param)

    from formcraft.app import create_app

    app = create_app()
    with TestClient(app) as client:
        yield client
    app.state.storage.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, username: str, password: str) -> dict[str, str]:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return bearer(response.json()["token"])


def register(client: TestClient, username: str, password: str = "secret123") -> dict[str, str]:
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert response.status_code == 201
    return bearer(response.json()["token"])


@pytest.fixture
def super_headers(client):
    return login(client, SUPER_ADMIN["username"], SUPER_ADMIN["password"])


@pytest.fixture
def owner_headers(client):
    return register(client, "alice")


SAMPLE_SCHEMA = {
    "fields": [
        {"id": "name", "type": "textInput", "label": "Full name", "required": True, "maxLength": 40},
        {"id": "email", "type": "email", "label": "Email"},
        {"id": "age", "type": "number", "label": "Age", "min": 0, "max": 120},
        {
            "id": "plan",
            "type": "select",
            "label": "Plan",
            "options": [
                {"label": "Free", "value": "free"},
                {"label": "Pro", "value": "pro"},
            ],
        },
        {"id": "agree", "type": "checkbox", "label": "Terms"},
        {"id": "resume", "type": "fileUpload", "label": "Resume", "maxFileSize": 1},
    ]
}


@pytest.fixture
def sample_form(client, owner_headers):
    response = client.post(
        "/api/forms",
        json={"name": "Job application", "description": "Apply here", "schema": SAMPLE_SCHEMA},
        headers=owner_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def published_form(client, owner_headers, sample_form):
    response = client.post(f"/api/forms/{sample_form['id']}/publish", headers=owner_headers)
    assert response.status_code == 200
    return response.json()
