"""HTTP surface exercised through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from conftest import build_settings
from vidagents import __version__
from vidagents.api.app import create_app, flatten_validation_errors


@pytest.fixture
def client(fake):
    with TestClient(create_app(build_settings(), transport=fake.transport)) as client:
        yield client


@pytest.fixture
def dry_run_client(fake):
    with TestClient(create_app(build_settings(dry_run=True), transport=fake.transport)) as client:
        yield client


# ---------------------------------------------------------------------------
# POST /api/ai/video/generate
# ---------------------------------------------------------------------------

def test_generate_routes_to_svd(client):
    response = client.post("/api/ai/video/generate", json={
        "prompt": "a cat on a skateboard",
        "settings": {"format": "video", "genre": "sfw", "length": 5, "fps": 30},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["id"].startswith("vidgen_")
    assert body["mode"] == "text2video"

    result = body["result"]
    assert result["agent"] == "svd-local"
    assert result["videoUrl"] == "http://sd.test:7860/outputs/svd/clip.mp4"
    assert result["duration"] == 5
    assert result["hasAudio"] is False
    assert result["prompt"] == "a cat on a skateboard"
    assert result["settings"] == {"format": "video", "genre": "sfw", "length": 5, "fps": 30}
    assert result["sourceImage"] is None
    assert result["meta"]["baseImage"] == "txt2img"


def test_generate_echoes_extras_at_top_level(dry_run_client):
    response = dry_run_client.post("/api/ai/video/generate", json={
        "prompt": "forest",
        "settings": {"agent": "deforum-hub", "keyframes": {"10": "winter"}},
    })

    assert response.status_code == 200
    settings = response.json()["result"]["settings"]
    assert settings["keyframes"] == {"10": "winter"}
    assert "extras" not in settings


def test_generate_with_source_image_is_image2video(dry_run_client):
    response = dry_run_client.post("/api/ai/video/generate", json={
        "mode": "text2video",
        "prompt": "make it move",
        "settings": {},
        "sourceImage": "https://example.com/still.png",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "image2video"
    assert body["result"]["agent"] == "comfy-orchestrator"
    assert body["result"]["sourceImage"] == "https://example.com/still.png"


def test_format_defaults_to_video_over_http(dry_run_client):
    response = dry_run_client.post("/api/ai/video/generate", json={
        "prompt": "x",
        "settings": {"genre": "sfw"},
    })

    assert response.json()["result"]["agent"] == "svd-local"


# ---------------------------------------------------------------------------
# Validation envelope
# ---------------------------------------------------------------------------

def test_empty_prompt_is_400(client, fake):
    response = client.post("/api/ai/video/generate", json={"prompt": "", "settings": {}})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "invalid"
    assert "prompt" in body["error"]["fieldErrors"]
    assert fake.requests == []


def test_missing_settings_is_400(client):
    response = client.post("/api/ai/video/generate", json={"prompt": "x"})

    assert response.status_code == 400
    assert "settings" in response.json()["error"]["fieldErrors"]


def test_invalid_source_image_is_400(client):
    response = client.post("/api/ai/video/generate", json={
        "prompt": "x", "settings": {}, "sourceImage": "not a url",
    })

    assert response.status_code == 400
    messages = response.json()["error"]["fieldErrors"]["sourceImage"]
    assert any("Invalid url" in m for m in messages)


def test_invalid_setting_value_is_400(client):
    response = client.post("/api/ai/video/generate", json={
        "prompt": "x", "settings": {"genre": "kids"},
    })

    assert response.status_code == 400
    assert "settings" in response.json()["error"]["fieldErrors"]


def test_unknown_agent_key_is_400(client, fake):
    response = client.post("/api/ai/video/generate", json={
        "prompt": "x", "settings": {"agent": "sora"},
    })

    assert response.status_code == 400
    assert "settings" in response.json()["error"]["fieldErrors"]
    assert fake.requests == []


def test_flatten_validation_errors_splits_form_and_field_errors():
    errors = [
        {"loc": ("body",), "msg": "Field required"},
        {"loc": ("body", "settings", "fps"), "msg": "Input should be a valid number"},
        {"loc": ("body", "settings", "genre"), "msg": "Input should be 'sfw' or 'nsfw'"},
    ]

    assert flatten_validation_errors(errors) == {
        "formErrors": ["Field required"],
        "fieldErrors": {
            "settings": ["Input should be a valid number", "Input should be 'sfw' or 'nsfw'"],
        },
    }


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_backend_failure_is_500(client, fake):
    fake.deforum_status = "FAILED"

    response = client.post("/api/ai/video/generate", json={
        "prompt": "forest", "settings": {"agent": "deforum-hub"},
    })

    assert response.status_code == 500
    body = response.json()
    assert body["status"] == "error"
    assert "CUDA out of memory" in body["error"]


def test_precondition_failure_is_500(client):
    response = client.post("/api/ai/video/generate", json={
        "prompt": "x", "settings": {"agent": "comfy-nsfw-pro", "genre": "sfw"},
    })

    assert response.status_code == 500
    assert response.json() == {"status": "error", "error": "ComfyNSFWProAgent expects NSFW genre"}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def test_list_agents(client):
    response = client.get("/api/ai/video/agents")

    assert response.status_code == 200
    assert [a["key"] for a in response.json()] == [
        "comfy-orchestrator", "svd-local", "comfy-nsfw-pro", "deforum-hub",
    ]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok", "version": __version__}
