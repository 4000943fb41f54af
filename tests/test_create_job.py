from httpx import AsyncClient

from conftest import COVER_URL


async def test_create_job_resolves_nested_album_cover(app_client: AsyncClient, fetch_job) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "album_gif",
        "payload": {"album_cover_url": COVER_URL, "artist": "The Beatles"},
        "priority": 4,
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["ok"] is True

    job = await fetch_job(data["id"])
    assert job.image_url == COVER_URL
    assert job.payload["image_url"] == COVER_URL
    assert job.payload["artist"] == "The Beatles"
    assert job.status == "pending"
    assert job.priority == 4
    assert job.attempts == 0
    assert job.max_attempts == 3


async def test_create_job_prefers_top_level_input_url(app_client: AsyncClient, fetch_job) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "album_gif",
        "input_url": "https://img.example.com/input.jpg",
        "image_url": "https://img.example.com/image.jpg",
        "payload": {"images": ["https://img.example.com/first.jpg"]},
    })
    assert resp.status_code == 201

    job = await fetch_job(resp.json()["id"])
    assert job.image_url == "https://img.example.com/input.jpg"


async def test_create_job_keeps_payload_image_url(app_client: AsyncClient, fetch_job) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "album_gif",
        "input_url": "https://img.example.com/input.jpg",
        "payload": {"image_url": "https://img.example.com/payload.jpg"},
    })
    job = await fetch_job(resp.json()["id"])
    assert job.image_url == "https://img.example.com/input.jpg"
    assert job.payload["image_url"] == "https://img.example.com/payload.jpg"


async def test_create_job_replaces_blank_payload_image_url(app_client: AsyncClient, fetch_job) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "gif",
        "input_url": COVER_URL,
        "payload": {"image_url": ""},
    })
    assert resp.status_code == 201

    job = await fetch_job(resp.json()["id"])
    assert job.image_url == COVER_URL
    assert job.payload["image_url"] == COVER_URL


async def test_create_job_without_image_is_rejected(app_client: AsyncClient, count_jobs) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "album_gif",
        "payload": {"artist": "Nobody", "images": []},
    })
    assert resp.status_code == 400
    body = resp.json()
    assert body["ok"] is False
    assert "image_url" in body["error"]
    assert await count_jobs() == 0


async def test_create_job_requires_type(app_client: AsyncClient, count_jobs) -> None:
    resp = await app_client.post("/create-render-job", json={"image_url": COVER_URL})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required field: type"
    assert await count_jobs() == 0


async def test_create_job_with_malformed_body(app_client: AsyncClient) -> None:
    resp = await app_client.post("/create-render-job", json={
        "type": "album_gif",
        "image_url": COVER_URL,
        "priority": "urgent",
    })
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


async def test_admin_enqueue_requires_admin_key(app_client: AsyncClient, admin_headers, count_jobs) -> None:
    body = {"type": "album_gif", "payload": {"album_cover_url": COVER_URL}, "priority": 1}

    denied = await app_client.post("/enqueue_render_job", json=body)
    assert denied.status_code == 401
    assert await count_jobs() == 0

    wrong = await app_client.post("/enqueue_render_job", json=body, headers={"X-ADMIN-KEY": "nope"})
    assert wrong.status_code == 401

    accepted = await app_client.post("/enqueue_render_job", json=body, headers=admin_headers)
    assert accepted.status_code == 201
    assert accepted.json()["ok"] is True
    assert await count_jobs() == 1
