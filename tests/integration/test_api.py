import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_create_and_redirect(client: AsyncClient, alice):
    response = await client.post("/v1/links", json={"target_url": "https://example.com/a/b?c=1"}, headers=alice)
    assert response.status_code == 201
    data = response.json()
    assert len(data["code"]) == 7
    assert data["short_url"] == f"http://sho.rt/{data['code']}"
    assert data["target_url"] == "https://example.com/a/b?c=1"
    assert data["expires_at"] is None

    response = await client.get(f"/{data['code']}")
    assert response.status_code == 307
    assert response.headers["location"] == "https://example.com/a/b?c=1"


@pytest.mark.asyncio
async def test_create_requires_authentication(client: AsyncClient):
    payload = {"target_url": "https://example.com"}

    response = await client.post("/v1/links", json=payload)
    assert response.status_code == 401

    response = await client.post("/v1/links", json=payload, headers={"Authorization": "Bearer forged"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


@pytest.mark.asyncio
async def test_create_invalid_url(client: AsyncClient, alice):
    response = await client.post("/v1/links", json={"target_url": "not-a-url"}, headers=alice)
    assert response.status_code == 400
    assert "absolute" in response.json()["detail"]


@pytest.mark.asyncio
async def test_create_with_custom_code(client: AsyncClient, alice, bob):
    payload = {"target_url": "https://www.example.com", "code": "pytest-alias"}

    response = await client.post("/v1/links", json=payload, headers=alice)
    assert response.status_code == 201
    assert response.json()["code"] == "pytest-alias"

    response = await client.post("/v1/links", json=payload, headers=bob)
    assert response.status_code == 409

    response = await client.post("/v1/links", json={"target_url": "https://x.com", "code": "a!"}, headers=alice)
    assert response.status_code == 400
    assert "Code must be" in response.json()["detail"]


@pytest.mark.asyncio
async def test_create_with_ttl(client: AsyncClient, alice):
    response = await client.post(
        "/v1/links", json={"target_url": "https://example.com", "ttl_seconds": 60}, headers=alice
    )
    assert response.status_code == 201
    assert response.json()["expires_at"] is not None

    response = await client.post(
        "/v1/links", json={"target_url": "https://example.com", "ttl_seconds": 0}, headers=alice
    )
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl_seconds", [10**11, 10**12])
async def test_create_with_out_of_range_ttl(client: AsyncClient, alice, ttl_seconds):
    response = await client.post(
        "/v1/links", json={"target_url": "https://example.com", "ttl_seconds": ttl_seconds}, headers=alice
    )
    assert response.status_code == 400
    assert "ttl_seconds" in response.json()["detail"]


@pytest.mark.asyncio
async def test_create_with_overlong_target(client: AsyncClient, alice):
    response = await client.post(
        "/v1/links", json={"target_url": "https://example.com/" + "a" * 2100}, headers=alice
    )
    assert response.status_code == 400
    assert "too long" in response.json()["detail"]


@pytest.mark.asyncio
async def test_redirect_not_found(client: AsyncClient):
    response = await client.get("/nonexistent")
    assert response.status_code == 404
    assert response.json() == {"detail": "Link not found"}


@pytest.mark.asyncio
async def test_delete_then_redirect_is_gone(client: AsyncClient, alice, bob):
    await client.post("/v1/links", json={"target_url": "https://example.com", "code": "short-lived"}, headers=alice)

    response = await client.delete("/v1/links/short-lived", headers=bob)
    assert response.status_code == 404

    response = await client.delete("/v1/links/short-lived", headers=alice)
    assert response.status_code == 200
    assert response.json()["expires_at"] is not None

    response = await client.get("/short-lived")
    assert response.status_code == 410

    # Metadata survives the soft delete
    response = await client.get("/v1/links/short-lived")
    assert response.status_code == 200
    assert response.json()["target_url"] == "https://example.com"


@pytest.mark.asyncio
async def test_get_link_metadata(client: AsyncClient, alice):
    await client.post("/v1/links", json={"target_url": "https://example.com/meta", "code": "meta"}, headers=alice)

    response = await client.get("/v1/links/meta")
    assert response.status_code == 200
    assert response.json()["target_url"] == "https://example.com/meta"

    response = await client.get("/v1/links/unknown")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_links(client: AsyncClient, alice, bob):
    for code in ["link-c", "link-a", "link-b"]:
        await client.post("/v1/links", json={"target_url": f"https://example.com/{code}", "code": code}, headers=alice)
    await client.post("/v1/links", json={"target_url": "https://example.com/bob"}, headers=bob)

    response = await client.get("/v1/links", params={"limit": 2}, headers=alice)
    assert response.status_code == 200
    page = response.json()
    assert [link["code"] for link in page["data"]] == ["link-a", "link-b"]
    assert page["last"] == "link-b"

    response = await client.get("/v1/links", params={"after": page["last"]}, headers=alice)
    page = response.json()
    assert [link["code"] for link in page["data"]] == ["link-c"]

    response = await client.get("/v1/links", params={"after": "link-c"}, headers=alice)
    assert response.json() == {"data": [], "last": None}

    response = await client.get("/v1/links")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_idempotency(client: AsyncClient, alice):
    headers = {**alice, "Idempotency-Key": "key-123"}
    payload = {"target_url": "https://v1.com"}

    resp1 = await client.post("/v1/links", json=payload, headers=headers)
    assert resp1.status_code == 201

    resp2 = await client.post("/v1/links", json=payload, headers=headers)
    assert resp2.status_code == 201

    assert resp1.json()["code"] == resp2.json()["code"]
    assert resp1.json()["created_at"] == resp2.json()["created_at"]


@pytest.mark.asyncio
async def test_me(client: AsyncClient, alice):
    response = await client.get("/v1/me", headers=alice)
    assert response.status_code == 200
    assert response.json() == {"email": "alice@example.com"}


@pytest.mark.asyncio
async def test_auth_callback(client: AsyncClient):
    response = await client.post("/v1/auth/callback", json={"authorization_code": "good-code"})
    assert response.status_code == 200
    assert response.json() == {"access_token": "alice-token", "token_type": "Bearer"}

    response = await client.post("/v1/auth/callback", json={"authorization_code": "stolen"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_metrics(client: AsyncClient):
    await client.get("/nonexistent")

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert 'path="/{code}"' in response.text
    assert "redirect_total" in response.text
