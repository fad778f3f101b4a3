"""Tests for the JSON error envelope."""

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from otto_api.core.errors import register_exception_handlers


def _app_with_failing_route() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> dict:
        raise RuntimeError("database unavailable")

    @app.get("/items/{item_id}")
    async def item(item_id: int) -> dict:
        return {"id": item_id}

    return app


class TestErrorEnvelope:
    async def test_unknown_path_is_not_found(self, client: AsyncClient) -> None:
        res = await client.get("/nope")
        assert res.status_code == 404
        assert res.json() == {"error": "Not Found"}

    async def test_wrong_method_is_reported_as_not_found(self, client: AsyncClient) -> None:
        res = await client.delete("/webhooks/github")
        assert res.status_code == 404
        assert res.json() == {"error": "Not Found"}

    async def test_http_exception_detail_becomes_error(self, unauthed_client: AsyncClient) -> None:
        res = await unauthed_client.get("/projects")
        assert res.status_code == 401
        assert res.json() == {"error": "Login required"}

    async def test_unhandled_exception_is_500_with_message(self) -> None:
        transport = ASGITransport(app=_app_with_failing_route(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            res = await ac.get("/boom")
        assert res.status_code == 500
        assert res.json() == {"error": "database unavailable"}

    async def test_validation_error_shape(self) -> None:
        transport = ASGITransport(app=_app_with_failing_route())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            res = await ac.get("/items/not-a-number")
        assert res.status_code == 422
        body = res.json()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["loc"] == ["path", "item_id"]
