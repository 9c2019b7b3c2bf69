# tests/test_tags.py - Tags and their tasks
import pytest
from httpx import AsyncClient

from tests.conftest import get_auth_headers


@pytest.mark.asyncio
class TestTags:
    async def test_default_color(self, client: AsyncClient, user_a):
        res = await client.post("/api/tags", json={"name": "Someday"}, headers=get_auth_headers(user_a))
        assert res.status_code == 201
        assert res.json()["data"]["color"] == "#CCCCCC"

    @pytest.mark.parametrize("color", ["#fff", "#3B82F6"])
    async def test_valid_colors(self, client: AsyncClient, user_a, color):
        res = await client.post("/api/tags", json={"name": "Work", "color": color}, headers=get_auth_headers(user_a))
        assert res.status_code == 201
        assert res.json()["data"]["color"] == color

    @pytest.mark.parametrize("color", ["red", "#12345", "3B82F6", "#GGGGGG"])
    async def test_invalid_colors(self, client: AsyncClient, user_a, color):
        res = await client.post("/api/tags", json={"name": "Work", "color": color}, headers=get_auth_headers(user_a))
        assert res.status_code == 400
        assert res.json()["error"]["details"][0]["field"] == "color"

    async def test_list_sorted_by_name(self, client: AsyncClient, user_a):
        headers = get_auth_headers(user_a)
        for name in ("Work", "Errand", "Personal"):
            await client.post("/api/tags", json={"name": name}, headers=headers)
        res = await client.get("/api/tags", headers=headers)
        assert [t["name"] for t in res.json()["data"]] == ["Errand", "Personal", "Work"]

    async def test_update_color(self, client: AsyncClient, user_a):
        headers = get_auth_headers(user_a)
        tag = (await client.post("/api/tags", json={"name": "Work"}, headers=headers)).json()["data"]
        res = await client.patch(f"/api/tags/{tag['id']}", json={"color": "#000000"}, headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["color"] == "#000000"
        bad = await client.patch(f"/api/tags/{tag['id']}", json={"color": "black"}, headers=headers)
        assert bad.status_code == 400

    async def test_tag_tasks_and_delete_unlinks(self, client: AsyncClient, user_a):
        headers = get_auth_headers(user_a)
        tag = (await client.post("/api/tags", json={"name": "Work"}, headers=headers)).json()["data"]
        task = (await client.post("/api/tasks", json={"title": "Report"}, headers=headers)).json()["data"]
        await client.post(f"/api/tasks/{task['id']}/tags/{tag['id']}", headers=headers)

        res = await client.get(f"/api/tags/{tag['id']}/tasks", headers=headers)
        assert [t["id"] for t in res.json()["data"]] == [task["id"]]

        assert (await client.delete(f"/api/tags/{tag['id']}", headers=headers)).status_code == 204
        remaining = await client.get(f"/api/tasks/{task['id']}/tags", headers=headers)
        assert remaining.json()["data"] == []
        assert (await client.get(f"/api/tasks/{task['id']}", headers=headers)).status_code == 200

    async def test_non_owner_gets_not_found(self, client: AsyncClient, user_a, user_b):
        tag = (await client.post("/api/tags", json={"name": "Work"}, headers=get_auth_headers(user_a))).json()["data"]
        headers = get_auth_headers(user_b)
        assert (await client.get(f"/api/tags/{tag['id']}", headers=headers)).status_code == 404
        assert (await client.get(f"/api/tags/{tag['id']}/tasks", headers=headers)).status_code == 404
        assert (await client.patch(f"/api/tags/{tag['id']}", json={"name": "x"}, headers=headers)).status_code == 404
