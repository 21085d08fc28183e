"""worker 接口测试 -- 心跳即注册 + worker 列表"""

from httpx import AsyncClient


class TestHeartbeat:
    async def test_heartbeat_registers_worker(self, client: AsyncClient):
        resp = await client.post(
            "/api/workers/w1/heartbeat",
            json={"worker_types": ["coder", "seo"], "meta": {"host": "box-1"}},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["ok"] is True
        worker = data["worker"]
        assert worker["worker_id"] == "w1"
        assert worker["status"] == "online"
        assert worker["worker_types"] == ["coder", "seo"]
        assert worker["meta"] == '{"host": "box-1"}'

    async def test_heartbeat_without_body(self, client: AsyncClient):
        resp = await client.post("/api/workers/w-bare/heartbeat")
        assert resp.status_code == 200
        assert resp.json()["worker"]["worker_types"] == []

    async def test_repeat_heartbeat_single_row(self, client: AsyncClient):
        await client.post("/api/workers/w1/heartbeat", json={"worker_types": ["coder"]})
        await client.post(
            "/api/workers/w1/heartbeat",
            json={"worker_types": ["researcher"], "status": "draining"},
        )

        workers = (await client.get("/api/workers")).json()["workers"]
        assert len(workers) == 1
        assert workers[0]["worker_types"] == ["researcher"]
        assert workers[0]["status"] == "draining"

    async def test_invalid_worker_type(self, client: AsyncClient):
        resp = await client.post(
            "/api/workers/w1/heartbeat", json={"worker_types": ["astronaut"]}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

        assert (await client.get("/api/workers")).json()["workers"] == []


class TestWorkerList:
    async def test_current_task_and_counts(self, client: AsyncClient, registered_workers):
        task_ids = []
        for title in ("旧任务", "新任务"):
            resp = await client.post("/api/tasks", json={"title": title})
            task_ids.append(resp.json()["task"]["task_id"])
            await client.post(
                f"/api/tasks/{task_ids[-1]}/claim", json={"worker_id": "w1"}
            )

        resp = await client.get("/api/workers")
        assert resp.status_code == 200
        workers = {w["worker_id"]: w for w in resp.json()["workers"]}
        assert set(workers) == {"w1", "w2"}

        w1 = workers["w1"]
        assert w1["active_claim_count"] == 2
        assert w1["current_task_id"] == task_ids[1]
        assert w1["current_task_title"] == "新任务"
        assert w1["is_stale"] is False

        assert workers["w2"]["current_task_id"] is None

    async def test_stale_threshold_from_env(self, client: AsyncClient, monkeypatch):
        await client.post("/api/workers/w-old/heartbeat", json={})
        monkeypatch.setenv("MISSION_CONTROL_STALE_WORKER_SECONDS", "-1")

        workers = (await client.get("/api/workers")).json()["workers"]
        assert workers[0]["is_stale"] is True
