"""HTTP adapter tests against the in-process ASGI app."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
async def client() -> AsyncIterator[httpx.AsyncClient]:
    import server  # noqa: PLC0415

    async with server.lifespan(server.app):
        transport = httpx.ASGITransport(app=server.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            yield http


class TestLifespan:
    async def test_writes_behind_and_drains_on_shutdown(self) -> None:
        import server  # noqa: PLC0415

        async with server.lifespan(server.app):
            context = server.app.state.context
            assert context.persistence.write_behind
            transport = httpx.ASGITransport(app=server.app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                started = await http.post("/sessions", json={"assessmentTypeId": "phq-9"})
                session_id = started.json()["id"]

        assert not context.persistence.write_behind
        assert [s.id for s in context.persistence.load_sessions()] == [session_id]


class TestCatalogEndpoints:
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "healthy"
        assert payload["assessmentTypes"] == 3
        assert payload["pendingTimers"] == 1
        assert payload["catalogVersion"] == "2024.3"

    async def test_list_assessments(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/assessments", params={"language": "zh"})

        assert response.status_code == 200
        by_id = {item["id"]: item for item in response.json()}
        assert by_id["phq-9"]["name"] == "PHQ-9 抑郁症评估"
        assert "zh" in by_id["phq-9"]["languages"]

    async def test_get_assessment(self, client: httpx.AsyncClient) -> None:
        response = await client.get(
            "/assessments/phq-9", params={"culturalContext": "east_asian"}
        )

        assert response.status_code == 200
        payload = response.json()
        assert len(payload["questions"]) == 9
        assert "There are no right or wrong answers" in payload["instructions"]
        assert "east_asian" in payload["culturalContexts"]

    async def test_unknown_assessment(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/assessments/bdi-ii")
        assert response.status_code == 404


class TestSessionEndpoints:
    """Session lifecycle over HTTP."""

    async def test_full_flow(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "gad-7"})
        assert started.status_code == 201
        session = started.json()
        session_id = session["id"]
        assert session["status"] == "active"
        assert session["currentQuestion"]["id"] == "gad7-1"

        body: dict = {}
        for n in range(1, 8):
            response = await client.post(
                f"/sessions/{session_id}/answers", json={"value": f"gad7-{n}-2"}
            )
            assert response.status_code == 200, response.text
            body = response.json()

        assert body["completed"]
        result = body["result"]
        assert result["scores"]["gad7-total"]["value"] == 14
        assert result["riskLevel"] == "medium"

        fetched = await client.get(f"/results/{result['id']}")
        assert fetched.status_code == 200
        report = await client.get(f"/results/{result['id']}/report")
        assert report.status_code == 200
        assert report.json()["resourceRecommendations"]

        question = await client.get(f"/sessions/{session_id}/question")
        assert question.json() == {"question": None}

    async def test_duplicate_session(self, client: httpx.AsyncClient) -> None:
        first = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})
        second = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})

        assert second.status_code == 409
        payload = second.json()
        assert payload["code"] == "SESSION_ALREADY_EXISTS"
        assert payload["sessionId"] == first.json()["id"]

    async def test_unknown_type(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/sessions", json={"assessmentTypeId": "bdi-ii"})
        assert response.status_code == 404
        assert response.json()["code"] == "ASSESSMENT_TYPE_NOT_FOUND"

    async def test_invalid_answer(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "stress-scale"})
        session_id = started.json()["id"]

        response = await client.post(f"/sessions/{session_id}/answers", json={"value": 9})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "OUT_OF_RANGE"

    async def test_pause_resume(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})
        session_id = started.json()["id"]

        paused = await client.post(f"/sessions/{session_id}/pause")
        assert paused.json()["status"] == "paused"

        rejected = await client.post(
            f"/sessions/{session_id}/answers", json={"value": "phq9-1-0"}
        )
        assert rejected.status_code == 409

        resumed = await client.post(f"/sessions/{session_id}/resume")
        assert resumed.status_code == 200
        assert resumed.json()["status"] == "active"

    async def test_abandon_then_resume(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})
        session_id = started.json()["id"]

        abandoned = await client.post(f"/sessions/{session_id}/abandon")
        assert abandoned.json()["status"] == "abandoned"

        resumed = await client.post(f"/sessions/{session_id}/resume")
        assert resumed.status_code == 409
        assert resumed.json()["code"] == "SESSION_ALREADY_COMPLETED"

    async def test_progress_and_delete(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})
        session_id = started.json()["id"]
        await client.post(f"/sessions/{session_id}/answers", json={"value": "phq9-1-1"})

        progress = await client.get(f"/sessions/{session_id}/progress")
        assert progress.json()["current"] == 1
        assert progress.json()["total"] == 9

        deleted = await client.delete(f"/sessions/{session_id}")
        assert deleted.status_code == 204
        missing = await client.get(f"/sessions/{session_id}")
        assert missing.status_code == 404

    async def test_unknown_session(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/sessions/session_missing/answers", json={"value": 1})
        assert response.status_code == 404
        assert response.json()["code"] == "SESSION_NOT_FOUND"


class TestDataEndpoints:
    """Export, import, cleanup and integrity maintenance."""

    async def test_export_repair_and_reimport(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/sessions", json={"assessmentTypeId": "phq-9"})
        session_id = started.json()["id"]
        for n in range(1, 10):
            await client.post(f"/sessions/{session_id}/answers", json={"value": f"phq9-{n}-1"})

        exported = await client.get("/data/export")
        document = exported.json()
        assert exported.status_code == 200
        assert (len(document["sessions"]), len(document["results"])) == (1, 1)

        await client.delete(f"/sessions/{session_id}")
        integrity = await client.get("/data/integrity")
        assert integrity.json()["valid"] is False

        repaired = await client.post("/data/integrity/repair?dropOrphanedResults=true")
        assert repaired.json()["resultsRemoved"] == 1
        assert repaired.json()["remaining"] == []

        imported = await client.post("/data/import", content=exported.content)
        assert imported.status_code == 200
        assert imported.json()["sessionsImported"] == 1
        assert imported.json()["resultsImported"] == 1
        assert (await client.get("/data/integrity")).json() == {"valid": True, "issues": []}

    async def test_import_rejects_bad_document(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/data/import", content=b"{")
        assert response.status_code == 400
        assert response.json()["detail"]["errors"] == ["Invalid JSON format"]

    async def test_cleanup(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/data/cleanup?retentionDays=30")
        assert response.status_code == 200
        assert response.json()["sessionsRemoved"] == 0

        invalid = await client.post("/data/cleanup?retentionDays=0")
        assert invalid.status_code == 422
