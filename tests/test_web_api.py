import pytest
from fastapi.testclient import TestClient

import config
import web_api
from models.session import AvailabilityStatus


class FakeGateway:
    def __init__(self, available=True):
        self.available = available
        self.sessions = set()

    async def check_availability(self, force=False):
        return AvailabilityStatus(
            available=self.available,
            checked_at=1.0,
            version="0.5.1" if self.available else None,
            reason=None if self.available else "Connection timeout",
        )

    def register_session(self, token):
        self.sessions.add(token)

    def unregister_session(self, token):
        self.sessions.discard(token)

    async def enhance_chunk(self, chunk, **kwargs):
        return chunk.upper()

    async def request_enhancement(self, prompt, cache_key=None):
        return prompt.upper()

    def terminate_all(self):
        return {"status": "terminated", "count": 0}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(autouse=True)
def isolate_web_api_state(monkeypatch, gateway):
    web_api.JOBS.clear()
    monkeypatch.setattr(web_api, "_gateway", gateway)
    monkeypatch.setattr(web_api, "_router", None)
    yield
    web_api.JOBS.clear()


@pytest.fixture
def client():
    return TestClient(web_api.app)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["ollama"]["available"] is True


def test_message_model_request(client):
    response = client.post("/api/message", json={"action": "modelRequest", "data": "hello"})
    assert response.status_code == 200
    assert response.json() == {"enhancedText": "HELLO"}


def test_message_terminate_all(client):
    response = client.post("/api/message", json={"action": "terminateAll"})
    assert response.json() == {"status": "terminated", "count": 0}


def test_message_unknown_action(client):
    response = client.post("/api/message", json={"action": "reload"})
    assert response.json() == {"error": "Unknown action: reload"}


@pytest.mark.parametrize("paragraphs", [[], ["   ", ""], ["x"] * (web_api.MAX_PARAGRAPHS + 1)])
def test_enhance_rejects_bad_input(client, paragraphs):
    response = client.post("/api/enhance", json={"paragraphs": paragraphs})
    assert response.status_code == 400


def test_enhance_creates_job(client, monkeypatch):
    started = []

    async def fake_run_job(job, req, novel_id):
        started.append(novel_id)
        job.status = "success"

    monkeypatch.setattr(web_api, "_run_job", fake_run_job)
    response = client.post(
        "/api/enhance",
        json={
            "paragraphs": ["Lin Feng said hello."],
            "url": "https://www.novelsite.com/novel/martial-peak/chapter-12",
            "title": "Martial Peak - Chapter 12 - NovelSite",
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["novel_id"] == "novelsite_com_martial_peak"
    assert data["job_id"] in web_api.JOBS

    job = client.get(f"/api/jobs/{data['job_id']}")
    assert job.status_code == 200
    assert job.json()["status"] in ("pending", "success")


def test_enhance_default_novel_id(client, monkeypatch):
    async def fake_run_job(job, req, novel_id):
        return None

    monkeypatch.setattr(web_api, "_run_job", fake_run_job)
    response = client.post("/api/enhance", json={"paragraphs": ["text"]})
    assert response.json()["novel_id"] == "default"


def test_get_missing_job(client):
    assert client.get("/api/jobs/missing").status_code == 404


@pytest.mark.asyncio
async def test_run_job_success():
    job = web_api.Job(id="j1")
    req = web_api.EnhanceRequest(paragraphs=["Lin Feng said hello.", "Mei Ling nodded."])

    await web_api._run_job(job, req, "n1")

    assert job.status == "success"
    assert job.paragraphs == ["LIN FENG SAID HELLO.", "MEI LING NODDED."]
    assert job.progress == 1.0
    assert job.result["state"] == "complete"
    assert job.logs[-1] == "会话结束: complete"


@pytest.mark.asyncio
async def test_run_job_model_unavailable(monkeypatch):
    monkeypatch.setenv("MAX_RETRY", "1")
    config.reset_config()
    monkeypatch.setattr(web_api, "_gateway", FakeGateway(available=False))

    job = web_api.Job(id="j2")
    await web_api._run_job(job, web_api.EnhanceRequest(paragraphs=["text"]), "n1")

    assert job.status == "error"
    assert "Ollama is not available" in job.message
    assert job.paragraphs == ["text"]


def test_job_logs_bounded():
    job = web_api.Job(id="j3")
    for i in range(250):
        job.log(f"line {i}")
    assert len(job.logs) == 200
    assert job.logs[0] == "line 50"
