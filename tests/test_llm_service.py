"""
测试 Ollama 模型网关
"""

import asyncio
import inspect
import json

import httpx
import pytest

from config import OllamaConfig
from exceptions import (
    APIError,
    InvalidContentError,
    RequestTerminatedError,
    RequestTimeoutError,
    ResponseParseError,
)
from services.cancellation import CancellationToken
from services.llm_service import (
    ModelGateway,
    ResultCache,
    extract_json_object,
    normalize_timeout,
    parse_ollama_response,
)
from services.retry_policy import RetryPolicy

ENDPOINT = "http://ollama.test"


async def no_sleep(_seconds):
    return None


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class OllamaStub:
    """记录请求的假 Ollama 服务"""

    def __init__(self, generate=None, version_status=200, delay=0.0):
        self.calls = []
        self.payloads = []
        self.generate = generate or (lambda payload: httpx.Response(200, json={"response": "ok"}))
        self.version_status = version_status
        self.delay = delay

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if self.delay:
            await asyncio.sleep(self.delay)
        if request.url.path == "/api/version":
            return httpx.Response(self.version_status, json={"version": "0.5.1"})
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": "qwen3:8b"}]})
        payload = json.loads(request.content)
        self.payloads.append(payload)
        response = self.generate(payload)
        if inspect.isawaitable(response):
            response = await response
        return response

    def count(self, path):
        return self.calls.count(path)


def make_gateway(stub, clock=None, **config_overrides):
    config = OllamaConfig(endpoint=ENDPOINT, **config_overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return ModelGateway(
        config=config,
        client=client,
        clock=clock or FakeClock(),
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0, sleep=no_sleep),
    )


class TestParseResponse:
    def test_single_object(self):
        assert parse_ollama_response('{"response": "Hello", "done": true}') == "Hello"

    def test_line_delimited(self):
        body = '{"response": "Hel"}\n{"response": "lo"}\nnot json\n{"done": true}'
        assert parse_ollama_response(body) == "Hello"

    def test_choices_format(self):
        assert parse_ollama_response('{"choices": [{"text": "Hi"}]}') == "Hi"

    @pytest.mark.parametrize("body", ["", "   ", '{"done": true}', '{"response": "  "}'])
    def test_empty_raises(self, body):
        with pytest.raises(ResponseParseError):
            parse_ollama_response(body)


def test_normalize_timeout():
    assert normalize_timeout(None) == 60
    assert normalize_timeout(0) == 60
    assert normalize_timeout(300) == 60
    assert normalize_timeout(120) == 120


class TestExtractJsonObject:
    def test_embedded_object(self):
        assert extract_json_object('Result: {"style": "romance"} done') == {"style": "romance"}

    def test_missing_object(self):
        with pytest.raises(ResponseParseError):
            extract_json_object("no json here")


class TestAvailability:
    @pytest.mark.asyncio
    async def test_cached_within_ttl(self):
        stub = OllamaStub()
        clock = FakeClock()
        gateway = make_gateway(stub, clock)

        first = await gateway.check_availability()
        clock.now = 10
        second = await gateway.check_availability()

        assert first.available and second.available
        assert first.version == "0.5.1"
        assert first.models == ["qwen3:8b"]
        assert stub.count("/api/version") == 1

        clock.now = 31
        await gateway.check_availability()
        assert stub.count("/api/version") == 2

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self):
        stub = OllamaStub()
        gateway = make_gateway(stub)
        await gateway.check_availability()
        await gateway.check_availability(force=True)
        assert stub.count("/api/version") == 2

    @pytest.mark.asyncio
    async def test_concurrent_checks_share_request(self):
        stub = OllamaStub(delay=0.02)
        gateway = make_gateway(stub)
        results = await asyncio.gather(
            gateway.check_availability(), gateway.check_availability()
        )
        assert all(status.available for status in results)
        assert stub.count("/api/version") == 1

    @pytest.mark.asyncio
    async def test_waiting_caller_times_out(self):
        stub = OllamaStub(delay=0.3)
        gateway = make_gateway(stub, availability_wait_timeout=0.05)
        first, second = await asyncio.gather(
            gateway.check_availability(), gateway.check_availability()
        )
        assert first.available
        assert not second.available
        assert second.reason == "Check timeout"

    @pytest.mark.asyncio
    async def test_http_error(self):
        gateway = make_gateway(OllamaStub(version_status=500))
        status = await gateway.check_availability()
        assert not status.available
        assert status.reason == "HTTP error: 500"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = make_gateway(refuse)
        status = await gateway.check_availability()
        assert not status.available
        assert status.reason.startswith("Connection error:")

    @pytest.mark.asyncio
    async def test_connection_timeout(self):
        def slow(request):
            raise httpx.ReadTimeout("slow", request=request)

        status = await make_gateway(slow).check_availability()
        assert status.reason == "Connection timeout"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_payload(self):
        stub = OllamaStub()
        gateway = make_gateway(stub, max_prompt_chars=10)
        assert await gateway.generate("x" * 20) == "ok"

        payload = stub.payloads[0]
        assert payload["prompt"] == "x" * 10
        assert payload["stream"] is False
        assert payload["model"] == gateway.config.model
        assert set(payload) == {"model", "prompt", "max_tokens", "temperature", "top_p", "stream"}
        assert len(gateway.registry) == 0

    @pytest.mark.asyncio
    async def test_empty_prompt(self):
        with pytest.raises(InvalidContentError):
            await make_gateway(OllamaStub()).generate("")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(404, False), (503, True)])
    async def test_http_status(self, status, retryable):
        stub = OllamaStub(generate=lambda payload: httpx.Response(status))
        with pytest.raises(APIError, match=f"Ollama HTTP error: {status}") as exc_info:
            await make_gateway(stub).generate("prompt")
        assert exc_info.value.is_retryable is retryable

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def hang(payload):
            await asyncio.sleep(5)

        stub = OllamaStub(generate=hang)
        gateway = make_gateway(stub)
        with pytest.raises(RequestTimeoutError, match="timed out after 0.05 seconds"):
            await gateway.generate("prompt", timeout=0.05)
        assert len(gateway.registry) == 0

    @pytest.mark.asyncio
    async def test_terminate_all_aborts_in_flight(self):
        stub = OllamaStub(delay=5)
        gateway = make_gateway(stub)
        task = asyncio.create_task(gateway.generate("prompt", request_id="req-1"))
        await asyncio.sleep(0.01)

        assert "req-1" in gateway.registry
        assert gateway.terminate_all() == {"status": "terminated", "count": 1}
        with pytest.raises(RequestTerminatedError):
            await task
        assert len(gateway.registry) == 0

    @pytest.mark.asyncio
    async def test_cancelled_parent_short_circuits(self):
        stub = OllamaStub()
        gateway = make_gateway(stub)
        session = CancellationToken()
        session.cancel()
        with pytest.raises(RequestTerminatedError):
            await gateway.generate("prompt", parent_token=session)
        assert stub.payloads == []

    @pytest.mark.asyncio
    async def test_terminate_all_cancels_sessions(self):
        gateway = make_gateway(OllamaStub())
        session = CancellationToken()
        gateway.register_session(session)
        assert gateway.terminate_all()["count"] == 0
        assert session.user_terminated


class TestEnhancement:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_request(self):
        stub = OllamaStub()
        gateway = make_gateway(stub)
        key = ResultCache.make_key("chunk", "ctx")
        assert await gateway.request_enhancement("prompt", cache_key=key) == "ok"
        assert await gateway.request_enhancement("prompt", cache_key=key) == "ok"
        assert len(stub.payloads) == 1
        assert key in gateway.cache

    @pytest.mark.asyncio
    async def test_cache_cleared_when_last_session_ends(self):
        gateway = make_gateway(OllamaStub())
        first, second = CancellationToken(), CancellationToken()
        gateway.register_session(first)
        gateway.register_session(second)
        await gateway.request_enhancement("prompt", cache_key="k1")

        gateway.unregister_session(first)
        assert "k1" in gateway.cache
        gateway.unregister_session(second)
        assert len(gateway.cache) == 0


    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = [httpx.Response(503), httpx.Response(200, json={"response": "fine"})]
        stub = OllamaStub(generate=lambda payload: responses.pop(0))
        gateway = make_gateway(stub)
        assert await gateway.request_enhancement("prompt") == "fine"
        assert len(stub.payloads) == 2

    @pytest.mark.asyncio
    async def test_enhance_chunk_cleans_output(self):
        stub = OllamaStub(
            generate=lambda payload: httpx.Response(
                200, json={"response": "<think>plan</think>\nHe said, \"Go.\""}
            )
        )
        gateway = make_gateway(stub)
        result = await gateway.enhance_chunk("he said go", context="ctx")
        assert result == 'He said, "Go."'
        assert "he said go" in stub.payloads[0]["prompt"]

    @pytest.mark.asyncio
    async def test_enhance_chunk_rejects_empty(self):
        with pytest.raises(InvalidContentError):
            await make_gateway(OllamaStub()).enhance_chunk("   ")

    @pytest.mark.asyncio
    async def test_analyze_gender(self):
        body = '{"gender": "Female", "confidence": 0.8, "evidence": ["she smiled"]}'
        stub = OllamaStub(generate=lambda payload: httpx.Response(200, json={"response": body}))
        result = await make_gateway(stub).analyze_gender("Li Hua", "Li Hua smiled. She waved.")
        assert result.gender == "female"
        assert result.confidence == 0.8
        assert result.evidence == ["she smiled"]

    @pytest.mark.asyncio
    async def test_analyze_style(self):
        body = '{"style": "romance", "tone": "tender", "confidence": 0.7}'
        stub = OllamaStub(generate=lambda payload: httpx.Response(200, json={"response": body}))
        style = await make_gateway(stub).analyze_style("They kissed.")
        assert style.style == "romance"
        assert style.tone == "tender"
        assert style.analyzed


class TestResultCache:
    def test_evicts_least_recently_used(self):
        cache = ResultCache(max_entries=2)
        cache.put("a", "A")
        cache.put("b", "B")
        assert cache.get("a") == "A"
        cache.put("c", "C")

        assert len(cache) == 2
        assert "b" not in cache
        assert cache.get("a") == "A"
        assert cache.get("c") == "C"

    def test_overwrite_does_not_grow(self):
        cache = ResultCache(max_entries=2)
        for _ in range(5):
            cache.put("a", "A")
        assert len(cache) == 1
