"""
Tests for the LLM client: JSON extraction, schema decoding and HTTP handling.
"""

import asyncio
import json

import httpx
import pytest

from monitor_api.core.config import LLMSettings, Settings
from monitor_api.core.exceptions import (
    LLMEmptyResponseError,
    LLMSchemaError,
    LLMTransportError,
    LLMUpstreamError,
)
from monitor_api.schemas.analysis import TaskCategory, UtilizationLevel
from monitor_api.services.llm_client import (
    SYSTEM_PROMPT,
    LLMClient,
    effective_timeout,
    extract_json,
    parse_analysis,
)
from monitor_api.services.llm_config import LLMConfigStore

VALID_ANALYSIS = {
    "summary": "Fine-tuning a 7B model on 8 NPUs",
    "taskType": {"category": "training", "subCategory": "fine-tuning", "inferenceFramework": None},
    "modelInfo": {"modelName": "qwen", "modelSize": "7B", "precision": "bf16", "parallelStrategy": "TP=8"},
    "resourceAssessment": {"npuUtilization": "high", "hbmUtilization": "medium", "description": "busy"},
    "issues": [{"severity": "info", "category": "config", "description": "d", "suggestion": "s"}],
    "suggestions": ["enable overlap"],
}


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_client(tmp_path, handler, **llm):
    config = {"enabled": True, "endpoint": "http://llm.local/v1/", "model": "test-model", "timeout": 10}
    config.update(llm)
    store = LLMConfigStore(Settings(llm=LLMSettings(**config)), tmp_path / "api-server.yaml")
    return LLMClient(store, transport=httpx.MockTransport(handler))


class TestExtractJSON:
    @pytest.mark.parametrize(
        "content, expected",
        [
            ('{"summary":"test"}', '{"summary":"test"}'),
            ('```json\n{"summary":"test"}\n```', '{"summary":"test"}'),
            ('```\n{"summary":"test"}\n```', '{"summary":"test"}'),
            ('```javascript\n{"summary":"test"}\n```', '{"summary":"test"}'),
            ('Here is the result: {"summary":"test"} done', '{"summary":"test"}'),
            ("  no json here  ", "no json here"),
        ],
    )
    def test_strategies(self, content, expected):
        assert extract_json(content) == expected

    def test_json_fence_wins_over_earlier_plain_fence(self):
        content = '```\nnot this\n```\n```json\n{"a": 1}\n```'
        assert extract_json(content) == '{"a": 1}'


class TestParseAnalysis:
    def test_fenced_reply_decodes(self):
        result = parse_analysis("```json\n" + json.dumps(VALID_ANALYSIS) + "\n```")

        assert result.task_type.category is TaskCategory.TRAINING
        assert result.resource_assessment.npu_utilization is UtilizationLevel.HIGH
        assert result.model_info.model_size == "7B"

    def test_model_info_may_be_absent(self):
        payload = {key: value for key, value in VALID_ANALYSIS.items() if key != "modelInfo"}

        assert parse_analysis(json.dumps(payload)).model_info is None

    @pytest.mark.parametrize("missing", ["summary", "resourceAssessment", "issues", "suggestions"])
    def test_missing_required_field(self, missing):
        payload = {key: value for key, value in VALID_ANALYSIS.items() if key != missing}

        with pytest.raises(LLMSchemaError):
            parse_analysis(json.dumps(payload))

    def test_invalid_enum_value(self):
        payload = dict(VALID_ANALYSIS, taskType={"category": "gaming"})

        with pytest.raises(LLMSchemaError):
            parse_analysis(json.dumps(payload))

    def test_raw_prefix_is_bounded(self):
        content = "x" * 2000

        with pytest.raises(LLMSchemaError) as exc_info:
            parse_analysis(content)

        assert exc_info.value.raw_prefix == "x" * 500
        assert exc_info.value.message.startswith("parse JSON: ")


class TestChat:
    async def test_request_shape(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("hi"))

        client = make_client(tmp_path, handler, api_key="sk-secret")

        assert await client.chat("system", "user") == "hi"
        assert seen["url"] == "http://llm.local/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-secret"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["temperature"] == 0.3
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]
        await client.close()

    async def test_no_authorization_without_key(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=completion("hi"))

        client = make_client(tmp_path, handler)
        await client.chat("system", "user")

        assert seen["auth"] is None
        await client.close()

    async def test_non_200_is_upstream_error(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(503, text="overloaded"))

        with pytest.raises(LLMUpstreamError) as exc_info:
            await client.chat("system", "user")

        assert exc_info.value.upstream_status == 503
        assert "overloaded" in exc_info.value.message

    async def test_empty_choices(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(LLMEmptyResponseError):
            await client.chat("system", "user")

    @pytest.mark.parametrize(
        "body",
        [
            {"choices": ["x"]},
            {"choices": [{"message": "text"}]},
            {"choices": {"0": {"message": {"content": "hi"}}}},
            {"choices": [{"message": {"content": None}}]},
            ["not", "an", "object"],
        ],
    )
    async def test_malformed_reply_is_empty_response(self, tmp_path, body):
        client = make_client(tmp_path, lambda request: httpx.Response(200, json=body))

        with pytest.raises(LLMEmptyResponseError):
            await client.chat("system", "user")

    async def test_connection_failure_is_transport_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(tmp_path, handler)

        with pytest.raises(LLMTransportError):
            await client.chat("system", "user")

    async def test_analyze_uses_fixed_system_prompt(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request):
            seen["messages"] = json.loads(request.content)["messages"]
            return httpx.Response(200, json=completion("```json\n" + json.dumps(VALID_ANALYSIS) + "\n```"))

        client = make_client(tmp_path, handler)
        result = await client.analyze("## Job Basic Information")

        assert result.summary == VALID_ANALYSIS["summary"]
        assert seen["messages"][0]["content"] == SYSTEM_PROMPT

    async def test_config_change_drops_http_client(self, tmp_path):
        client = make_client(tmp_path, lambda request: httpx.Response(200, json=completion("ok")))
        await client.chat("system", "user")
        assert client._client is not None

        await client.on_config_change(LLMSettings(timeout=5))

        assert client._client is None

    async def test_config_change_waits_for_in_flight_request(self, tmp_path):
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(request):
            started.set()
            await release.wait()
            return httpx.Response(200, json=completion("ok"))

        client = make_client(tmp_path, handler)
        pending = asyncio.create_task(client.chat("system", "user"))
        await started.wait()
        old = client._client

        await client.on_config_change(LLMSettings(timeout=5))

        assert client._client is None
        assert not old.is_closed

        release.set()
        assert await pending == "ok"
        assert old.is_closed


@pytest.mark.parametrize("timeout, expected", [(0, 60), (-1, 60), (1, 1), (30, 30)])
def test_effective_timeout(timeout, expected):
    assert effective_timeout(LLMSettings(timeout=timeout)) == expected
