"""
Tests for job prompt rendering.
"""

import json

from conftest import make_job
from monitor_api.models import NPUMetric
from monitor_api.models.job import Code, Parameter
from monitor_api.services.job_service import JobDetail, NPUCard
from monitor_api.services.prompt_builder import (
    CONFIG_FILE_LIMIT,
    SCRIPT_LIMIT,
    TRUNCATION_MARKER,
    PromptBuilder,
    format_duration,
    render_env_vars,
    truncate,
)


def detail_for(job, cards=(), related=()):
    return JobDetail(job=job, npu_cards=list(cards), related_jobs=list(related))


class TestTruncate:
    def test_short_text_untouched(self):
        assert truncate("hello", 10) == "hello"

    def test_long_text_clipped_with_marker(self):
        assert truncate("abcdef", 3) == "abc" + TRUNCATION_MARKER

    def test_counts_characters_not_bytes(self):
        text = "模型" * 3
        assert truncate(text, 6) == text


class TestEnvVars:
    def test_secrets_are_redacted_in_input_order(self):
        raw = json.dumps({"PATH": "/usr/bin", "DB_PASSWORD": "hunter2", "HCCL_IF_IP": "10.0.0.1", "api_key": "x"})

        rendered = render_env_vars(raw)

        assert rendered.splitlines() == [
            "- PATH=/usr/bin",
            "- DB_PASSWORD=***",
            "- HCCL_IF_IP=10.0.0.1",
            "- api_key=***",
        ]
        assert "hunter2" not in rendered

    def test_secret_key_patterns_are_redacted(self):
        rendered = render_env_vars('{"RANK": "0", "HF_TOKEN": "abc", "AUTH_MODE": "x"}')

        assert rendered.splitlines() == ["- RANK=0", "- HF_TOKEN=***", "- AUTH_MODE=***"]

    def test_undecodable_input_renders_nothing(self):
        assert render_env_vars("not json") == ""
        assert render_env_vars("[1, 2]") == ""


class TestPromptBuilder:
    def test_sections_appear_in_order(self):
        job = make_job("j1", pid=10, start_time=1_700_000_000, job_name="train", status="running", process_name="python")
        metric = NPUMetric(npu_id=0, aicore_usage_percent=87.5, hbm_usage_mb=30000, hbm_total_mb=65536, power_w=310.0, temp_c=55.0)
        card = NPUCard(npu_id=0, memory_usage_mb=28000.0, metrics=[metric])
        worker = make_job("j2", pid=11, ppid=10, process_name="python")
        parameter = Parameter(
            job_id="j1",
            parameter_data='{"lr": 0.001}',
            config_file_path="/cfg/train.yaml",
            config_file_content="epochs: 3",
            env_vars='{"RANK": "0"}',
        )
        code = Code(job_id="j1", script_path="/src/train.py", script_content="print(1)", sh_script_content="python train.py")

        prompt = PromptBuilder(now=1_700_000_100).build(detail_for(job, [card], [worker]), [parameter], [code])

        headers = [
            "## Job Basic Information",
            "## NPU Cards (1 total)",
            "## Related Processes (1 total)",
            "## Parameters",
            "## Config File",
            "## Environment Variables",
            "## Entry Script",
            "## Shell Launch Script",
        ]
        positions = [prompt.index(header) for header in headers]
        assert positions == sorted(positions)
        assert "AICore usage 87.5%" in prompt
        assert "HBM 30000/65536 MB" in prompt
        assert "Path: /cfg/train.yaml" in prompt
        assert "```python\nprint(1)\n```" in prompt
        assert "```bash\npython train.py\n```" in prompt
        assert "Elapsed: 1m 40s (still running)" in prompt

    def test_missing_data_omits_sections(self):
        prompt = PromptBuilder(now=0).build(detail_for(make_job("j1")))

        assert "## Job Basic Information" in prompt
        assert "## NPU Cards (0 total)" in prompt
        assert "## Related Processes" not in prompt
        assert "## Parameters" not in prompt
        assert "## Entry Script" not in prompt

    def test_only_newest_artifacts_are_used(self):
        newest = Code(job_id="j1", script_content="NEWEST")
        older = Code(job_id="j1", script_content="OLDER")

        prompt = PromptBuilder(now=0).build(detail_for(make_job("j1")), code=[newest, older])

        assert "NEWEST" in prompt
        assert "OLDER" not in prompt

    def test_large_artifacts_are_truncated(self):
        parameter = Parameter(job_id="j1", config_file_content="x" * (CONFIG_FILE_LIMIT + 50))
        code = Code(job_id="j1", script_content="y" * (SCRIPT_LIMIT + 1))

        prompt = PromptBuilder(now=0).build(detail_for(make_job("j1")), [parameter], [code])

        assert "x" * (CONFIG_FILE_LIMIT + 1) not in prompt
        assert "y" * (SCRIPT_LIMIT + 1) not in prompt
        assert prompt.count(TRUNCATION_MARKER.strip()) == 2

    def test_same_input_same_prompt(self):
        job = make_job("j1", pid=1, start_time=100, end_time=4000)
        builder = PromptBuilder(now=5000)

        assert builder.build(detail_for(job)) == builder.build(detail_for(job))

    def test_finished_job_reports_duration(self):
        job = make_job("j1", pid=1, start_time=0, end_time=3725)

        prompt = PromptBuilder().build(detail_for(job))

        assert "Duration: 1h 2m 5s" in prompt


def test_format_duration_clamps_negative():
    assert format_duration(-5) == "0s"
