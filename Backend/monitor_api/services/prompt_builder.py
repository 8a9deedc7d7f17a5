"""
Prompt assembly for job analysis.

Renders one job, the NPU cards its group holds and its captured launch
artifacts into a bounded markdown document. Output depends only on the
inputs (and ``now`` for jobs that are still running), so identical data
always yields an identical prompt.
"""

import json
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from monitor_api.models.job import Code, Job, Parameter
from monitor_api.services.job_service import JobDetail

TRUNCATION_MARKER = "\n... (content truncated)"
REDACTED_VALUE = "***"
SENSITIVE_ENV_MARKERS = ("PASSWORD", "SECRET", "TOKEN", "KEY", "CREDENTIAL", "AUTH")

PARAMETER_LIMIT = 3000
CONFIG_FILE_LIMIT = 3000
SCRIPT_LIMIT = 5000
SHELL_SCRIPT_LIMIT = 3000


def truncate(text: str, limit: int) -> str:
    """Clip ``text`` to ``limit`` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def is_sensitive_env_key(key: str) -> bool:
    upper = key.upper()
    return any(marker in upper for marker in SENSITIVE_ENV_MARKERS)


def _decode_env(raw: str) -> List[Tuple[str, str]]:
    """Decode a JSON env map into ``(key, value)`` pairs in input order."""
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(decoded, dict):
        return []
    return [
        (key, value if isinstance(value, str) else json.dumps(value, ensure_ascii=False))
        for key, value in decoded.items()
    ]


def render_env_vars(raw: str) -> str:
    """Render env vars as ``- K=V`` lines, secrets as ``- K=***``, in input order."""
    lines = []
    for key, value in _decode_env(raw):
        shown = REDACTED_VALUE if is_sensitive_env_key(key) else value
        lines.append(f"- {key}={shown}")
    return "\n".join(lines)


def format_timestamp(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_duration(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class PromptBuilder:
    """Builds the user prompt for one job."""

    def __init__(self, now: Optional[float] = None):
        self._now = now

    def _current_time(self) -> int:
        return int(self._now if self._now is not None else time.time())

    def build(
        self,
        detail: JobDetail,
        parameters: Sequence[Parameter] = (),
        code: Sequence[Code] = (),
    ) -> str:
        """
        Render the prompt.

        Only the newest parameter and code rows are used; callers pass them
        newest first.
        """
        sections = [self._basic_info(detail.job), self._npu_cards(detail)]

        if detail.related_jobs:
            sections.append(self._related_processes(detail.related_jobs))
        if parameters:
            sections.extend(self._parameter_sections(parameters[0]))
        if code:
            sections.extend(self._code_sections(code[0]))

        return "\n\n".join(section for section in sections if section) + "\n"

    # =========================================================================
    # Sections
    # =========================================================================

    def _basic_info(self, job: Job) -> str:
        lines = ["## Job Basic Information", f"- Job ID: {job.job_id}"]
        fields = (
            ("Job Name", job.job_name),
            ("Job Type", job.job_type),
            ("Framework", job.framework),
            ("Status", job.status),
            ("Process Name", job.process_name),
            ("Command Line", job.command_line),
            ("Working Directory", job.cwd),
        )
        lines.extend(f"- {label}: {value}" for label, value in fields if value is not None)

        if job.start_time is not None:
            lines.append(f"- Start Time: {format_timestamp(job.start_time)}")
            if job.end_time:
                lines.append(f"- End Time: {format_timestamp(job.end_time)}")
                lines.append(f"- Duration: {format_duration(job.end_time - job.start_time)}")
            else:
                elapsed = self._current_time() - job.start_time
                lines.append(f"- Elapsed: {format_duration(elapsed)} (still running)")
        return "\n".join(lines)

    def _npu_cards(self, detail: JobDetail) -> str:
        lines = [f"## NPU Cards ({len(detail.npu_cards)} total)"]
        for card in detail.npu_cards:
            line = f"- NPU {card.npu_id}: process memory {card.memory_usage_mb:.1f} MB"
            for index, sample in enumerate(card.metrics):
                if index > 0:
                    line += f"\n  Chip{index}:"
                if sample.aicore_usage_percent is not None:
                    line += f", AICore usage {sample.aicore_usage_percent:.1f}%"
                if sample.hbm_usage_mb is not None and sample.hbm_total_mb is not None:
                    line += f", HBM {sample.hbm_usage_mb:.0f}/{sample.hbm_total_mb:.0f} MB"
                if sample.power_w is not None:
                    line += f", power {sample.power_w:.1f}W"
                if sample.temp_c is not None:
                    line += f", temperature {sample.temp_c:.1f}C"
            lines.append(line)
        return "\n".join(lines)

    def _related_processes(self, related: Sequence[Job]) -> str:
        lines = [f"## Related Processes ({len(related)} total)"]
        for job in related:
            pid = job.pid if job.pid is not None else "-"
            lines.append(f"- PID {pid}, process name: {job.process_name or '-'}")
        return "\n".join(lines)

    def _parameter_sections(self, parameter: Parameter) -> List[str]:
        sections = []
        if parameter.parameter_data:
            sections.append(
                "## Parameters\n```json\n"
                f"{truncate(parameter.parameter_data, PARAMETER_LIMIT)}\n```"
            )
        if parameter.config_file_content:
            header = "## Config File"
            if parameter.config_file_path:
                header += f"\nPath: {parameter.config_file_path}"
            sections.append(
                f"{header}\n```\n{truncate(parameter.config_file_content, CONFIG_FILE_LIMIT)}\n```"
            )
        if parameter.env_vars:
            rendered = render_env_vars(parameter.env_vars)
            if rendered:
                sections.append(f"## Environment Variables\n{rendered}")
        return sections

    def _code_sections(self, code: Code) -> List[str]:
        sections = []
        if code.script_content:
            header = "## Entry Script"
            if code.script_path:
                header += f"\nPath: {code.script_path}"
            sections.append(
                f"{header}\n```python\n{truncate(code.script_content, SCRIPT_LIMIT)}\n```"
            )
        if code.sh_script_content:
            header = "## Shell Launch Script"
            if code.sh_script_path:
                header += f"\nPath: {code.sh_script_path}"
            sections.append(
                f"{header}\n```bash\n{truncate(code.sh_script_content, SHELL_SCRIPT_LIMIT)}\n```"
            )
        return sections
