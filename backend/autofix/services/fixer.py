from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence

from loguru import logger

from autofix.core.config import Settings, settings as default_settings
from autofix.models.project import Project
from autofix.schemas.webhook import ParsedEvent

LogCallback = Callable[[str, str], Awaitable[None]]

STREAM_LIMIT = 1024 * 1024
MAX_FRAMES_IN_PROMPT = 30


@dataclass
class FixResult:
    success: bool
    reason: Optional[str] = None
    branch: Optional[str] = None
    changed_files: list[str] = field(default_factory=list)


class FixExecutor(Protocol):
    async def run(self, event: ParsedEvent, project: Project, on_log: LogCallback) -> FixResult: ...


def build_fix_prompt(event: ParsedEvent, project: Project) -> str:
    lines = [
        f"Fix the following production error in the {project.repo} repository.",
        f"Base branch: {project.branch}",
        f"Language: {project.language}",
        f"Framework: {project.framework}",
        "",
        f"Title: {event.title}",
        f"Level: {event.level}",
        f"Message: {event.message}",
    ]
    if event.culprit:
        lines.append(f"Culprit: {event.culprit}")
    if event.platform:
        lines.append(f"Platform: {event.platform}")

    for trace in event.stacktrace or []:
        lines.extend(["", f"Exception: {trace.type or 'Error'}: {trace.value or ''}".rstrip()])
        frames = trace.frames[-MAX_FRAMES_IN_PROMPT:]
        for frame in reversed(frames):
            marker = "*" if frame.in_app else " "
            location = frame.filename or frame.abs_path or "?"
            if frame.line_no is not None:
                location = f"{location}:{frame.line_no}"
            lines.append(f" {marker} {location} in {frame.function or '?'}")
            if frame.in_app and frame.context:
                lines.append(f"      > {frame.context.strip()}")

    if not event.stacktrace:
        lines.extend(["", "No stack trace is available for this issue."])

    lines.extend(
        [
            "",
            "Make the smallest change that fixes the root cause, commit it on a new branch, and push it.",
            'Finish by printing one JSON line: {"success": bool, "branch": str, "changed_files": [str], "reason": str}.',
        ]
    )
    return "\n".join(lines)


def parse_result_line(line: str) -> Optional[Dict[str, Any]]:
    candidate = line.strip()
    if not (candidate.startswith("{") and candidate.endswith("}")):
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or "success" not in data:
        return None
    return data


def _result_from_payload(payload: Dict[str, Any]) -> FixResult:
    changed = payload.get("changed_files") or []
    return FixResult(
        success=bool(payload.get("success")),
        reason=payload.get("reason"),
        branch=payload.get("branch"),
        changed_files=[str(path) for path in changed] if isinstance(changed, list) else [],
    )


class AgentFixExecutor:
    """Runs the remediation agent as a subprocess.

    The prompt goes to stdin, every stdout line is forwarded to ``on_log`` and
    the last JSON object line carrying ``success`` is taken as the result.
    """

    def __init__(
        self,
        *,
        command: Sequence[str],
        repos_dir: str,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.command = list(command)
        self.repos_dir = Path(repos_dir)
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "AgentFixExecutor":
        config = config or default_settings
        return cls(
            command=config.agent_command,
            repos_dir=config.repos_dir,
            model=config.agent_model,
            timeout=config.agent_timeout_seconds,
        )

    def workdir_for(self, project: Project) -> Path:
        return self.repos_dir / project.repo.replace("/", "__")

    def _environment(self, event: ParsedEvent, project: Project, workdir: Path) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "AUTOFIX_ISSUE_ID": event.issue_id,
                "AUTOFIX_REPO": project.repo,
                "AUTOFIX_BASE_BRANCH": project.branch,
                "AUTOFIX_LANGUAGE": project.language,
                "AUTOFIX_FRAMEWORK": project.framework,
                "AUTOFIX_WORKDIR": str(workdir),
            }
        )
        if self.model:
            env["AUTOFIX_MODEL"] = self.model
        return env

    async def run(self, event: ParsedEvent, project: Project, on_log: LogCallback) -> FixResult:
        if not self.command:
            return FixResult(success=False, reason="Remediation agent command is not configured")

        workdir = self.workdir_for(project)
        workdir.mkdir(parents=True, exist_ok=True)
        prompt = build_fix_prompt(event, project)

        await on_log("system", f"Starting remediation agent in {workdir}")
        process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(workdir),
            env=self._environment(event, project, workdir),
            limit=STREAM_LIMIT,
        )
        try:
            if self.timeout:
                payload = await asyncio.wait_for(self._communicate(process, prompt, on_log), self.timeout)
            else:
                payload = await self._communicate(process, prompt, on_log)
        except asyncio.TimeoutError:
            logger.warning("Remediation agent timed out", issue_id=event.issue_id, timeout=self.timeout)
            return FixResult(success=False, reason=f"Remediation agent timed out after {self.timeout}s")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            return FixResult(success=False, reason=f"Remediation agent exited with code {process.returncode}")
        if payload is None:
            return FixResult(success=False, reason="Remediation agent did not report a result")
        return _result_from_payload(payload)

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        prompt: str,
        on_log: LogCallback,
    ) -> Optional[Dict[str, Any]]:
        assert process.stdin is not None and process.stdout is not None
        process.stdin.write(prompt.encode("utf-8"))
        await process.stdin.drain()
        process.stdin.close()

        payload: Optional[Dict[str, Any]] = None
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            result = parse_result_line(line)
            if result is not None:
                payload = result
            await on_log("agent", line)
        await process.wait()
        return payload
