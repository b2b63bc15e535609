from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Sequence

from clip_pipeline.config import ToolSettings
from clip_pipeline.errors import ExternalToolError, ToolUnavailableError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolResult:
    exit_code: int
    stdout: bytes
    stderr: str

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


class MediaToolInvoker:
    """Spawn an external media executable and collect its output.

    Argument semantics belong to the callers. Non-zero exits raise
    ExternalToolError, spawn failures raise ToolUnavailableError, and
    nothing is retried here.
    """

    def __init__(self, tools: ToolSettings | None = None) -> None:
        self.tools = tools or ToolSettings()

    @property
    def ffmpeg(self) -> str:
        return self.tools.ffmpeg_path

    @property
    def ffprobe(self) -> str:
        return self.tools.ffprobe_path

    @property
    def ytdlp(self) -> str:
        return self.tools.ytdlp_path

    def invoke(
        self,
        executable: str,
        args: Sequence[str],
        *,
        timeout_seconds: float | None = None,
    ) -> ToolResult:
        command = [executable, *[str(arg) for arg in args]]
        logger.debug("Running %s", shlex.join(command))

        try:
            completed = subprocess.run(
                command,
                check=False,
                capture_output=True,
                timeout=timeout_seconds,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ToolUnavailableError(executable, str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            stderr = _decode(exc.stderr)
            raise ExternalToolError(executable, -1, f"timed out after {timeout_seconds}s. {stderr}") from exc

        stderr = _decode(completed.stderr)
        if completed.returncode != 0:
            logger.debug("%s exited with %s: %s", executable, completed.returncode, stderr[-500:])
            raise ExternalToolError(executable, completed.returncode, stderr)

        return ToolResult(exit_code=completed.returncode, stdout=completed.stdout or b"", stderr=stderr)

    def is_available(self, executable: str) -> bool:
        try:
            self.invoke(executable, ["-version"] if executable != self.ytdlp else ["--version"])
        except (ToolUnavailableError, ExternalToolError):
            return False
        return True


def _decode(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw
