from __future__ import annotations

STDERR_EXCERPT_CHARS = 500


class ClipPipelineError(RuntimeError):
    """Base class for failures raised by the clip pipeline."""


class ToolUnavailableError(ClipPipelineError):
    """The external executable could not be spawned (missing or not executable)."""

    def __init__(self, tool: str, reason: str | None = None) -> None:
        self.tool = tool
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"{tool} executable was not found or could not be started{detail}. "
            f"Install it or point the tools settings at it."
        )


class ExternalToolError(ClipPipelineError):
    """The external executable ran but exited with a non-zero status."""

    def __init__(self, tool: str, exit_code: int, stderr: str = "") -> None:
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = (stderr or "")[:STDERR_EXCERPT_CHARS]
        details = f": {self.stderr.strip()}" if self.stderr.strip() else ""
        super().__init__(f"{tool} failed with exit code {exit_code}{details}")


class UnsupportedFontError(ClipPipelineError, ValueError):
    def __init__(self, font_key: str, valid_keys: list[str]) -> None:
        self.font_key = font_key
        self.valid_keys = list(valid_keys)
        super().__init__(
            f"Unsupported font: {font_key}. Available fonts: {', '.join(self.valid_keys)}"
        )


class RemoteBackendError(ClipPipelineError):
    """Non-2xx answer from the remote processing backend; message is passed through."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(message)


class CleanupWarning(UserWarning):
    """Temporary artifact could not be removed. Logged, never raised."""
