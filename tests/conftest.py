"""Shared fixtures: a recording stand-in for the media tool invoker."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

from clip_pipeline.tools.invoker import MediaToolInvoker, ToolResult

Handler = Callable[[str, list[str]], "ToolResult | bytes | None"]


class FakeInvoker(MediaToolInvoker):
    """Records every call; the handler decides what each call produces."""

    def __init__(self, handler: Handler | None = None) -> None:
        super().__init__()
        self.calls: list[tuple[str, list[str]]] = []
        self.handler = handler

    def invoke(
        self,
        executable: str,
        args: Sequence[str],
        *,
        timeout_seconds: float | None = None,
    ) -> ToolResult:
        arg_list = [str(arg) for arg in args]
        self.calls.append((executable, arg_list))
        produced = self.handler(executable, arg_list) if self.handler else None
        if isinstance(produced, ToolResult):
            return produced
        return ToolResult(exit_code=0, stdout=produced or b"", stderr="")

    def calls_for(self, executable: str) -> list[list[str]]:
        return [args for name, args in self.calls if name == executable]


def write_output_file(executable: str, args: list[str]) -> None:
    """Create the file an ffmpeg call would have written (its last argument)."""

    if executable == "ffmpeg" and args and args[-1].endswith((".mp4", ".wav")):
        Path(args[-1]).parent.mkdir(parents=True, exist_ok=True)
        Path(args[-1]).write_bytes(b"media-bytes")


@pytest.fixture
def make_invoker() -> Callable[..., FakeInvoker]:
    def _make(handler: Handler | None = None) -> FakeInvoker:
        return FakeInvoker(handler)

    return _make


@pytest.fixture
def rendering_invoker() -> FakeInvoker:
    """Invoker whose ffmpeg calls write their output file."""

    def _handler(executable: str, args: list[str]) -> None:
        write_output_file(executable, args)
        return None

    return FakeInvoker(_handler)
