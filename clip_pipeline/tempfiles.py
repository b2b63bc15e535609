from __future__ import annotations

import logging
import shutil
import tempfile
import time
import uuid
from pathlib import Path
from types import TracebackType

from clip_pipeline.errors import CleanupWarning

logger = logging.getLogger(__name__)


class TempScope:
    """Per-invocation scratch directory, removed on every exit path.

    Paths are unique per scope (timestamp + random token), so concurrent
    invocations sharing the same base directory never collide.
    """

    def __init__(self, base_dir: str | Path | None = None, prefix: str = "clip_run_") -> None:
        self.base_dir = Path(base_dir).expanduser().resolve() if base_dir else None
        self.prefix = prefix
        self._path: Path | None = None

    def __enter__(self) -> TempScope:
        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._path = Path(
            tempfile.mkdtemp(prefix=self.prefix, dir=str(self.base_dir) if self.base_dir else None)
        )
        logger.debug("Opened temp scope %s", self._path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("TempScope is not open.")
        return self._path

    def file(self, stem: str, suffix: str) -> Path:
        """Return a fresh, unique file path inside the scope."""

        token = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        return self.path / f"{stem}_{token}{suffix}"

    def subdir(self, name: str) -> Path:
        target = self.path / name
        target.mkdir(parents=True, exist_ok=True)
        return target

    def close(self) -> None:
        if self._path is None:
            return
        path, self._path = self._path, None
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("%s: could not remove temp scope %s (%s)", CleanupWarning.__name__, path, exc)
            return
        logger.debug("Closed temp scope %s", path)


def remove_quietly(path: str | Path | None) -> bool:
    """Delete a single temp file; failures are logged as cleanup warnings."""

    if not path:
        return False
    target = Path(path)
    try:
        target.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("%s: could not remove %s (%s)", CleanupWarning.__name__, target, exc)
        return False
    return True
