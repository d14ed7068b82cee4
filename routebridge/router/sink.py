"""Config sinks: where serialized snapshots end up."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from routebridge.core.errors import SinkWriteError


@runtime_checkable
class ConfigSink(Protocol):
    """Receives one full snapshot per flush.

    ``write`` must look atomic to the reconciler: a reader never sees a
    partially written snapshot.
    """

    def get_output_filename(self) -> str: ...

    def write(self, data: bytes) -> int: ...


class FileConfigSink:
    """Writes snapshots to a file by writing a temp file and renaming it."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def get_output_filename(self) -> str:
        return str(self.path)

    def write(self, data: bytes) -> int:
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                except OSError as cleanup_error:
                    logger.warning(
                        "[sink] Could not remove temp file {}: {}", tmp_name, cleanup_error
                    )
            raise SinkWriteError(f"failed writing {self.path}: {e}") from e

        logger.debug("[sink] Wrote {} bytes to {}", len(data), self.path)
        return len(data)
