import logging
import os
import tempfile
from typing import Optional, Protocol

from .models import SNAPSHOT_VERSION, EngineSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def load(self) -> Optional[EngineSnapshot]: ...

    def save(self, snapshot: EngineSnapshot) -> None: ...


class MemorySnapshotStore:
    """Keeps the last saved document as JSON text, mostly for tests."""

    def __init__(self, document: Optional[str] = None):
        self.document = document
        self.saves = 0

    def load(self) -> Optional[EngineSnapshot]:
        if self.document is None:
            return None
        return EngineSnapshot.model_validate_json(self.document)

    def save(self, snapshot: EngineSnapshot) -> None:
        self.document = snapshot.model_dump_json()
        self.saves += 1


class JsonFileSnapshotStore:
    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[EngineSnapshot]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            snapshot = EngineSnapshot.model_validate_json(f.read())
        if snapshot.version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version {snapshot.version} in {self.path}")
        logger.info("Loaded snapshot from %s (%d accounts)", self.path, len(snapshot.accounts))
        return snapshot

    def save(self, snapshot: EngineSnapshot) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".snapshot-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
