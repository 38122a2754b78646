# durable snapshot of the fallback-mode state
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import PersistenceFailure
from .models import SimulationState

logger = logging.getLogger(__name__)


class FileSnapshotStore:
    """
    One JSON record per key, stored as <directory>/<key>.json.
    Best effort: failures are logged and reported as False / None,
    never raised.
    """

    def __init__(self, directory: str, key: str = "voting_app_state"):
        self.path = Path(directory) / f"{key}.json"

    def save(self, state: SimulationState) -> bool:
        try:
            payload = state.model_dump_json(by_alias=True)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
            return True
        except Exception as e:
            logger.error("%s", PersistenceFailure(f"save to {self.path} failed: {e}"))
            return False

    def load(self) -> Optional[SimulationState]:
        if not self.path.exists():
            return None
        try:
            state = SimulationState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.error("%s", PersistenceFailure(f"load from {self.path} failed: {e}"))
            return None
        logger.info("Loaded simulation state from %s", self.path)
        return state

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class MemorySnapshotStore:
    """Keeps the serialized record in memory (tests, throwaway instances)."""

    def __init__(self) -> None:
        self.record: Optional[str] = None

    def save(self, state: SimulationState) -> bool:
        self.record = state.model_dump_json(by_alias=True)
        return True

    def load(self) -> Optional[SimulationState]:
        if self.record is None:
            return None
        try:
            return SimulationState.model_validate_json(self.record)
        except Exception as e:
            logger.error("%s", PersistenceFailure(f"in-memory record unreadable: {e}"))
            return None

    def clear(self) -> None:
        self.record = None
