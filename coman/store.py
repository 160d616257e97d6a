"""coman store - persistence of the collection list."""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path

from coman.errors import StorageError
from coman.models import Collection

log = logging.getLogger(__name__)


class CollectionStore:
    """JSON file holding every collection.

    A missing file reads as an empty store. Writes go to a temporary file
    in the same directory which is fsynced and then renamed over the
    target, so readers never see a partially written file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> list[Collection]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("No collections file at %s, starting empty", self.path)
            return []
        except OSError as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Invalid JSON in {self.path}: expected a list of collections")

        collections = [Collection.from_dict(item) for item in data]
        log.debug("Loaded %d collection(s) from %s", len(collections), self.path)
        return collections

    def save(self, collections: list[Collection]) -> None:
        payload = json.dumps([c.to_dict() for c in collections], indent=2)
        parent = self.path.parent
        tmp_name = None
        try:
            parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write {self.path}: {e}") from e
        log.debug("Saved %d collection(s) to %s", len(collections), self.path)


class MemoryStore:
    """Store kept in process memory; nothing touches the disk."""

    def __init__(self, collections: list[Collection] | None = None):
        self._collections = copy.deepcopy(collections or [])

    def load(self) -> list[Collection]:
        return copy.deepcopy(self._collections)

    def save(self, collections: list[Collection]) -> None:
        self._collections = copy.deepcopy(collections)
