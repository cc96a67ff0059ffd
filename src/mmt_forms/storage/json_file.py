"""Local JSON file backend."""

import json
import os
from pathlib import Path

from mmt_forms.errors import StorageError
from mmt_forms.logging import get_logger
from mmt_forms.storage.document import DocumentStorage

log = get_logger(__name__)


class JsonFileStorage(DocumentStorage):
    """Database kept in a single JSON file on disk."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _read(self) -> dict | None:
        if not self.path.exists():
            log.info("database_file_missing", path=str(self.path))
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

    def _write(self, document: dict) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8"
            )
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e
        log.debug("database_saved", path=str(self.path))
