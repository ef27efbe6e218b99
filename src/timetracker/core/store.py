"""JSON document store for projects and time entries."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

PROJECTS = "projects"
ENTRIES = "entries"

COLLECTION_FILES: Dict[str, str] = {
    PROJECTS: "projects.json",
    ENTRIES: "time_entries.json",
}


class StoreError(RuntimeError):
    """A collection could not be read or written."""


class CollectionNotFound(KeyError):
    """A collection has never been saved."""


class JsonStore:
    """Loads and saves typed collections as JSON files in one directory."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, collection: str) -> Path:
        """Get the file backing a collection."""
        filename = COLLECTION_FILES.get(collection, f"{collection}.json")
        return self.data_dir / filename

    def exists(self) -> bool:
        """Check if every known collection has been created."""
        return all(self.path_for(name).exists() for name in COLLECTION_FILES)

    def load(self, collection: str, model: Type[ModelT]) -> List[ModelT]:
        """Load a collection, raising CollectionNotFound if it was never saved."""
        path = self.path_for(collection)
        if not path.exists():
            raise CollectionNotFound(collection)

        try:
            raw = path.read_text(encoding="utf-8")
            return TypeAdapter(List[model]).validate_json(raw)
        except (OSError, ValueError, ValidationError) as e:
            raise StoreError(f"Failed to load {collection} from {path}: {e}") from e

    def save(self, collection: str, items: List[BaseModel]) -> None:
        """Atomically replace a collection on disk."""
        path = self.path_for(collection)
        data = [
            item.model_dump(mode="json", by_alias=True, exclude_none=True)
            for item in items
        ]

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.data_dir, prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"Failed to save {collection} to {path}: {e}") from e

        logger.debug("Saved %d %s to %s", len(items), collection, path)

    def load_or_default(
        self, collection: str, model: Type[ModelT], default: List[ModelT]
    ) -> List[ModelT]:
        """Load a collection, creating it from ``default`` on first use."""
        try:
            return self.load(collection, model)
        except CollectionNotFound:
            logger.info("Creating %s collection in %s", collection, self.data_dir)
            self.save(collection, default)
            return default
