import logging
import os
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JsonStore(Generic[ModelT]):
    """One pydantic model persisted as a complete JSON snapshot.

    Every persist rewrites the whole file. A missing file is an empty store,
    and so is a corrupt one when loading at startup.
    """

    def __init__(self, path: Path, model: type[ModelT]):
        self.path = path
        self.model = model

    def read(self) -> ModelT:
        """Parse the backing file. Raises on a missing, unreadable or invalid file."""
        return self.model.model_validate_json(self.path.read_text(encoding="utf-8"))

    def load(self) -> ModelT:
        try:
            return self.read()
        except FileNotFoundError:
            return self.model()
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return self.model()

    def persist(self, value: ModelT) -> None:
        """Write the full snapshot to a sibling temp file, then swap it in."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp.write_text(value.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
