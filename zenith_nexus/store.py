# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Single-file persistence for the seed document
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)


class LoadError(Exception):
    """The seed file is missing, unreadable or not a JSON object."""


class SaveError(Exception):
    """The seed could not be serialized or written."""


class SeedStore:
    """Loads and saves the seed document to a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __repr__(self):
        return f"SeedStore(path={str(self.path)!r})"

    def load(self) -> Dict[str, Any]:
        """
        Read and parse the seed file.

        Returns:
            The parsed seed document

        Raises:
            LoadError: if the file is missing, unreadable, not valid JSON,
                or its root is not an object
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise LoadError(f"cannot read {self.path}: {e}") from e

        try:
            seed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise LoadError(f"invalid JSON in {self.path}: {e}") from e

        if not isinstance(seed, dict):
            raise LoadError(f"{self.path} must hold a JSON object, got {type(seed).__name__}")

        logger.debug(f"📂 [Persistence] Loaded seed from {self.path}")
        return seed

    def save(self, seed: Dict[str, Any]) -> None:
        """
        Serialize the seed and overwrite the file with it.

        Raises:
            SaveError: if serialization or the write fails
        """
        self.write_text(self.dumps(seed))

    @staticmethod
    def dumps(seed: Dict[str, Any]) -> str:
        try:
            text = json.dumps(seed, indent=2, ensure_ascii=False)
            text.encode("utf-8")
        except UnicodeEncodeError:
            # Lone surrogates can only be written as \u escapes
            return json.dumps(seed, indent=2)
        except (TypeError, ValueError) as e:
            raise SaveError(f"cannot serialize seed: {e}") from e
        return text

    def write_text(self, text: str) -> None:
        """Write through a temp file in the same directory, then rename over the target."""
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
        except OSError as e:
            raise SaveError(f"cannot write {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, self.path)
        except (OSError, ValueError) as e:
            raise SaveError(f"cannot write {self.path}: {e}") from e
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info(f"💾 [Persistence] Seed saved -> {self.path}")
