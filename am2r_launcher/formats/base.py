"""Base classes for manifest parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Generic, TypeVar

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class FormatParser(ABC, Generic[T]):
    """Base class for manifest parsers."""

    @abstractmethod
    def parse(self, data: bytes | str) -> T:
        """Parse serialized data.

        Args:
            data: Raw document

        Returns:
            Parsed model
        """
        ...

    @abstractmethod
    def build(self, obj: T) -> bytes:
        """Serialize a model.

        Args:
            obj: Model to serialize

        Returns:
            Encoded document
        """
        ...

    def parse_file(self, path: Path) -> T:
        """Parse a model from a file.

        Args:
            path: File path

        Returns:
            Parsed model

        Raises:
            ValueError: If the file cannot be read
        """
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.error("manifest_read_failed", path=str(path), error=str(e))
            raise ValueError(f"Cannot read file {path}: {e}") from e
        return self.parse(data)

    def build_file(self, obj: T, path: Path) -> None:
        """Write a model to a file, creating parent directories.

        Args:
            obj: Model to serialize
            path: Output file path
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self.build(obj))
        except OSError as e:
            logger.error("manifest_write_failed", path=str(path), error=str(e))
            raise ValueError(f"Cannot write file {path}: {e}") from e
