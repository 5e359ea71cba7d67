"""Data models for the code index."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import blake3

FUNCTION_CHUNK = "function"
FILE_CHUNK = "file"


def chunk_id(file_path: str, start_line: int, end_line: int) -> str:
    """Deterministic chunk identifier for a file location.

    Args:
        file_path: Path of the file the chunk was cut from
        start_line: First line (1-based)
        end_line: Last line (1-based, inclusive)

    Returns:
        Hexadecimal Blake3 hash of the location
    """
    return blake3.blake3(f"{file_path}:{start_line}-{end_line}".encode("utf-8")).hexdigest()


@dataclass
class Chunk:
    """A retrievable unit of source text: one function or one whole file."""

    id: str
    file_path: str
    kind: str  # "function" or "file"
    name: str
    start_line: int
    end_line: int
    text: str
    language: Optional[str] = None
    embedding: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the snapshot's JSON keys."""
        data: Dict[str, Any] = {
            "id": self.id,
            "filePath": self.file_path,
            "kind": self.kind,
            "name": self.name,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "text": self.text,
        }
        if self.language is not None:
            data["language"] = self.language
        if self.embedding is not None:
            data["embedding"] = self.embedding
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        """Build a chunk from its snapshot JSON form.

        Raises:
            KeyError: If a required key is missing
        """
        embedding = data.get("embedding")
        return cls(
            id=data["id"],
            file_path=data["filePath"],
            kind=data["kind"],
            name=data["name"],
            start_line=int(data["startLine"]),
            end_line=int(data["endLine"]),
            text=data["text"],
            language=data.get("language"),
            embedding=[float(x) for x in embedding] if embedding is not None else None,
        )


@dataclass
class IndexSnapshot:
    """The persisted, corpus-wide collection of embedded chunks."""

    created_at: int  # epoch milliseconds
    root_path: str
    embedding_model: str
    chunks: List[Chunk] = field(default_factory=list)

    @property
    def dimension(self) -> Optional[int]:
        """Embedding dimensionality shared by all chunks, if any are embedded."""
        for chunk in self.chunks:
            if chunk.embedding:
                return len(chunk.embedding)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdAt": self.created_at,
            "root": self.root_path,
            "model": self.embedding_model,
            "index": [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexSnapshot":
        """Build a snapshot from its JSON form.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed
        """
        index = data["index"]
        if not isinstance(index, list):
            raise TypeError("snapshot 'index' must be a list")
        return cls(
            created_at=int(data["createdAt"]),
            root_path=data["root"],
            embedding_model=data["model"],
            chunks=[Chunk.from_dict(item) for item in index],
        )
