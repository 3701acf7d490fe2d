"""Trace record models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class LineRange:
    """A traced code block, 1-based and inclusive."""

    start_line: int
    end_line: int
    content_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_line": self.start_line,
            "end_line": self.end_line,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineRange":
        return cls(
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            content_hash=str(data["content_hash"]),
        )


@dataclass
class Related:
    """Link from a conversation to an intent or specification."""

    type: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Related":
        return cls(type=str(data["type"]), value=str(data["value"]))


@dataclass
class Contributor:
    entity_type: str = "AI"
    model_identifier: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"entity_type": self.entity_type, "model_identifier": self.model_identifier}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contributor":
        return cls(
            entity_type=str(data.get("entity_type", "AI")),
            model_identifier=data.get("model_identifier"),
        )


@dataclass
class Conversation:
    """One contribution to a file: who wrote which ranges, for which intent."""

    url: Optional[str] = None
    contributor: Contributor = field(default_factory=Contributor)
    ranges: list[LineRange] = field(default_factory=list)
    related: list[Related] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "contributor": self.contributor.to_dict(),
            "ranges": [r.to_dict() for r in self.ranges],
            "related": [r.to_dict() for r in self.related],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        return cls(
            url=data.get("url"),
            contributor=Contributor.from_dict(data.get("contributor") or {}),
            ranges=[LineRange.from_dict(r) for r in data.get("ranges", [])],
            related=[Related.from_dict(r) for r in data.get("related", [])],
        )


@dataclass
class FileTrace:
    relative_path: str
    conversations: list[Conversation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "relative_path": self.relative_path,
            "conversations": [c.to_dict() for c in self.conversations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FileTrace":
        return cls(
            relative_path=str(data["relative_path"]),
            conversations=[Conversation.from_dict(c) for c in data.get("conversations", [])],
        )


@dataclass
class TraceRecord:
    """
    One line of the agent trace log.

    Records are write-once: the logger appends them and nothing rewrites
    or deletes them.
    """

    files: list[FileTrace] = field(default_factory=list)
    revision_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "files": [f.to_dict() for f in self.files],
        }
        if self.revision_id:
            data["revision_id"] = self.revision_id
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TraceRecord":
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            revision_id=data.get("revision_id"),
            files=[FileTrace.from_dict(f) for f in data.get("files", [])],
            metadata=dict(data.get("metadata") or {}),
        )

    def related_values(self, related_type: str) -> list[str]:
        """All ``related`` values of one type across the record's conversations."""
        return [
            related.value
            for file_trace in self.files
            for conversation in file_trace.conversations
            for related in conversation.related
            if related.type == related_type
        ]
