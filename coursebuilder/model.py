"""
Central data model definitions used across the project.

This module defines the canonical structure of the curriculum tree so that:
- the editor, the exporter and the stores all share the same field names
- the persisted document shape (camelCase keys) lives in exactly one place
- every node is an immutable value, so editing never mutates a caller's tree

Tree shape:

    Chapter -> Subchapter -> Topic

Children are stored as tuples. A children field of ``None`` only appears
for legacy documents that never had the field; editing operations replace
it with an empty tuple before touching it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, List, Optional, Tuple


class ChapterField(str, Enum):
    TITLE = "title"
    DESCRIPTION = "description"


class SubchapterField(str, Enum):
    TITLE = "title"


class TopicField(str, Enum):
    TITLE = "title"
    CONTENT = "content"


ROLES = ("admin", "teacher", "student", "parent")
AUTHOR_ROLES = ("teacher", "admin")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Topic:
    topic_id: str
    title: str = ""
    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"topicId": self.topic_id, "title": self.title, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Topic":
        return cls(
            topic_id=_text(data.get("topicId")),
            title=_text(data.get("title")),
            content=_text(data.get("content")),
        )


@dataclass(frozen=True)
class Subchapter:
    subchapter_id: str
    title: str = ""
    topics: Optional[Tuple[Topic, ...]] = ()

    # A missing topics field compares equal to an empty one.
    def _key(self) -> tuple:
        return (self.subchapter_id, self.title, self.topics or ())

    def __eq__(self, other: object) -> bool:
        if other.__class__ is not self.__class__:
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def to_dict(self) -> dict[str, Any]:
        return {
            "subchapterId": self.subchapter_id,
            "title": self.title,
            "topics": [t.to_dict() for t in self.topics or ()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subchapter":
        raw = data.get("topics")
        topics = None if raw is None else tuple(Topic.from_dict(t) for t in raw)
        return cls(subchapter_id=_text(data.get("subchapterId")), title=_text(data.get("title")), topics=topics)


@dataclass(frozen=True)
class Chapter:
    chapter_id: str
    title: str = ""
    description: str = ""
    subchapters: Optional[Tuple[Subchapter, ...]] = ()

    # A missing subchapters field compares equal to an empty one.
    def _key(self) -> tuple:
        return (self.chapter_id, self.title, self.description, self.subchapters or ())

    def __eq__(self, other: object) -> bool:
        if other.__class__ is not self.__class__:
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapterId": self.chapter_id,
            "title": self.title,
            "description": self.description,
            "subchapters": [s.to_dict() for s in self.subchapters or ()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chapter":
        raw = data.get("subchapters")
        subchapters = None if raw is None else tuple(Subchapter.from_dict(s) for s in raw)
        return cls(
            chapter_id=_text(data.get("chapterId")),
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            subchapters=subchapters,
        )


@dataclass(frozen=True)
class CurriculumTree:
    """
    The full chapter sequence of one editing session.

    ``issued_ids`` holds every identifier the session has ever seen
    (hydrated or generated), so a deleted node's id is never handed out
    again. It is excluded from equality.
    """

    chapters: Tuple[Chapter, ...] = ()
    issued_ids: FrozenSet[str] = field(default=frozenset(), compare=False, repr=False)

    def __len__(self) -> int:
        return len(self.chapters)


def collect_ids(chapters: Tuple[Chapter, ...]) -> FrozenSet[str]:
    ids: set[str] = set()
    for ch in chapters:
        ids.add(ch.chapter_id)
        for sub in ch.subchapters or ():
            ids.add(sub.subchapter_id)
            for topic in sub.topics or ():
                ids.add(topic.topic_id)
    ids.discard("")
    return frozenset(ids)


def tree_to_list(tree: CurriculumTree) -> List[dict[str, Any]]:
    return [ch.to_dict() for ch in tree.chapters]


def tree_from_list(items: Optional[List[dict[str, Any]]], issued_ids: Optional[FrozenSet[str]] = None) -> CurriculumTree:
    """
    Build a tree from the plain nested-list document form.

    ``issued_ids`` lets a stored session restore identifiers that were
    generated and later deleted.
    """
    chapters = tuple(Chapter.from_dict(c) for c in items or [])
    ids = collect_ids(chapters)
    if issued_ids:
        ids = ids | frozenset(issued_ids)
    return CurriculumTree(chapters=chapters, issued_ids=ids)


@dataclass
class CourseMeta:
    """
    Top-level course metadata that travels with the tree on save.
    """

    title: str = ""
    description: str = ""
    subject: str = ""
    class_ids: List[str] = field(default_factory=list)
    teacher_id: str = ""
    teacher_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "subject": self.subject,
            "classIds": list(self.class_ids),
            "teacherId": self.teacher_id,
            "teacherName": self.teacher_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CourseMeta":
        class_ids = data.get("classIds") or []
        return cls(
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            subject=_text(data.get("subject")),
            class_ids=[str(x) for x in class_ids],
            teacher_id=_text(data.get("teacherId")),
            teacher_name=_text(data.get("teacherName")),
        )


@dataclass(frozen=True)
class Actor:
    """
    The acting user as supplied by the identity provider.
    """

    user_id: str
    role: str
    display_name: str = ""


@dataclass(frozen=True)
class ClassInfo:
    class_id: str
    class_name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassInfo":
        return cls(class_id=_text(data.get("classId")), class_name=_text(data.get("className")))

    def to_dict(self) -> dict[str, Any]:
        return {"classId": self.class_id, "className": self.class_name}
