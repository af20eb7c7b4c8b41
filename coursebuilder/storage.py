"""
Local persistence.

Two files live here:

    data/draft.json     the current editing session (tree + course metadata)
    data/courses.json   a local course store with the same interface as
                        the hosted one (useful offline and in tests)

Design rationale:
- the draft is the single owner of the tree between CLI invocations
- saving to a store is an explicit export, never a continuous sync
- the draft keeps every issued identifier, so ids are never reused after
  a delete even across separate commands
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from coursebuilder.errors import CourseNotFound, PersistenceError
from coursebuilder.model import ClassInfo, CourseMeta, CurriculumTree, tree_from_list, tree_to_list

logger = logging.getLogger(__name__)

TIMESTAMP_KEYS = ("createdAt", "updatedAt")


def _data_dir() -> Path:
    """
    Return the default data directory inside the package.

    Using a function instead of a constant makes testing easier,
    because tests can override the path.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data"


def default_draft_path() -> Path:
    return _data_dir() / "draft.json"


def default_store_path() -> Path:
    return _data_dir() / "courses.json"


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


@dataclass
class Draft:
    """
    One editing session: the tree, the course metadata, and the id of the
    stored course when editing an existing one.
    """

    tree: CurriculumTree
    meta: CourseMeta = field(default_factory=CourseMeta)
    course_id: Optional[str] = None


def save_draft(draft: Draft, path: str | Path | None = None) -> None:
    """
    Write the draft to disk, creating parent directories if needed.
    """
    draft_path = Path(path) if path is not None else default_draft_path()
    draft_path.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "courseId": draft.course_id,
        "course": draft.meta.to_dict(),
        "chapters": tree_to_list(draft.tree),
        "issuedIds": sorted(draft.tree.issued_ids),
    }
    draft_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")


def load_draft(path: str | Path | None = None) -> Optional[Draft]:
    """
    Load the draft. Returns None if there is none or it cannot be read.
    """
    draft_path = Path(path) if path is not None else default_draft_path()

    # No editing session yet
    if not draft_path.exists():
        return None

    try:
        data = json.loads(draft_path.read_text(encoding="utf-8"))
        tree = tree_from_list(data.get("chapters", []), frozenset(data.get("issuedIds", [])))
        meta = CourseMeta.from_dict(data.get("course") or {})
        course_id = data.get("courseId") or None
    except (OSError, json.JSONDecodeError, UnicodeDecodeError, AttributeError, TypeError) as exc:
        logger.warning("ignoring unreadable draft %s: %s", draft_path, exc)
        return None

    return Draft(tree=tree, meta=meta, course_id=course_id)


def discard_draft(path: str | Path | None = None) -> bool:
    """
    Delete the draft file. Returns True if there was one.
    """
    draft_path = Path(path) if path is not None else default_draft_path()
    if not draft_path.exists():
        return False
    draft_path.unlink()
    return True


# ---------------------------------------------------------------------------
# Local course store
# ---------------------------------------------------------------------------


def _to_json(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    for key in TIMESTAMP_KEYS:
        if isinstance(out.get(key), datetime):
            out[key] = out[key].isoformat()
    return out


def _from_json(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    for key in TIMESTAMP_KEYS:
        if isinstance(out.get(key), str):
            try:
                out[key] = datetime.fromisoformat(out[key])
            except ValueError:
                pass
    return out


class JsonCourseStore:
    """
    Course store kept in one JSON file:

        {"courses": {"<courseId>": {...}}, "classes": [{"classId": ..., "className": ...}]}
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else default_store_path()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"courses": {}, "classes": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Cannot read course store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Course store {self.path} is not a JSON object")
        data.setdefault("courses", {})
        data.setdefault("classes", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Cannot write course store {self.path}: {exc}") from exc

    def list_courses(self, teacher_id: Optional[str] = None) -> List[Dict[str, Any]]:
        courses = [_from_json(c) for c in self._read()["courses"].values()]
        if teacher_id:
            courses = [c for c in courses if c.get("teacherId") == teacher_id]
        return courses

    def get_course(self, course_id: str) -> Dict[str, Any]:
        doc = self._read()["courses"].get(course_id)
        if doc is None:
            raise CourseNotFound(course_id)
        return _from_json(doc)

    def create_course(self, payload: Dict[str, Any]) -> str:
        data = self._read()
        course_id = str(uuid.uuid4())
        data["courses"][course_id] = _to_json({**payload, "courseId": course_id})
        self._write(data)
        logger.info("created course %s in %s", course_id, self.path)
        return course_id

    def update_course(self, course_id: str, payload: Dict[str, Any]) -> None:
        data = self._read()
        doc = data["courses"].get(course_id)
        if doc is None:
            raise CourseNotFound(course_id)
        doc.update(_to_json(payload))
        self._write(data)
        logger.info("updated course %s in %s", course_id, self.path)

    def delete_course(self, course_id: str) -> None:
        data = self._read()
        if data["courses"].pop(course_id, None) is None:
            raise CourseNotFound(course_id)
        self._write(data)
        logger.info("deleted course %s in %s", course_id, self.path)

    def list_classes(self) -> List[ClassInfo]:
        return [ClassInfo.from_dict(c) for c in self._read()["classes"]]

    def add_class(self, info: ClassInfo) -> None:
        """
        Add or rename a class in the local roster.
        """
        data = self._read()
        classes = [c for c in data["classes"] if c.get("classId") != info.class_id]
        classes.append(info.to_dict())
        data["classes"] = sorted(classes, key=lambda c: str(c.get("className", "")))
        self._write(data)
