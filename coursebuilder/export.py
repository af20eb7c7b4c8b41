"""
Validation and export of a curriculum tree for persistence.

The export step is the only way a tree leaves an editing session:
- validation runs completely in memory and reports every violation
- only a fully valid tree is turned into a document payload
- hydration does the reverse for a document read back from a store

Access checks for authoring live here too, since they guard the same
create/update flows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from coursebuilder.errors import PermissionDenied, ValidationError, Violation
from coursebuilder.model import (
    AUTHOR_ROLES,
    Actor,
    ClassInfo,
    CourseMeta,
    CurriculumTree,
    tree_from_list,
    tree_to_list,
)

logger = logging.getLogger(__name__)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_tree(tree: CurriculumTree) -> List[Violation]:
    """
    Walk the whole tree and collect every empty required field.

    Required: title of every chapter, subchapter and topic, and the
    content of every topic.
    """
    out: List[Violation] = []
    for ci, chapter in enumerate(tree.chapters):
        cpath = f"chapters[{ci}]"
        if _blank(chapter.title):
            out.append(Violation(f"{cpath}.title", "chapter title is required"))
        for si, sub in enumerate(chapter.subchapters or ()):
            spath = f"{cpath}.subchapters[{si}]"
            if _blank(sub.title):
                out.append(Violation(f"{spath}.title", "subchapter title is required"))
            for ti, topic in enumerate(sub.topics or ()):
                tpath = f"{spath}.topics[{ti}]"
                if _blank(topic.title):
                    out.append(Violation(f"{tpath}.title", "topic title is required"))
                if _blank(topic.content):
                    out.append(Violation(f"{tpath}.content", "topic content is required"))
    return out


def validate_course(
    tree: CurriculumTree, meta: CourseMeta, known_classes: Optional[Iterable[ClassInfo]] = None
) -> List[Violation]:
    """
    Tree violations plus course-level ones.

    Assigned class ids are checked against the roster only when a roster
    is given; otherwise they pass through unchecked.
    """
    out: List[Violation] = []
    if _blank(meta.title):
        out.append(Violation("title", "course title is required"))
    out.extend(validate_tree(tree))

    if known_classes is not None:
        known = {c.class_id for c in known_classes}
        for i, class_id in enumerate(meta.class_ids):
            if class_id not in known:
                out.append(Violation(f"classIds[{i}]", f"unknown class: {class_id}"))
    return out


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def export_tree(tree: CurriculumTree) -> List[dict[str, Any]]:
    violations = validate_tree(tree)
    if violations:
        raise ValidationError(violations)
    return tree_to_list(tree)


def _checked_chapters(
    tree: CurriculumTree, meta: CourseMeta, known_classes: Optional[Iterable[ClassInfo]]
) -> List[dict[str, Any]]:
    violations = validate_course(tree, meta, known_classes)
    if violations:
        logger.debug("export rejected with %d violation(s)", len(violations))
        raise ValidationError(violations)
    return tree_to_list(tree)


def export_course(
    tree: CurriculumTree,
    meta: CourseMeta,
    known_classes: Optional[Iterable[ClassInfo]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Payload for creating a new course document.
    """
    chapters = _checked_chapters(tree, meta, known_classes)
    return {
        "title": meta.title,
        "description": meta.description,
        "subject": meta.subject,
        "chapters": chapters,
        "classIds": list(meta.class_ids),
        "teacherId": meta.teacher_id,
        "teacherName": meta.teacher_name,
        "createdAt": now or datetime.now(timezone.utc),
    }


def export_course_update(
    tree: CurriculumTree,
    meta: CourseMeta,
    known_classes: Optional[Iterable[ClassInfo]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Payload for updating an existing course document.

    Owner and creation time are never rewritten on update.
    """
    chapters = _checked_chapters(tree, meta, known_classes)
    return {
        "title": meta.title,
        "description": meta.description,
        "subject": meta.subject,
        "chapters": chapters,
        "classIds": list(meta.class_ids),
        "updatedAt": now or datetime.now(timezone.utc),
    }


def hydrate_course(document: dict[str, Any]) -> Tuple[Optional[str], CurriculumTree, CourseMeta]:
    """
    Rebuild (course_id, tree, meta) from a stored course document.
    """
    course_id = document.get("courseId") or document.get("id")
    tree = tree_from_list(document.get("chapters") or [])
    meta = CourseMeta.from_dict(document)
    return (str(course_id) if course_id else None), tree, meta


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


def check_can_author(actor: Actor) -> None:
    if actor.role not in AUTHOR_ROLES:
        raise PermissionDenied(f"Role '{actor.role}' cannot author courses")


def check_can_edit(actor: Actor, meta: CourseMeta) -> None:
    """
    Admins may edit any course; teachers only their own.
    """
    check_can_author(actor)
    if actor.role != "admin" and meta.teacher_id != actor.user_id:
        raise PermissionDenied("You don't have permission to edit this course")


def meta_for_actor(
    actor: Actor,
    title: str = "",
    description: str = "",
    subject: str = "",
    class_ids: Optional[List[str]] = None,
) -> CourseMeta:
    return CourseMeta(
        title=title,
        description=description,
        subject=subject,
        class_ids=list(class_ids or []),
        teacher_id=actor.user_id,
        teacher_name=actor.display_name,
    )
