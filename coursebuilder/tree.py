"""
Curriculum tree editing (Chapter -> Subchapter -> Topic).

Every operation takes a CurriculumTree and returns a new one. Nothing here
mutates its input, so a failed call always leaves the caller's tree as it
was.

Index rules:
- every index in the path is bounds-checked before anything is built
- negative indices are invalid (no wrap-around)
- add/edit treat a missing children field as empty
- delete treats a missing children field as "nothing to delete"
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Iterator, Optional, Sequence, Tuple, TypeVar, Union

from coursebuilder.errors import IndexOutOfRange
from coursebuilder.model import (
    Chapter,
    ChapterField,
    CurriculumTree,
    Subchapter,
    SubchapterField,
    Topic,
    TopicField,
    collect_ids,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_index(level: str, index: int, length: int) -> None:
    if not isinstance(index, int) or isinstance(index, bool) or not (0 <= index < length):
        raise IndexOutOfRange(level, index, length)


def _replace_at(items: Sequence[T], index: int, item: T) -> Tuple[T, ...]:
    return tuple(items[:index]) + (item,) + tuple(items[index + 1 :])


def _remove_at(items: Sequence[T], index: int) -> Tuple[T, ...]:
    return tuple(items[:index]) + tuple(items[index + 1 :])


def _fresh_id(used: set[str]) -> str:
    """
    Return a random UUID that the session has never seen and record it.
    """
    while True:
        candidate = str(uuid.uuid4())
        if candidate not in used:
            used.add(candidate)
            return candidate


def _seed_topic(used: set[str]) -> Topic:
    return Topic(topic_id=_fresh_id(used))


def _seed_subchapter(used: set[str]) -> Subchapter:
    return Subchapter(subchapter_id=_fresh_id(used), topics=(_seed_topic(used),))


def _seed_chapter(used: set[str]) -> Chapter:
    return Chapter(chapter_id=_fresh_id(used), subchapters=(_seed_subchapter(used),))


def _chapter_at(tree: CurriculumTree, ci: int) -> Chapter:
    _check_index("chapter", ci, len(tree.chapters))
    return tree.chapters[ci]


def _subchapter_at(chapter: Chapter, si: int) -> Subchapter:
    subs = chapter.subchapters or ()
    _check_index("subchapter", si, len(subs))
    return subs[si]


def _with_chapter(tree: CurriculumTree, ci: int, chapter: Chapter) -> CurriculumTree:
    return replace(tree, chapters=_replace_at(tree.chapters, ci, chapter))


def _with_subchapter(tree: CurriculumTree, ci: int, si: int, sub: Subchapter) -> CurriculumTree:
    chapter = tree.chapters[ci]
    subs = _replace_at(chapter.subchapters or (), si, sub)
    return _with_chapter(tree, ci, replace(chapter, subchapters=subs))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def empty_tree() -> CurriculumTree:
    return CurriculumTree()


def new_tree() -> CurriculumTree:
    """
    Tree for a brand new course: one chapter holding one subchapter
    holding one empty topic.
    """
    return add_chapter(empty_tree())


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------


def add_chapter(tree: CurriculumTree) -> CurriculumTree:
    used = set(tree.issued_ids) | collect_ids(tree.chapters)
    chapter = _seed_chapter(used)
    logger.debug("add chapter %s at %d", chapter.chapter_id, len(tree.chapters))
    return CurriculumTree(chapters=tree.chapters + (chapter,), issued_ids=frozenset(used))


def edit_chapter_field(
    tree: CurriculumTree, ci: int, field: Union[ChapterField, str], value: str
) -> CurriculumTree:
    f = ChapterField(field)
    chapter = _chapter_at(tree, ci)
    return _with_chapter(tree, ci, replace(chapter, **{f.value: value}))


def delete_chapter(tree: CurriculumTree, ci: int) -> CurriculumTree:
    chapter = _chapter_at(tree, ci)
    logger.debug("delete chapter %s at %d", chapter.chapter_id, ci)
    return replace(tree, chapters=_remove_at(tree.chapters, ci))


# ---------------------------------------------------------------------------
# Subchapters
# ---------------------------------------------------------------------------


def add_subchapter(tree: CurriculumTree, ci: int) -> CurriculumTree:
    chapter = _chapter_at(tree, ci)
    used = set(tree.issued_ids) | collect_ids(tree.chapters)
    sub = _seed_subchapter(used)
    subs = (chapter.subchapters or ()) + (sub,)
    logger.debug("add subchapter %s to chapter %d", sub.subchapter_id, ci)
    out = _with_chapter(tree, ci, replace(chapter, subchapters=subs))
    return replace(out, issued_ids=frozenset(used))


def edit_subchapter_field(
    tree: CurriculumTree, ci: int, si: int, field: Union[SubchapterField, str], value: str
) -> CurriculumTree:
    f = SubchapterField(field)
    sub = _subchapter_at(_chapter_at(tree, ci), si)
    return _with_subchapter(tree, ci, si, replace(sub, **{f.value: value}))


def delete_subchapter(tree: CurriculumTree, ci: int, si: int) -> CurriculumTree:
    chapter = _chapter_at(tree, ci)
    if chapter.subchapters is None:
        return tree
    _check_index("subchapter", si, len(chapter.subchapters))
    logger.debug("delete subchapter %d of chapter %d", si, ci)
    return _with_chapter(tree, ci, replace(chapter, subchapters=_remove_at(chapter.subchapters, si)))


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


def add_topic(tree: CurriculumTree, ci: int, si: int) -> CurriculumTree:
    sub = _subchapter_at(_chapter_at(tree, ci), si)
    used = set(tree.issued_ids) | collect_ids(tree.chapters)
    topic = _seed_topic(used)
    logger.debug("add topic %s to %d/%d", topic.topic_id, ci, si)
    out = _with_subchapter(tree, ci, si, replace(sub, topics=(sub.topics or ()) + (topic,)))
    return replace(out, issued_ids=frozenset(used))


def edit_topic_field(
    tree: CurriculumTree, ci: int, si: int, ti: int, field: Union[TopicField, str], value: str
) -> CurriculumTree:
    f = TopicField(field)
    sub = _subchapter_at(_chapter_at(tree, ci), si)
    topics = sub.topics or ()
    _check_index("topic", ti, len(topics))
    topic = replace(topics[ti], **{f.value: value})
    return _with_subchapter(tree, ci, si, replace(sub, topics=_replace_at(topics, ti, topic)))


def delete_topic(tree: CurriculumTree, ci: int, si: int, ti: int) -> CurriculumTree:
    chapter = _chapter_at(tree, ci)
    if chapter.subchapters is None:
        return tree
    sub = _subchapter_at(chapter, si)
    if sub.topics is None:
        return tree
    _check_index("topic", ti, len(sub.topics))
    logger.debug("delete topic %d of %d/%d", ti, ci, si)
    return _with_subchapter(tree, ci, si, replace(sub, topics=_remove_at(sub.topics, ti)))


# ---------------------------------------------------------------------------
# Outline helpers (read-only)
# ---------------------------------------------------------------------------


def iter_topics(tree: CurriculumTree) -> Iterator[Tuple[int, int, int, Topic]]:
    for ci, chapter in enumerate(tree.chapters):
        for si, sub in enumerate(chapter.subchapters or ()):
            for ti, topic in enumerate(sub.topics or ()):
                yield ci, si, ti, topic


def first_topic(tree: CurriculumTree) -> Optional[Tuple[int, int, int]]:
    """
    Position a course viewer opens on: the first topic of the first
    subchapter (in display order) that has any topics.
    """
    for ci, si, ti, _topic in iter_topics(tree):
        return ci, si, ti
    return None


def count_nodes(tree: CurriculumTree) -> Tuple[int, int, int]:
    """
    Return (chapters, subchapters, topics).
    """
    n_sub = sum(len(ch.subchapters or ()) for ch in tree.chapters)
    n_topics = sum(1 for _ in iter_topics(tree))
    return len(tree.chapters), n_sub, n_topics
