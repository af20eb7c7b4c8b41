"""
coursebuilder: curriculum tree editor for school courses.
"""

from pathlib import Path

from coursebuilder.errors import IndexOutOfRange, ValidationError, Violation
from coursebuilder.export import export_course, export_course_update, export_tree, hydrate_course, validate_tree
from coursebuilder.model import (
    Chapter,
    ChapterField,
    CourseMeta,
    CurriculumTree,
    Subchapter,
    SubchapterField,
    Topic,
    TopicField,
)
from coursebuilder.tree import (
    add_chapter,
    add_subchapter,
    add_topic,
    delete_chapter,
    delete_subchapter,
    delete_topic,
    edit_chapter_field,
    edit_subchapter_field,
    edit_topic_field,
    empty_tree,
    new_tree,
)

__version__ = (Path(__file__).resolve().parent / "VERSION").read_text(encoding="utf-8").strip()
