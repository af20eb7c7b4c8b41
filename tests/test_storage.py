"""
Unit tests for draft storage and the local JSON course store.

Storage contract:
- missing/invalid draft file -> None
- the draft keeps issued ids, so deleted ids stay reserved
- the local store behaves like the hosted one (courseId, not-found errors)
"""

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from coursebuilder import tree as ops
from coursebuilder.errors import CourseNotFound, PersistenceError
from coursebuilder.model import ClassInfo, CourseMeta
from coursebuilder.storage import Draft, JsonCourseStore, discard_draft, load_draft, save_draft


class TestDraft(unittest.TestCase):
    def test_load_missing_file_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            self.assertIsNone(load_draft(Path(d) / "missing.json"))

    def test_load_corrupt_file_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "draft.json"
            p.write_text("{not json", encoding="utf-8")
            with self.assertLogs("coursebuilder.storage", level="WARNING"):
                self.assertIsNone(load_draft(p))

    def test_save_and_load_roundtrip(self) -> None:
        t = ops.edit_chapter_field(ops.new_tree(), 0, "title", "Numbers")
        deleted = ops.add_chapter(t)
        gone = deleted.chapters[1].chapter_id
        t = ops.delete_chapter(deleted, 1)

        draft = Draft(tree=t, meta=CourseMeta(title="Math", class_ids=["10a"]), course_id="abc")
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "nested" / "draft.json"
            save_draft(draft, p)
            loaded = load_draft(p)

            self.assertIsNotNone(loaded)
            assert loaded is not None
            self.assertEqual(loaded.tree, t)
            self.assertEqual(loaded.meta, draft.meta)
            self.assertEqual(loaded.course_id, "abc")
            self.assertIn(gone, loaded.tree.issued_ids)

            data = json.loads(p.read_text(encoding="utf-8"))
            self.assertEqual(data["chapters"][0]["title"], "Numbers")

    def test_discard(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "draft.json"
            self.assertFalse(discard_draft(p))
            save_draft(Draft(tree=ops.new_tree()), p)
            self.assertTrue(discard_draft(p))
            self.assertFalse(p.exists())


class TestJsonCourseStore(unittest.TestCase):
    def test_create_get_update_delete(self) -> None:
        created = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
        with tempfile.TemporaryDirectory() as d:
            store = JsonCourseStore(Path(d) / "courses.json")
            course_id = store.create_course({"title": "Math", "teacherId": "u1", "createdAt": created})

            doc = store.get_course(course_id)
            self.assertEqual(doc["courseId"], course_id)
            self.assertEqual(doc["createdAt"], created)

            store.update_course(course_id, {"title": "Math II"})
            self.assertEqual(store.get_course(course_id)["title"], "Math II")
            self.assertEqual(store.get_course(course_id)["teacherId"], "u1")

            store.delete_course(course_id)
            with self.assertRaises(CourseNotFound):
                store.get_course(course_id)

    def test_update_missing_course(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store = JsonCourseStore(Path(d) / "courses.json")
            with self.assertRaises(CourseNotFound):
                store.update_course("nope", {"title": "x"})

    def test_list_courses_by_teacher(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store = JsonCourseStore(Path(d) / "courses.json")
            store.create_course({"title": "A", "teacherId": "u1"})
            store.create_course({"title": "B", "teacherId": "u2"})
            self.assertEqual(len(store.list_courses()), 2)
            self.assertEqual([c["title"] for c in store.list_courses(teacher_id="u2")], ["B"])

    def test_classes(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            store = JsonCourseStore(Path(d) / "courses.json")
            self.assertEqual(store.list_classes(), [])
            store.add_class(ClassInfo("c2", "10B"))
            store.add_class(ClassInfo("c1", "10A"))
            store.add_class(ClassInfo("c2", "10B (new)"))
            self.assertEqual(store.list_classes(), [ClassInfo("c1", "10A"), ClassInfo("c2", "10B (new)")])

    def test_corrupt_store_raises(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "courses.json"
            p.write_text("[1, 2", encoding="utf-8")
            with self.assertRaises(PersistenceError):
                JsonCourseStore(p).list_courses()


if __name__ == "__main__":
    unittest.main()
