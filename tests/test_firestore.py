"""
Tests for the Firestore REST store.

The HTTP session is a mock; responses are real requests.Response objects
so raise_for_status() behaves as in production.
"""

import json
import unittest
from datetime import datetime, timezone
from unittest import mock

import requests

from coursebuilder.errors import CourseNotFound, PersistenceError
from coursebuilder.firestore import (
    FirestoreCourseStore,
    decode_document,
    decode_value,
    encode_fields,
    encode_value,
)
from coursebuilder.model import ClassInfo


def _response(status: int, payload=None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(payload if payload is not None else {}).encode("utf-8")
    resp.encoding = "utf-8"
    resp.url = "https://firestore.test"
    resp.reason = "test"
    return resp


def _store(*responses: requests.Response) -> FirestoreCourseStore:
    session = mock.Mock()
    session.request.side_effect = list(responses)
    return FirestoreCourseStore("proj", "school1", api_key="k", id_token="tok", session=session)


class TestCodec(unittest.TestCase):
    def test_scalars(self) -> None:
        self.assertEqual(encode_value(None), {"nullValue": None})
        self.assertEqual(encode_value(True), {"booleanValue": True})
        self.assertEqual(encode_value(3), {"integerValue": "3"})
        self.assertEqual(encode_value(1.5), {"doubleValue": 1.5})
        self.assertEqual(encode_value("x"), {"stringValue": "x"})

    def test_nested_course_document(self) -> None:
        doc = {
            "title": "Math",
            "classIds": ["10a", "10b"],
            "chapters": [{"chapterId": "c1", "subchapters": []}],
            "createdAt": datetime(2026, 10, 18, 9, 30, 0, 123000, tzinfo=timezone.utc),
        }
        encoded = encode_fields(doc)
        self.assertEqual(encoded["createdAt"], {"timestampValue": "2026-10-18T09:30:00.123000Z"})
        self.assertEqual(encoded["chapters"]["arrayValue"]["values"][0]["mapValue"]["fields"]["subchapters"],
                         {"arrayValue": {"values": []}})
        self.assertEqual(decode_document({"fields": encoded}, "courseId")["chapters"], doc["chapters"])
        self.assertEqual(decode_value(encoded["createdAt"]), doc["createdAt"])

    def test_decode_server_shapes(self) -> None:
        # servers omit "values"/"fields" for empty containers and send nanoseconds
        self.assertEqual(decode_value({"arrayValue": {}}), [])
        self.assertEqual(decode_value({"mapValue": {}}), {})
        self.assertEqual(
            decode_value({"timestampValue": "2026-01-02T03:04:05.123456789Z"}),
            datetime(2026, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc),
        )
        self.assertEqual(
            decode_value({"timestampValue": "2026-01-02T03:04:05Z"}),
            datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )

    def test_document_id_from_name(self) -> None:
        doc = {"name": "projects/p/databases/(default)/documents/schools/s/courses/abc", "fields": {}}
        self.assertEqual(decode_document(doc, "courseId"), {"courseId": "abc"})

    def test_unsupported_type(self) -> None:
        with self.assertRaises(TypeError):
            encode_value(object())


class TestFirestoreCourseStore(unittest.TestCase):
    def test_get_course(self) -> None:
        doc = {
            "name": "projects/proj/databases/(default)/documents/schools/school1/courses/abc",
            "fields": encode_fields({"title": "Math"}),
        }
        store = _store(_response(200, doc))
        self.assertEqual(store.get_course("abc"), {"title": "Math", "courseId": "abc"})

        method, url = store.session.request.call_args[0]
        kwargs = store.session.request.call_args[1]
        self.assertEqual(method, "GET")
        self.assertTrue(url.endswith("/documents/schools/school1/courses/abc"))
        self.assertIn(("key", "k"), kwargs["params"])
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")

    def test_get_missing_course(self) -> None:
        store = _store(_response(404, {"error": {"code": 404}}))
        with self.assertRaises(CourseNotFound):
            store.get_course("nope")

    def test_server_error_is_persistence_error(self) -> None:
        store = _store(_response(503))
        with self.assertRaises(PersistenceError):
            store.get_course("abc")

    def test_network_error_is_persistence_error(self) -> None:
        session = mock.Mock()
        session.request.side_effect = requests.ConnectionError("offline")
        store = FirestoreCourseStore("proj", "school1", session=session)
        with self.assertRaises(PersistenceError) as ctx:
            store.list_classes()
        self.assertIsInstance(ctx.exception.__cause__, requests.ConnectionError)

    def test_create_course_uses_generated_id(self) -> None:
        store = _store(_response(200, {}))
        course_id = store.create_course({"title": "Math"})

        kwargs = store.session.request.call_args[1]
        self.assertIn(("documentId", course_id), kwargs["params"])
        self.assertEqual(kwargs["json"]["fields"]["courseId"], {"stringValue": course_id})
        self.assertEqual(kwargs["json"]["fields"]["title"], {"stringValue": "Math"})

    def test_update_course_sends_mask(self) -> None:
        store = _store(_response(200, {}))
        store.update_course("abc", {"title": "Math II", "chapters": []})

        method = store.session.request.call_args[0][0]
        params = store.session.request.call_args[1]["params"]
        self.assertEqual(method, "PATCH")
        self.assertIn(("updateMask.fieldPaths", "title"), params)
        self.assertIn(("updateMask.fieldPaths", "chapters"), params)
        self.assertIn(("currentDocument.exists", "true"), params)

    def test_update_missing_course(self) -> None:
        store = _store(_response(404))
        with self.assertRaises(CourseNotFound):
            store.update_course("nope", {"title": "x"})

    def test_delete_course_requires_existing_document(self) -> None:
        store = _store(_response(200, {}))
        store.delete_course("abc")

        method, url = store.session.request.call_args[0]
        params = store.session.request.call_args[1]["params"]
        self.assertEqual(method, "DELETE")
        self.assertTrue(url.endswith("/courses/abc"))
        self.assertIn(("currentDocument.exists", "true"), params)

    def test_delete_missing_course(self) -> None:
        store = _store(_response(404))
        with self.assertRaises(CourseNotFound):
            store.delete_course("nope")

    def test_list_courses_by_teacher_runs_query(self) -> None:
        rows = [
            {"document": {"name": ".../courses/a", "fields": encode_fields({"title": "A", "teacherId": "u1"})}},
            {"readTime": "2026-10-18T09:00:00Z"},
        ]
        store = _store(_response(200, rows))
        courses = store.list_courses(teacher_id="u1")

        self.assertEqual(courses, [{"title": "A", "teacherId": "u1", "courseId": "a"}])
        method, url = store.session.request.call_args[0]
        body = store.session.request.call_args[1]["json"]
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/schools/school1:runQuery"))
        self.assertEqual(body["structuredQuery"]["where"]["fieldFilter"]["value"], {"stringValue": "u1"})

    def test_list_classes_follows_pages(self) -> None:
        page1 = {
            "documents": [{"name": ".../classes/c1", "fields": encode_fields({"className": "10A"})}],
            "nextPageToken": "next",
        }
        page2 = {"documents": [{"name": ".../classes/c2", "fields": encode_fields({"className": "10B"})}]}
        store = _store(_response(200, page1), _response(200, page2))

        self.assertEqual(store.list_classes(), [ClassInfo("c1", "10A"), ClassInfo("c2", "10B")])
        second_params = store.session.request.call_args_list[1][1]["params"]
        self.assertIn(("pageToken", "next"), second_params)

    def test_requires_project_and_school(self) -> None:
        with self.assertRaises(ValueError):
            FirestoreCourseStore("", "school1")


if __name__ == "__main__":
    unittest.main()
