import os
import unittest
from pathlib import Path
from unittest import mock

from coursebuilder.config import Settings, load_settings, make_store
from coursebuilder.firestore import FirestoreCourseStore
from coursebuilder.model import ROLES
from coursebuilder.storage import JsonCourseStore


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        s = load_settings({})
        self.assertEqual(s.backend, "local")
        self.assertEqual(s.role, "teacher")
        self.assertEqual(s.timeout, 30.0)
        self.assertEqual(s.draft_path.name, "draft.json")
        self.assertEqual(s.local_store_path.name, "courses.json")

    def test_reads_prefixed_variables(self) -> None:
        s = load_settings(
            {
                "COURSEBUILDER_HOME": "/tmp/cb",
                "COURSEBUILDER_ROLE": "Admin",
                "COURSEBUILDER_USER_ID": "u7",
                "COURSEBUILDER_USER_NAME": "Ivan Ivanov",
                "COURSEBUILDER_TIMEOUT": "5",
            }
        )
        self.assertEqual(s.home, Path("/tmp/cb"))
        self.assertEqual(s.draft_path, Path("/tmp/cb/draft.json"))
        actor = s.actor()
        self.assertEqual((actor.user_id, actor.role, actor.display_name), ("u7", "admin", "Ivan Ivanov"))
        self.assertEqual(s.timeout, 5.0)

    def test_rejects_bad_values(self) -> None:
        for env in (
            {"COURSEBUILDER_BACKEND": "sqlite"},
            {"COURSEBUILDER_ROLE": "janitor"},
            {"COURSEBUILDER_TIMEOUT": "soon"},
            {"COURSEBUILDER_TIMEOUT": "0"},
        ):
            with self.assertRaises(ValueError):
                load_settings(env)

    def test_every_role_is_accepted(self) -> None:
        for role in ROLES:
            self.assertEqual(load_settings({"COURSEBUILDER_ROLE": f" {role.upper()} "}).role, role)

    def test_reads_process_environment(self) -> None:
        env = {"COURSEBUILDER_BACKEND": "FIRESTORE", "COURSEBUILDER_TIMEOUT": "7.5", "COURSEBUILDER_HOME": ""}
        with mock.patch.dict(os.environ, env):
            s = load_settings()
        self.assertIsInstance(s, Settings)
        self.assertEqual(s.backend, "firestore")
        self.assertEqual(s.timeout, 7.5)
        self.assertEqual(s.home.name, "data")

    def test_explicit_mapping_ignores_process_environment(self) -> None:
        with mock.patch.dict(os.environ, {"COURSEBUILDER_ROLE": "student", "COURSEBUILDER_USER_ID": "env"}):
            s = load_settings({"COURSEBUILDER_USER_ID": "u1"})
        self.assertEqual((s.role, s.user_id), ("teacher", "u1"))

    def test_make_store(self) -> None:
        local = make_store(load_settings({"COURSEBUILDER_HOME": "/tmp/cb"}))
        self.assertIsInstance(local, JsonCourseStore)
        self.assertEqual(local.path, Path("/tmp/cb/courses.json"))

        remote = make_store(
            load_settings(
                {
                    "COURSEBUILDER_BACKEND": "firestore",
                    "COURSEBUILDER_PROJECT_ID": "proj",
                    "COURSEBUILDER_SCHOOL_ID": "school1",
                    "COURSEBUILDER_TIMEOUT": "12",
                }
            )
        )
        self.assertIsInstance(remote, FirestoreCourseStore)
        self.assertEqual(remote.timeout, 12.0)


if __name__ == "__main__":
    unittest.main()
