"""
Exception types raised by coursebuilder.

- IndexOutOfRange: an index into chapters/subchapters/topics is invalid.
  This is a caller defect, not something the user can fix.
- ValidationError: required fields are empty. Carries every violation.
- PermissionDenied, CourseNotFound, PersistenceError: raised by the
  access checks and the course stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


class CourseBuilderError(Exception):
    pass


class IndexOutOfRange(CourseBuilderError, IndexError):
    def __init__(self, level: str, index: int, length: int) -> None:
        self.level = level
        self.index = index
        self.length = length
        valid = f"0..{length - 1}" if length else f"no {level}s"
        super().__init__(f"{level} index {index} out of range ({valid})")


@dataclass(frozen=True)
class Violation:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationError(CourseBuilderError):
    def __init__(self, violations: Iterable[Violation]) -> None:
        self.violations = list(violations)
        lines = "\n".join(f"- {v}" for v in self.violations)
        super().__init__(f"{len(self.violations)} validation error(s):\n{lines}")


class PermissionDenied(CourseBuilderError):
    pass


class CourseNotFound(CourseBuilderError):
    def __init__(self, course_id: str) -> None:
        self.course_id = course_id
        super().__init__(f"Course not found: {course_id}")


class PersistenceError(CourseBuilderError):
    pass
