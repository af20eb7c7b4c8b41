from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from coursebuilder import tree as ops
from coursebuilder.cli import COURSE_FIELDS, render_outline, save_to_store
from coursebuilder.config import Settings
from coursebuilder.errors import CourseBuilderError, IndexOutOfRange, PersistenceError, ValidationError
from coursebuilder.export import check_can_edit, hydrate_course, meta_for_actor, validate_course
from coursebuilder.model import ChapterField, CurriculumTree, SubchapterField, TopicField
from coursebuilder.storage import Draft, load_draft, save_draft

console = Console()


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str) -> str:
    return console.input(msg)


def _ask_index(label: str) -> Optional[int]:
    """
    Ask for a 0-based index. Returns None on blank input or non-numbers.
    """
    raw = _prompt(f"{label} # \\[blank = back]: ").strip()
    if not raw:
        return None
    if not raw.isdigit():
        _println("Not a number.")
        return None
    return int(raw)


def _ask_path(depth: int) -> Optional[tuple[int, ...]]:
    labels = ("Chapter", "Subchapter", "Topic")[:depth]
    path: list[int] = []
    for label in labels:
        i = _ask_index(label)
        if i is None:
            return None
        path.append(i)
    return tuple(path)


def _ask_choice(label: str, options: tuple[str, ...]) -> Optional[str]:
    if len(options) == 1:
        return options[0]
    raw = _prompt(f"{label} ({'/'.join(options)}): ").strip().lower()
    if raw not in options:
        _println("Invalid choice.")
        return None
    return raw


def _apply(draft: Draft, draft_path: Path, fn: Callable[[CurriculumTree], CurriculumTree]) -> None:
    """
    Run one tree operation; on success persist the draft right away.
    """
    try:
        draft.tree = fn(draft.tree)
    except IndexOutOfRange as exc:
        _println(f"Out of range: {escape(str(exc))}")
        return
    save_draft(draft, draft_path)


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


def _flow_start(draft_path: Path, store: Any, settings: Settings) -> Optional[Draft]:
    """
    No draft yet: start a new course or open a stored one.
    """
    while True:
        choice = _prompt("\nNo draft.\n[1] New course\n[2] Open stored course\n[0] Exit\nSelect: ").strip()
        if choice == "0":
            return None
        if choice == "1":
            title = _prompt("Course title: ").strip()
            subject = _prompt("Subject: ").strip()
            meta = meta_for_actor(settings.actor(), title=title, subject=subject)
            draft = Draft(tree=ops.new_tree(), meta=meta)
            save_draft(draft, draft_path)
            return draft
        if choice == "2":
            draft = _flow_open(store, settings)
            if draft is not None:
                save_draft(draft, draft_path)
                return draft
        else:
            _println("Invalid choice.")


def _flow_open(store: Any, settings: Settings) -> Optional[Draft]:
    teacher_id = None if settings.role == "admin" else settings.user_id
    courses = store.list_courses(teacher_id=teacher_id)
    if not courses:
        _println("No courses.")
        return None

    table = Table(title="Stored courses", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Course")
    for i, c in enumerate(courses):
        title = escape(str(c.get("title") or "(no title)"))
        table.add_row(str(i), f"[bold cyan]{title}[/] | {escape(str(c.get('subject') or ''))}")
    console.print(table)

    i = _ask_index("Course")
    if i is None:
        return None
    if not (0 <= i < len(courses)):
        _println("Out of range.")
        return None

    course_id, tree, meta = hydrate_course(courses[i])
    check_can_edit(settings.actor(), meta)
    return Draft(tree=tree, meta=meta, course_id=course_id)


def _flow_add(draft: Draft, draft_path: Path) -> None:
    level = _ask_choice("Add", ("chapter", "subchapter", "topic"))
    if level == "chapter":
        _apply(draft, draft_path, ops.add_chapter)
    elif level == "subchapter":
        path = _ask_path(1)
        if path:
            _apply(draft, draft_path, lambda t: ops.add_subchapter(t, *path))
    elif level == "topic":
        path = _ask_path(2)
        if path:
            _apply(draft, draft_path, lambda t: ops.add_topic(t, *path))


def _flow_edit(draft: Draft, draft_path: Path) -> None:
    level = _ask_choice("Edit", ("chapter", "subchapter", "topic"))
    if level is None:
        return

    depth = {"chapter": 1, "subchapter": 2, "topic": 3}[level]
    fields = {
        "chapter": tuple(f.value for f in ChapterField),
        "subchapter": tuple(f.value for f in SubchapterField),
        "topic": tuple(f.value for f in TopicField),
    }[level]

    path = _ask_path(depth)
    if path is None:
        return
    field = _ask_choice("Field", fields)
    if field is None:
        return
    value = _prompt(f"New {field}: ")

    if level == "chapter":
        _apply(draft, draft_path, lambda t: ops.edit_chapter_field(t, *path, field, value))
    elif level == "subchapter":
        _apply(draft, draft_path, lambda t: ops.edit_subchapter_field(t, *path, field, value))
    else:
        _apply(draft, draft_path, lambda t: ops.edit_topic_field(t, *path, field, value))


def _flow_delete(draft: Draft, draft_path: Path) -> None:
    level = _ask_choice("Delete", ("chapter", "subchapter", "topic"))
    if level is None:
        return
    path = _ask_path({"chapter": 1, "subchapter": 2, "topic": 3}[level])
    if path is None:
        return

    sure = _prompt(f"Delete {level} {'/'.join(str(i) for i in path)}? \\[y/N]: ").strip().lower()
    if sure != "y":
        return

    fn = {"chapter": ops.delete_chapter, "subchapter": ops.delete_subchapter, "topic": ops.delete_topic}[level]
    _apply(draft, draft_path, lambda t: fn(t, *path))


def _flow_course_details(draft: Draft, draft_path: Path) -> None:
    field = _ask_choice("Field", COURSE_FIELDS)
    if field is None:
        return
    current = getattr(draft.meta, field)
    value = _prompt(f"New {field} \\[blank = keep '{escape(current)}']: ").strip()
    if value:
        setattr(draft.meta, field, value)
        save_draft(draft, draft_path)


def _flow_classes(draft: Draft, draft_path: Path, store: Any) -> None:
    """
    Toggle class assignments from the roster.
    """
    roster = store.list_classes()
    if not roster:
        _println("No classes in the roster.")
        return

    while True:
        table = Table(title="Classes", box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column("Class")
        table.add_column("Assigned")
        for i, c in enumerate(roster):
            mark = "[green]yes[/]" if c.class_id in draft.meta.class_ids else ""
            table.add_row(str(i), escape(c.class_name), mark)
        console.print(table)

        i = _ask_index("Toggle class")
        if i is None:
            return
        if not (0 <= i < len(roster)):
            _println("Out of range.")
            continue

        class_id = roster[i].class_id
        if class_id in draft.meta.class_ids:
            draft.meta.class_ids.remove(class_id)
        else:
            draft.meta.class_ids.append(class_id)
        save_draft(draft, draft_path)


def _flow_validate(draft: Draft) -> None:
    violations = validate_course(draft.tree, draft.meta)
    if not violations:
        _println("[green]Draft is valid.[/]")
        return
    _println(f"[bold red]{len(violations)} problem(s):[/]")
    for v in violations:
        _println(f"  - {escape(str(v))}")


def _flow_save(draft: Draft, draft_path: Path, store: Any, settings: Settings) -> None:
    try:
        course_id = save_to_store(draft, store, settings, draft_path)
    except ValidationError as exc:
        _println(f"[bold red]{len(exc.violations)} problem(s) must be fixed before saving:[/]")
        for v in exc.violations:
            _println(f"  - {escape(str(v))}")
        return
    except PersistenceError as exc:
        _println(f"[red]Save failed:[/] {escape(str(exc))}")
        _println("Draft kept. Choose [7] again to retry.")
        return
    _println(f"[green]Saved course {escape(course_id)}.[/]")


def run_interactive(draft_path: Path, store: Any, settings: Settings) -> None:
    """
    Interactive menu loop over the draft. Every change is written to the
    draft file immediately, so quitting never loses work.
    """
    draft = load_draft(draft_path)
    if draft is None:
        draft = _flow_start(draft_path, store, settings)
        if draft is None:
            _println("Bye.")
            return

    while True:
        _println()
        console.print(render_outline(draft))
        n_ch, n_sub, n_top = ops.count_nodes(draft.tree)
        _println(f"Chapters: {n_ch} | Subchapters: {n_sub} | Topics: {n_top}")

        choice = _prompt(
            "\n[1] Add\n"
            "[2] Edit\n"
            "[3] Delete\n"
            "[4] Course details\n"
            "[5] Assign classes\n"
            "[6] Validate\n"
            "[7] Save\n"
            "[0] Exit\n"
            "Select: "
        ).strip()

        if choice == "0":
            _println("Bye.")
            return

        try:
            if choice == "1":
                _flow_add(draft, draft_path)
            elif choice == "2":
                _flow_edit(draft, draft_path)
            elif choice == "3":
                _flow_delete(draft, draft_path)
            elif choice == "4":
                _flow_course_details(draft, draft_path)
            elif choice == "5":
                _flow_classes(draft, draft_path, store)
            elif choice == "6":
                _flow_validate(draft)
            elif choice == "7":
                _flow_save(draft, draft_path, store, settings)
            else:
                _println("Invalid choice.")
        except CourseBuilderError as exc:
            _println(f"[red]Error:[/] {escape(str(exc))}")
