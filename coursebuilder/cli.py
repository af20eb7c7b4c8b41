"""
CLI (Command Line Interface).

Every command works on the current draft (data/draft.json by default):

    coursebuilder new --title "Algebra I" --subject Math
    coursebuilder show
    coursebuilder add-chapter
    coursebuilder set-topic 0 0 0 content "Linear equations ..."
    coursebuilder rm-subchapter 1 0
    coursebuilder validate
    coursebuilder save
    coursebuilder interactive

Indices are 0-based and match the numbers printed by `show`.

Exit codes:
- 0 success
- 1 user-correctable problem (validation, permission, store failure)
- 2 invalid index or argument
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree
from rich import box

from coursebuilder import tree as ops
from coursebuilder.config import Settings, load_settings, make_store
from coursebuilder.errors import CourseBuilderError, IndexOutOfRange, PersistenceError, ValidationError
from coursebuilder.export import (
    check_can_author,
    check_can_edit,
    export_course,
    export_course_update,
    hydrate_course,
    meta_for_actor,
    validate_course,
)
from coursebuilder.model import ChapterField, ClassInfo, CurriculumTree, SubchapterField, TopicField
from coursebuilder.storage import Draft, discard_draft, load_draft, save_draft

console = Console()
err_console = Console(stderr=True)

COURSE_FIELDS = ("title", "description", "subject")
PREVIEW_LEN = 40
START_MARK = "(start)"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _label(title: str, node_id: str) -> str:
    shown = escape(title.strip()) or "[italic red](untitled)[/]"
    return f"{shown} [dim]{escape(node_id[:8])}[/]"


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) > PREVIEW_LEN:
        flat = flat[: PREVIEW_LEN - 1].rstrip() + "…"
    return escape(flat) or "[italic red](no content)[/]"


def render_outline(draft: Draft) -> Tree:
    """
    Build a rich Tree of the draft: course header, then every chapter,
    subchapter and topic with its index. The topic a reader starts on
    is marked.
    """
    meta = draft.meta
    status = escape(draft.course_id or "not saved yet")
    title = escape(meta.title.strip()) or "[italic red](untitled course)[/]"
    subject = f" [green]{escape(meta.subject)}[/]" if meta.subject else ""
    root = Tree(f"[bold]{title}[/]{subject} [dim]({status})[/]")
    start = ops.first_topic(draft.tree)

    for ci, chapter in enumerate(draft.tree.chapters):
        ch_node = root.add(f"[bold cyan][{ci}][/] {_label(chapter.title, chapter.chapter_id)}")
        for si, sub in enumerate(chapter.subchapters or ()):
            sub_node = ch_node.add(f"[cyan][{si}][/] {_label(sub.title, sub.subchapter_id)}")
            for ti, topic in enumerate(sub.topics or ()):
                line = f"[yellow][{ti}][/] {_label(topic.title, topic.topic_id)} | {_preview(topic.content)}"
                if (ci, si, ti) == start:
                    line += f" [magenta]{START_MARK}[/]"
                sub_node.add(line)
    return root


def _print_violations(exc: ValidationError) -> None:
    console.print(f"[bold red]{len(exc.violations)} problem(s) must be fixed before saving:[/]")
    for v in exc.violations:
        console.print(f"  - {escape(v.path)}: {escape(v.message)}")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


# ---------------------------------------------------------------------------
# Draft helpers
# ---------------------------------------------------------------------------


def _require_draft(path: Path) -> Optional[Draft]:
    draft = load_draft(path)
    if draft is None:
        console.print("No draft. Run 'coursebuilder new' or 'coursebuilder open <course_id>' first.")
    return draft


def _mutate(path: Path, fn: Callable[[CurriculumTree], CurriculumTree]) -> int:
    """
    Apply one tree operation to the stored draft and write it back.
    """
    draft = _require_draft(path)
    if draft is None:
        return 1
    draft.tree = fn(draft.tree)
    save_draft(draft, path)
    n_ch, n_sub, n_top = ops.count_nodes(draft.tree)
    console.print(f"OK ({n_ch} chapters, {n_sub} subchapters, {n_top} topics)")
    return 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_new(args: argparse.Namespace, settings: Settings, draft_path: Path) -> int:
    actor = settings.actor()
    check_can_author(actor)

    if draft_path.exists() and not args.force:
        console.print("A draft already exists. Use --force to replace it or 'coursebuilder discard'.")
        return 1

    meta = meta_for_actor(
        actor,
        title=args.title or "",
        description=args.description or "",
        subject=args.subject or "",
        class_ids=args.class_ids,
    )
    save_draft(Draft(tree=ops.new_tree(), meta=meta), draft_path)
    console.print(f"New draft created: {escape(str(draft_path))}")
    return 0


def _cmd_open(args: argparse.Namespace, settings: Settings, draft_path: Path, store: Any) -> int:
    if draft_path.exists() and not args.force:
        console.print("A draft already exists. Use --force to replace it or 'coursebuilder discard'.")
        return 1

    course_id, tree, meta = hydrate_course(store.get_course(args.course_id))
    check_can_edit(settings.actor(), meta)
    save_draft(Draft(tree=tree, meta=meta, course_id=course_id or args.course_id), draft_path)
    console.print(f"Opened course {escape(args.course_id)} for editing.")
    return 0


def _cmd_show(draft_path: Path) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    console.print(render_outline(draft))
    if draft.meta.class_ids:
        console.print(f"Classes: {escape(', '.join(draft.meta.class_ids))}")
    return 0


def _cmd_set_course(args: argparse.Namespace, draft_path: Path) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    setattr(draft.meta, args.field, args.value)
    save_draft(draft, draft_path)
    console.print(f"Course {args.field} updated.")
    return 0


def _cmd_assign(args: argparse.Namespace, draft_path: Path, assign: bool) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    class_id = args.class_id.strip()
    ids = draft.meta.class_ids
    if assign and class_id not in ids:
        ids.append(class_id)
    elif not assign and class_id in ids:
        ids.remove(class_id)
    save_draft(draft, draft_path)
    console.print(f"Classes: {escape(', '.join(ids)) if ids else '(none)'}")
    return 0


def _cmd_validate(args: argparse.Namespace, draft_path: Path, store: Any) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    roster = store.list_classes() if args.classes else None
    violations = validate_course(draft.tree, draft.meta, roster)
    if violations:
        _print_violations(ValidationError(violations))
        return 1
    console.print("[green]Draft is valid.[/]")
    return 0


def _payload(draft: Draft, roster: Any = None) -> dict[str, Any]:
    if draft.course_id:
        return export_course_update(draft.tree, draft.meta, roster)
    return export_course(draft.tree, draft.meta, roster)


def _cmd_export(args: argparse.Namespace, draft_path: Path) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    payload = _payload(draft)
    out = Path(args.out)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default), encoding="utf-8")
    except OSError as exc:
        console.print(f"[red]Export failed:[/] {escape(str(exc))}")
        return 1
    console.print(f"Exported course payload to: {escape(str(out))}")
    return 0


def save_to_store(draft: Draft, store: Any, settings: Settings, draft_path: Path) -> str:
    """
    Validate the draft and write it to the store (create or update).

    The roster check only applies when the store knows any classes.
    On success the draft remembers the course id, so the next save
    updates the same course.
    """
    actor = settings.actor()
    if draft.course_id:
        check_can_edit(actor, draft.meta)
    else:
        check_can_author(actor)

    roster = store.list_classes() or None
    payload = _payload(draft, roster)

    if draft.course_id:
        store.update_course(draft.course_id, payload)
    else:
        draft.course_id = store.create_course(payload)
    save_draft(draft, draft_path)
    return draft.course_id


def _cmd_save(draft_path: Path, settings: Settings, store: Any) -> int:
    draft = _require_draft(draft_path)
    if draft is None:
        return 1
    try:
        course_id = save_to_store(draft, store, settings, draft_path)
    except PersistenceError as exc:
        console.print(f"[red]Save failed:[/] {escape(str(exc))}")
        console.print("Your draft is unchanged. Run 'coursebuilder save' again to retry.")
        return 1
    console.print(f"[green]Saved course {escape(course_id)}.[/]")
    return 0


def _cmd_delete(args: argparse.Namespace, settings: Settings, draft_path: Path, store: Any) -> int:
    """
    Delete a stored course. Only its owner or an admin may do this.
    A draft that was opened from the course forgets the course id, so a
    later save creates a new course instead of updating a missing one.
    """
    _course_id, _tree, meta = hydrate_course(store.get_course(args.course_id))
    check_can_edit(settings.actor(), meta)
    store.delete_course(args.course_id)

    draft = load_draft(draft_path)
    if draft is not None and draft.course_id == args.course_id:
        draft.course_id = None
        save_draft(draft, draft_path)
    console.print(f"Deleted course {escape(args.course_id)}.")
    return 0


def _cmd_list(args: argparse.Namespace, settings: Settings, store: Any) -> int:
    teacher_id = settings.user_id if args.mine else None
    courses = store.list_courses(teacher_id=teacher_id)
    if not courses:
        console.print("No courses.")
        return 0

    table = Table(title="Courses", box=box.SIMPLE)
    table.add_column("Course ID")
    table.add_column("Title")
    table.add_column("Subject")
    table.add_column("Teacher")
    table.add_column("Chapters", justify="right")
    for c in sorted(courses, key=lambda c: str(c.get("title", "")).lower()):
        table.add_row(
            escape(str(c.get("courseId", ""))),
            escape(str(c.get("title", "") or "(no title)")),
            escape(str(c.get("subject", "") or "")),
            escape(str(c.get("teacherName", "") or "")),
            str(len(c.get("chapters") or [])),
        )
    console.print(table)
    return 0


def _cmd_classes(store: Any) -> int:
    classes = store.list_classes()
    if not classes:
        console.print("No classes.")
        return 0
    for c in classes:
        console.print(f"{escape(c.class_id)} | {escape(c.class_name)}")
    return 0


def _cmd_add_class(args: argparse.Namespace, store: Any) -> int:
    if not hasattr(store, "add_class"):
        console.print("The class roster of this backend is managed elsewhere.")
        return 1
    store.add_class(ClassInfo(class_id=args.class_id.strip(), class_name=args.name.strip()))
    console.print(f"Class saved: {escape(args.class_id)}")
    return 0


def _cmd_discard(draft_path: Path) -> int:
    if discard_draft(draft_path):
        console.print("Draft discarded.")
    else:
        console.print("No draft.")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="coursebuilder", description="Course curriculum editor")
    parser.add_argument("--draft", type=str, default=None, help="Draft file (default: data/draft.json)")
    parser.add_argument("--store", type=str, default=None, help="Local course store file (local backend)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_new = sub.add_parser("new", help="Start a new course draft")
    p_new.add_argument("--title", type=str, default="")
    p_new.add_argument("--description", type=str, default="")
    p_new.add_argument("--subject", type=str, default="")
    p_new.add_argument("--class", dest="class_ids", action="append", default=[], help="Class ID (repeatable)")
    p_new.add_argument("--force", action="store_true", help="Replace an existing draft")

    p_open = sub.add_parser("open", help="Load a stored course into the draft")
    p_open.add_argument("course_id", type=str)
    p_open.add_argument("--force", action="store_true", help="Replace an existing draft")

    sub.add_parser("show", help="Print the draft outline")

    sub.add_parser("add-chapter", help="Append a chapter")
    p = sub.add_parser("add-subchapter", help="Append a subchapter to a chapter")
    p.add_argument("chapter", type=int)
    p = sub.add_parser("add-topic", help="Append a topic to a subchapter")
    p.add_argument("chapter", type=int)
    p.add_argument("subchapter", type=int)

    p = sub.add_parser("set-chapter", help="Edit a chapter field")
    p.add_argument("chapter", type=int)
    p.add_argument("field", choices=[f.value for f in ChapterField])
    p.add_argument("value", type=str)
    p = sub.add_parser("set-subchapter", help="Edit a subchapter field")
    p.add_argument("chapter", type=int)
    p.add_argument("subchapter", type=int)
    p.add_argument("field", choices=[f.value for f in SubchapterField])
    p.add_argument("value", type=str)
    p = sub.add_parser("set-topic", help="Edit a topic field")
    p.add_argument("chapter", type=int)
    p.add_argument("subchapter", type=int)
    p.add_argument("topic", type=int)
    p.add_argument("field", choices=[f.value for f in TopicField])
    p.add_argument("value", type=str)

    p = sub.add_parser("rm-chapter", help="Delete a chapter")
    p.add_argument("chapter", type=int)
    p = sub.add_parser("rm-subchapter", help="Delete a subchapter")
    p.add_argument("chapter", type=int)
    p.add_argument("subchapter", type=int)
    p = sub.add_parser("rm-topic", help="Delete a topic")
    p.add_argument("chapter", type=int)
    p.add_argument("subchapter", type=int)
    p.add_argument("topic", type=int)

    p = sub.add_parser("set-course", help="Edit course title/description/subject")
    p.add_argument("field", choices=COURSE_FIELDS)
    p.add_argument("value", type=str)
    p = sub.add_parser("assign", help="Assign the course to a class")
    p.add_argument("class_id", type=str)
    p = sub.add_parser("unassign", help="Remove a class assignment")
    p.add_argument("class_id", type=str)

    p = sub.add_parser("validate", help="Check the draft for missing required fields")
    p.add_argument("--classes", action="store_true", help="Also check class IDs against the roster")
    p = sub.add_parser("export", help="Write the course payload as JSON")
    p.add_argument("out", type=str, help="Output file path (e.g. course.json)")
    sub.add_parser("save", help="Validate and save the draft to the course store")

    p = sub.add_parser("delete", help="Delete a stored course")
    p.add_argument("course_id", type=str)
    p = sub.add_parser("list", help="List stored courses")
    p.add_argument("--mine", action="store_true", help="Only courses owned by the current user")
    sub.add_parser("classes", help="List classes available for assignment")
    p = sub.add_parser("add-class", help="Add a class to the local roster")
    p.add_argument("class_id", type=str)
    p.add_argument("name", type=str)

    sub.add_parser("discard", help="Delete the draft without saving")
    sub.add_parser("interactive", help="Interactive menu mode")

    return parser


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _dispatch(args: argparse.Namespace, settings: Settings, draft_path: Path) -> int:
    cmd = args.command
    store_path = Path(args.store) if args.store else None

    if cmd == "new":
        return _cmd_new(args, settings, draft_path)
    if cmd == "show":
        return _cmd_show(draft_path)
    if cmd == "discard":
        return _cmd_discard(draft_path)
    if cmd == "export":
        return _cmd_export(args, draft_path)
    if cmd == "set-course":
        return _cmd_set_course(args, draft_path)
    if cmd in ("assign", "unassign"):
        return _cmd_assign(args, draft_path, assign=cmd == "assign")

    if cmd == "add-chapter":
        return _mutate(draft_path, ops.add_chapter)
    if cmd == "add-subchapter":
        return _mutate(draft_path, lambda t: ops.add_subchapter(t, args.chapter))
    if cmd == "add-topic":
        return _mutate(draft_path, lambda t: ops.add_topic(t, args.chapter, args.subchapter))
    if cmd == "set-chapter":
        return _mutate(draft_path, lambda t: ops.edit_chapter_field(t, args.chapter, args.field, args.value))
    if cmd == "set-subchapter":
        return _mutate(
            draft_path, lambda t: ops.edit_subchapter_field(t, args.chapter, args.subchapter, args.field, args.value)
        )
    if cmd == "set-topic":
        return _mutate(
            draft_path,
            lambda t: ops.edit_topic_field(t, args.chapter, args.subchapter, args.topic, args.field, args.value),
        )
    if cmd == "rm-chapter":
        return _mutate(draft_path, lambda t: ops.delete_chapter(t, args.chapter))
    if cmd == "rm-subchapter":
        return _mutate(draft_path, lambda t: ops.delete_subchapter(t, args.chapter, args.subchapter))
    if cmd == "rm-topic":
        return _mutate(draft_path, lambda t: ops.delete_topic(t, args.chapter, args.subchapter, args.topic))

    # Everything below talks to the course store
    store = make_store(settings, store_path)
    if cmd == "open":
        return _cmd_open(args, settings, draft_path, store)
    if cmd == "validate":
        return _cmd_validate(args, draft_path, store)
    if cmd == "save":
        return _cmd_save(draft_path, settings, store)
    if cmd == "delete":
        return _cmd_delete(args, settings, draft_path, store)
    if cmd == "list":
        return _cmd_list(args, settings, store)
    if cmd == "classes":
        return _cmd_classes(store)
    if cmd == "add-class":
        return _cmd_add_class(args, store)
    if cmd == "interactive":
        from coursebuilder.interactive import run_interactive

        check_can_author(settings.actor())
        run_interactive(draft_path, store, settings)
        return 0

    return 2


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        settings = load_settings()
    except ValueError as exc:
        err_console.print(f"Configuration error: {escape(str(exc))}")
        raise SystemExit(2)

    draft_path = Path(args.draft) if args.draft else settings.draft_path

    try:
        code = _dispatch(args, settings, draft_path)
    except IndexOutOfRange as exc:
        err_console.print(f"[red]Error:[/] {escape(str(exc))}")
        code = 2
    except ValidationError as exc:
        _print_violations(exc)
        code = 1
    except CourseBuilderError as exc:
        err_console.print(f"[red]Error:[/] {escape(str(exc))}")
        code = 1

    raise SystemExit(code)
