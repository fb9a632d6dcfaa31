from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import closing
from dataclasses import asdict, is_dataclass
from typing import Any, Sequence

from teamtasks.config import SETTINGS, Settings
from teamtasks.domain.enums import TaskStatus
from teamtasks.domain.errors import RegistryError
from teamtasks.infra.logging import setup_logging
from teamtasks.infra.memory import Memory
from teamtasks.infra.state import StableState, open_memory
from teamtasks.services.access import AdminPolicy
from teamtasks.services.registry import RegistryService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="team-tasks", description="Task and member registry")
    parser.add_argument("--caller", default="anonymous", help="identity the call is made as")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("get-task").add_argument("task_id", type=int)
    commands.add_parser("list-tasks").add_argument(
        "--status", type=TaskStatus, choices=list(TaskStatus), help="only tasks in this state"
    )
    commands.add_parser("search-tasks").add_argument("text")
    by_member = commands.add_parser("tasks-by-member")
    by_member.add_argument("identity")
    completion = by_member.add_mutually_exclusive_group()
    completion.add_argument("--completed", dest="completed", action="store_const", const=True)
    completion.add_argument("--pending", dest="completed", action="store_const", const=False)
    commands.add_parser("stats")

    for name in ("create-task", "update-task"):
        sub = commands.add_parser(name)
        if name == "update-task":
            sub.add_argument("task_id", type=int)
        sub.add_argument("--title", required=True)
        sub.add_argument("--description", required=True)
        sub.add_argument("--assignee", required=True)
        sub.add_argument("--deadline", type=int, required=True, help="hours from the task start")
    commands.add_parser("complete-task").add_argument("task_id", type=int)
    commands.add_parser("delete-task").add_argument("task_id", type=int)

    commands.add_parser("get-member").add_argument("member_id", type=int)
    commands.add_parser("list-members")
    commands.add_parser("is-member").add_argument("identity")
    commands.add_parser("add-member").add_argument("principal_id")
    update_member = commands.add_parser("update-member")
    update_member.add_argument("member_id", type=int)
    update_member.add_argument("principal_id")
    commands.add_parser("delete-member").add_argument("member_id", type=int)
    return parser


def open_registry(memory: Memory, settings: Settings) -> RegistryService:
    state = StableState.init(memory, settings.bucket_size_pages)
    return RegistryService.from_state(state, AdminPolicy(settings.admin_identity))


def dispatch(registry: RegistryService, args: argparse.Namespace) -> Any:
    caller = args.caller
    command = args.command
    if command in ("create-task", "update-task"):
        fields = {
            "title": args.title,
            "description": args.description,
            "assigned_to": args.assignee,
            "deadline": args.deadline,
        }
        if command == "create-task":
            return registry.create_task(caller, fields)
        return registry.update_task(caller, args.task_id, fields)

    handlers = {
        "get-task": lambda: registry.get_task(args.task_id),
        "list-tasks": lambda: registry.get_all_tasks(args.status),
        "search-tasks": lambda: registry.search_task(args.text),
        "tasks-by-member": lambda: registry.get_tasks_by_member(args.identity, args.completed),
        "stats": registry.get_task_stats,
        "complete-task": lambda: registry.complete_task(caller, args.task_id),
        "delete-task": lambda: registry.delete_task(caller, args.task_id),
        "get-member": lambda: registry.get_member(args.member_id),
        "list-members": registry.get_all_members,
        "is-member": lambda: registry.is_member(args.identity),
        "add-member": lambda: registry.add_member(caller, {"principal_id": args.principal_id}),
        "update-member": lambda: registry.update_member(
            caller, args.member_id, {"principal_id": args.principal_id}
        ),
        "delete-member": lambda: registry.delete_member(caller, args.member_id),
    }
    return handlers[command]()


def to_jsonable(result: Any) -> Any:
    if is_dataclass(result) and not isinstance(result, type):
        return asdict(result)
    if isinstance(result, list):
        return [to_jsonable(item) for item in result]
    return result


def storage_failure(exc: Exception) -> int:
    logger.exception("Cannot open stable memory")
    print(f"Storage error: {exc}", file=sys.stderr)
    return 2


def main(argv: Sequence[str] | None = None, settings: Settings = SETTINGS) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings)
    try:
        memory = open_memory(settings)
    except Exception as exc:  # noqa: BLE001
        return storage_failure(exc)

    with closing(memory):
        try:
            registry = open_registry(memory, settings)
        except Exception as exc:  # noqa: BLE001
            return storage_failure(exc)

        try:
            result = dispatch(registry, args)
        except RegistryError as exc:
            print(json.dumps(exc.to_dict()), file=sys.stderr)
            return 1
    print(json.dumps(to_jsonable(result), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
