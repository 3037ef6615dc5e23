# main.py

import sys
from typing import List

from taskrecall.bootstrap import AppServices, build_services
from taskrecall.config import get_settings
from taskrecall.domain.errors import NotFound, TaskRecallError
from taskrecall.domain.models import Task
from taskrecall.interface.cli import (
    ask_confirm,
    display_error,
    display_info,
    display_results,
    display_store_status,
    display_subtasks,
    display_tasks,
    display_welcome_banner,
    prompt_for_action,
    prompt_for_priority,
    prompt_for_text,
)
from taskrecall.logging_setup import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(log_dir=settings.log_dir, console_level="WARNING")
    owner = settings.cli_owner
    display_welcome_banner(owner)

    # ── 1. Initialize infrastructure ─────────────────────────────────────────
    try:
        services = build_services(settings)
    except RuntimeError as error:
        display_error(str(error))
        sys.exit(1)

    display_store_status(
        services.task_store.count_tasks(owner),
        getattr(services.embedding_engine, "model_name", settings.embedding_model),
    )

    # ── 2. Interactive loop ──────────────────────────────────────────────────
    while True:
        action = prompt_for_action()
        if action == "quit":
            break
        try:
            _dispatch(action, services, owner)
        except TaskRecallError as error:
            display_error(str(error))


def _dispatch(action: str, services: AppServices, owner: str) -> None:
    tasks = services.task_service

    if action == "add":
        task = tasks.create_task(owner, prompt_for_text("Task title"), prompt_for_priority())
        suffix = "" if task.has_embedding else " (not searchable until reindexed)"
        display_info(f"Added '{task.title}'{suffix}")

    elif action == "search":
        query = prompt_for_text("❓ Describe the task")
        display_results(query, services.search_service.search(query, caller=owner))

    elif action == "list":
        display_tasks(tasks.list_tasks(owner))

    elif action == "subtasks":
        task = _pick_task(tasks.list_tasks(owner))
        suggestions = tasks.suggest_subtasks(owner, task.task_id)
        display_subtasks(suggestions)
        if suggestions and ask_confirm("Save these subtasks?"):
            saved = tasks.save_subtasks(owner, task.task_id, [s.title for s in suggestions])
            display_info(f"Saved {len(saved)} subtasks.")

    elif action == "reindex":
        display_info(f"Embedded {tasks.backfill_embeddings(owner)} tasks.")

    elif action == "delete":
        task = _pick_task(tasks.list_tasks(owner))
        if ask_confirm(f"Delete '{task.title}' and its subtasks?"):
            tasks.delete_task(owner, task.task_id)
            display_info("Deleted.")


def _pick_task(candidates: List[Task]) -> Task:
    """Resolve a task from an ID prefix, as shown by `list`."""
    display_tasks(candidates)
    prefix = prompt_for_text("Task ID").strip()
    matches = [t for t in candidates if prefix and t.task_id.startswith(prefix)]
    if len(matches) != 1:
        raise NotFound(f"No single task matches '{prefix}'.")
    return matches[0]


if __name__ == "__main__":
    main()
