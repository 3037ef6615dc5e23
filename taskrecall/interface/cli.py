# taskrecall/interface/cli.py

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from taskrecall.domain.models import SearchResult, Subtask, Task


console = Console()

MENU_CHOICES = ["add", "search", "list", "subtasks", "reindex", "delete", "quit"]


def display_welcome_banner(owner: str) -> None:
    console.print(Panel.fit(
        "[bold cyan]🔍 Task Recall[/bold cyan]\n"
        f"[dim]Find your tasks by meaning · signed in as {owner}[/dim]",
        box=box.DOUBLE,
        border_style="cyan",
    ))


def display_store_status(num_tasks: int, model_name: str) -> None:
    console.print(
        f"\n[green]✓[/green] Store ready: [bold]{num_tasks}[/bold] tasks, "
        f"embeddings by [bold]{model_name}[/bold].\n"
    )


def prompt_for_action() -> str:
    return Prompt.ask("\n[bold yellow]What next?[/bold yellow]", choices=MENU_CHOICES, default="search")


def prompt_for_text(label: str) -> str:
    return Prompt.ask(f"[bold yellow]{label}[/bold yellow]")


def prompt_for_priority() -> str:
    return Prompt.ask("[dim]Priority[/dim]", choices=["low", "medium", "high"], default="medium")


def display_tasks(tasks: List[Task]) -> None:
    if not tasks:
        console.print("[dim]No tasks yet.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold white")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Searchable")
    for task in tasks:
        table.add_row(
            task.task_id[:8],
            task.title,
            task.priority.value,
            task.status.value,
            "✓" if task.has_embedding else "✗",
        )
    console.print(table)


def display_results(query: str, results: List[SearchResult]) -> None:
    console.print(f"\n[bold]Results for:[/bold] [italic]\"{query}\"[/italic]\n")

    if not results:
        console.print("[dim]No matching tasks.[/dim]")
        return

    for rank, result in enumerate(results, start=1):
        score_color = _score_to_color(result.similarity)
        console.print(Panel(
            f"{result.task.title}\n\n"
            f"[dim]{result.task.priority.value} · {result.task.status.value} · "
            f"{result.task.created_at:%Y-%m-%d %H:%M}[/dim]",
            title=f"[bold]#{rank}[/bold] [{score_color}]{result.similarity:.0%} match[/{score_color}]",
            border_style=score_color,
            box=box.ROUNDED,
            padding=(0, 2),
        ))


def display_subtasks(subtasks: List[Subtask]) -> None:
    for index, subtask in enumerate(subtasks, start=1):
        marker = "[green]saved[/green]" if subtask.is_saved else "[yellow]suggested[/yellow]"
        console.print(f"  {index}. {subtask.title} ({marker})")


def display_info(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def display_error(message: str) -> None:
    console.print(f"\n[bold red]✗ Error:[/bold red] {message}\n")


def ask_confirm(question: str) -> bool:
    answer = Prompt.ask(f"[dim]{question}[/dim]", choices=["y", "n"], default="y")
    return answer.lower() == "y"


def _score_to_color(score: float) -> str:
    if score >= 0.75:
        return "green"
    elif score >= 0.50:
        return "yellow"
    else:
        return "red"
