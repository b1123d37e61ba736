from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from rich.theme import Theme

from .errors import ProvisionError

if TYPE_CHECKING:
    from .pipeline import RunReport

logger = logging.getLogger(__name__)

THEME = Theme(
    {
        "header": "bold blue",
        "success": "green",
        "warning": "yellow",
        "error": "bold red",
        "note": "cyan",
    }
)

console = Console(theme=THEME, highlight=False)


def print_header(text: str) -> None:
    console.print(f"[header]=== {text} ===[/header]")
    logger.info("--- %s ---", text)


def print_success(text: str) -> None:
    console.print(f"[success]✓ {text}[/success]")
    logger.info("SUCCESS: %s", text)


def print_warning(text: str) -> None:
    console.print(f"[warning]⚠ {text}[/warning]")
    logger.warning(text)


def print_error(text: str) -> None:
    console.print(f"[error]✗ {text}[/error]")
    logger.error(text)


def print_note(text: str) -> None:
    console.print(f"[note]{text}[/note]")
    logger.info("NOTE: %s", text)


def confirm(question: str, *, assume_yes: bool = False) -> bool:
    if assume_yes:
        logger.info("Assuming yes: %s", question)
        return True
    try:
        answer = Confirm.ask(question, console=console, default=False)
    except EOFError as e:
        raise ProvisionError(f"No answer to '{question}' (stdin closed); re-run with --yes") from e
    logger.info("Operator answered %s: %s", "yes" if answer else "no", question)
    return answer


def render_summary(report: "RunReport") -> None:
    table = Table(title=f"{report.stage} summary", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Step")
    table.add_column("Status", justify="center")
    table.add_column("Detail")

    for outcome in report.outcomes:
        style = {"changed": "success", "satisfied": "note", "failed": "error"}.get(outcome.status, "warning")
        table.add_row(outcome.description, f"[{style}]{outcome.status}[/{style}]", outcome.detail)
    for group in report.declined:
        table.add_row(group, "[warning]declined[/warning]", "skipped at operator's request")

    console.print()
    console.print(table)
    console.print(
        f"{len(report.changed)} changed, {len(report.satisfied)} already done, "
        f"{len(report.failed)} failed"
    )
    if report.failed:
        print_warning("Failed: " + ", ".join(report.failed))

    if report.notes:
        console.print()
        print_header("Next Steps")
        for i, note in enumerate(report.notes, 1):
            console.print(f"{i}. {note}")
