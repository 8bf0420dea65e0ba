"""SnapOCR CLI."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from snapocr.config import settings
from snapocr.errors import EngineError
from snapocr.models import RunOutcome
from snapocr.pipeline import LibreTranslateClient, RunOptions, TesseractOCR, translation_enabled
from snapocr.session import Notification, NotificationLevel, Session

app = typer.Typer(
    name="snapocr",
    help="Batch OCR and translation for images and PDFs",
    add_completion=False,
)
console = Console()

_STYLES = {
    NotificationLevel.INFO: "blue",
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.ERROR: "yellow",
}


def configure_logging(level: str) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def print_notification(notification: Notification) -> None:
    console.print(f"[{_STYLES[notification.level]}]{notification.message}[/]")


async def _process(
    session: Session,
    files: list[Path],
    txt_path: Optional[Path],
    pdf_path: Optional[Path],
) -> int:
    report = await session.ingest(files)
    console.print(f"[dim]{report.page_count} page(s) loaded from {len(files)} file(s)[/dim]")

    with Progress(
        TextColumn("[bold blue]OCR"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("ocr", total=1.0)
        session.on_progress = lambda value: progress.update(task, completed=value)
        summary = await session.run_batch()

    if session.orchestrator.translator is not None:
        await session.orchestrator.translator.aclose()

    if summary.outcome == RunOutcome.ENGINE_FAILED:
        return 2

    table = Table(title="Pages")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Chars", justify="right")
    for page in session.pages:
        table.add_row(str(page.id), page.name, page.status.value, str(len(page.recognized_text)))
    console.print(table)

    if txt_path is not None:
        content = session.export_text()
        if content is not None:
            txt_path.write_text(content, encoding="utf-8")
            console.print(f"[green]Text written to {txt_path}[/green]")
    if pdf_path is not None:
        data = session.export_pdf()
        if data is not None:
            pdf_path.write_bytes(data)
            console.print(f"[green]PDF written to {pdf_path}[/green]")

    return 1 if summary.error else 0


@app.command()
def process(
    files: list[Path] = typer.Argument(..., help="Images and/or PDFs to process"),
    lang: str = typer.Option(settings.ocr_language, help="OCR language ('auto' = eng)"),
    translate: str = typer.Option(settings.translation_target, help="Target language or 'none'"),
    enhanced: bool = typer.Option(settings.enhanced_ocr, help="Binarize pages before OCR"),
    txt: Optional[Path] = typer.Option(None, help="Write text export here"),
    pdf: Optional[Path] = typer.Option(None, help="Write rebuilt PDF here"),
    log_level: str = typer.Option(settings.log_level, help="Logging level"),
) -> None:
    """OCR files in order and export the results."""
    configure_logging(log_level)

    translator = LibreTranslateClient() if translation_enabled(translate) else None
    session = Session(
        engine=TesseractOCR(),
        translator=translator,
        options=RunOptions(language=lang, translation_target=translate, enhanced=enhanced),
        notifier=print_notification,
    )

    console.print(f"[bold blue]Processing:[/bold blue] {len(files)} file(s)")
    exit_code = asyncio.run(_process(session, files, txt, pdf))
    raise typer.Exit(code=exit_code)


@app.command()
def info() -> None:
    """Show configuration and OCR engine status."""
    console.print("[bold blue]SnapOCR Status[/bold blue]")
    console.print()

    table = Table(show_header=False)
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("OCR language", settings.ocr_language)
    table.add_row("Translation target", settings.translation_target)
    table.add_row("Translation service", settings.translate_url)
    table.add_row("Enhanced OCR", str(settings.enhanced_ocr))
    table.add_row("Max file size", f"{settings.max_file_size_mb} MB")
    table.add_row("PDF render scale", str(settings.pdf_render_scale))
    console.print(table)

    engine = TesseractOCR()

    async def _probe():
        handle = await engine.initialize(settings.ocr_language)
        await engine.release(handle)
        return handle

    try:
        handle = asyncio.run(_probe())
    except EngineError as exc:
        console.print(f"[yellow]OCR engine unavailable: {exc}[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]Tesseract {handle.version} ready ({handle.language})[/green]")


if __name__ == "__main__":
    app()
