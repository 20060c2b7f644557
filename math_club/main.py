"""
Math Club CLI Application.

Provides a command-line interface for grading exam submissions,
validating and importing exams, and asking for explanations.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from math_club.assistant import ChatMessage, ExplainAssistant, QuestionContext
from math_club.config import Settings, get_settings
from math_club.exams import ExamImporter, ExamImportError, ExamValidator
from math_club.extractors import ExtractionError
from math_club.grading import EssayGrader, LLMClient, LLMError, SubmissionGrader
from math_club.grading.content import strip_html
from math_club.models import EssayGradeRequest, Exam, Question, SubmissionResult
from math_club.sessions import (
    ExamAttempt,
    ExamSessionService,
    JsonFileSessionStore,
    PersistenceError,
    SessionNotFoundError,
    SubmissionError,
)
from math_club.sessions.service import average_percentage

# Create Typer app
app = typer.Typer(
    name="math-club",
    help="Exam scoring and AI essay grading for high-school math",
    add_completion=False,
)

console = Console()

STORE_FILE_NAME = "sessions.json"


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Configure logging for every command."""
    try:
        level = get_settings().log_level
    except ValidationError:
        # Commands that need settings report the problem themselves
        level = "INFO"

    logging.basicConfig(
        level="DEBUG" if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.command()
def submit(
    exam_file: Annotated[Path, typer.Argument(help="Path to the exam JSON file")],
    answers_file: Annotated[
        Path, typer.Argument(help="JSON object mapping question ids to answers")
    ],
    student_name: Annotated[str, typer.Option("--name", "-n", help="Student name")],
    student_id: Annotated[
        Optional[str],
        typer.Option("--student-id", "-s", help="Student id (replaces earlier attempts)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show per-question feedback"),
    ] = False,
) -> None:
    """
    Grade a full exam submission and record the session.

    Objective questions are scored immediately; essays are graded one at a
    time by the AI grader.
    """
    try:
        settings = get_settings()
        exam = _load_exam(exam_file)
        raw_answers = _load_json_object(answers_file)

        result = asyncio.run(
            _submit(settings, exam, raw_answers, student_name, student_id)
        )
        _display_submission(exam, result, verbose)

    except ValidationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)
    except SubmissionError as e:
        console.print(f"[red]Submission Error:[/red] {e}")
        if e.cause:
            console.print(f"[dim]{e.cause}[/dim]")
        raise typer.Exit(1)
    except (PersistenceError, SessionNotFoundError) as e:
        console.print(f"[red]Storage Error:[/red] {e}")
        raise typer.Exit(1)


async def _submit(
    settings: Settings,
    exam: Exam,
    raw_answers: dict[str, Any],
    student_name: str,
    student_id: str | None,
) -> SubmissionResult:
    store = JsonFileSessionStore(settings.data_directory / STORE_FILE_NAME)
    await store.save_exam(exam)

    service = ExamSessionService(store)
    grader = SubmissionGrader(EssayGrader(settings), settings)
    attempt = await ExamAttempt.start(exam, student_name, service, grader, student_id=student_id)

    for question_id, raw in raw_answers.items():
        try:
            attempt.set_answer(question_id, raw)
        except KeyError:
            console.print(f"[yellow]⚠ Ignoring answer to unknown question:[/yellow] {question_id}")

    unanswered = attempt.unanswered()
    if unanswered:
        console.print(f"[yellow]{len(unanswered)} question(s) left unanswered[/yellow]")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Đang chấm bài...", total=None)

        def on_progress(current: int, total: int, question: Question) -> None:
            progress.update(task, description=f"Đang chấm câu tự luận {current}/{total}...")

        return await attempt.submit(on_progress)


@app.command()
def grade_essay(
    exam_file: Annotated[Path, typer.Argument(help="Path to the exam JSON file")],
    question_id: Annotated[str, typer.Argument(help="Id of the essay question")],
    answer_file: Annotated[Path, typer.Argument(help="Student answer (text or HTML)")],
) -> None:
    """
    Grade a single essay answer against the question's sample answer and rubric.
    """
    try:
        settings = get_settings()
        exam = _load_exam(exam_file)
        question = _require_question(exam, question_id)

        if not answer_file.exists():
            console.print(f"[red]Error:[/red] Answer file not found: {answer_file}")
            raise typer.Exit(1)

        request = EssayGradeRequest(
            question_text=question.question,
            student_answer=answer_file.read_text(encoding="utf-8"),
            sample_answer=question.sample_answer,
            rubric=question.rubric,
            max_points=question.points,
        )

        with console.status("Đang chấm bài tự luận..."):
            result = asyncio.run(EssayGrader(settings).grade(request))

        colour = "yellow" if result.needs_manual_grading else "green"
        console.print(
            Panel(
                f"[{colour}][bold]{result.score} / {question.points}[/bold][/{colour}]\n\n"
                f"{result.feedback}",
                title="Essay Grade",
            )
        )
        if result.needs_manual_grading:
            console.print("[yellow]⚠ Cần giáo viên chấm thủ công[/yellow]")

    except ValidationError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        raise typer.Exit(1)
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def validate_exam(
    exam_file: Annotated[Path, typer.Argument(help="Path to the exam JSON file")],
) -> None:
    """
    Validate an exam file without grading anything.

    Checks that every question can be graded automatically.
    """
    exam = _load_exam(exam_file)
    is_valid, issues = ExamValidator().validate(exam)

    console.print(Panel(f"[bold]{exam.title}[/bold]\n{exam.subject} - Lớp {exam.grade}", title="Exam"))

    table = Table(title="Questions")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Points", justify="right")
    table.add_column("Question")

    for number, question in enumerate(exam.questions, start=1):
        table.add_row(
            str(number),
            question.type.value,
            str(question.points),
            strip_html(question.question)[:60],
        )

    console.print(table)
    console.print(
        f"\n[bold]Total Points:[/bold] {exam.total_points}   "
        f"[bold]Duration:[/bold] {exam.duration} phút"
    )

    if is_valid:
        console.print("\n[green]✓ Exam is valid[/green]")
    else:
        console.print("\n[yellow]⚠ Validation issues found:[/yellow]")
        for issue in issues:
            console.print(f"  • {issue}")
        raise typer.Exit(1)


@app.command()
def import_exam(
    document: Annotated[Path, typer.Argument(help="Exam document (.pdf, .docx, .txt, .md)")],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Where to write the exam JSON"),
    ],
    title: Annotated[
        Optional[str],
        typer.Option("--title", "-t", help="Exam title (defaults to the file name)"),
    ] = None,
    grade: Annotated[
        int,
        typer.Option("--grade", "-g", min=10, max=12, help="School year"),
    ] = 10,
) -> None:
    """
    Extract questions and answer keys from an exam document into a draft exam.
    """
    try:
        settings = get_settings()

        if not document.exists():
            console.print(f"[red]Error:[/red] File not found: {document}")
            raise typer.Exit(1)

        with console.status("Đang trích xuất câu hỏi..."):
            exam = asyncio.run(ExamImporter(settings).import_document(document, title, grade))

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(exam.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        console.print(
            f"[green]✓ Extracted {exam.question_count} questions[/green] → {output}"
        )

        _, issues = ExamValidator().validate(exam)
        if issues:
            console.print("\n[yellow]⚠ Review before publishing:[/yellow]")
            for issue in issues:
                console.print(f"  • {issue}")

    except ValidationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)
    except ExtractionError as e:
        console.print(f"[red]Extraction Error:[/red] {e}")
        raise typer.Exit(1)
    except ExamImportError as e:
        console.print(f"[red]Import Error:[/red] {e}")
        raise typer.Exit(1)
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def explain(
    exam_file: Annotated[Path, typer.Argument(help="Path to the exam JSON file")],
    question_id: Annotated[str, typer.Argument(help="Id of the question to discuss")],
    message: Annotated[str, typer.Argument(help="What the student wants to know")],
    answer: Annotated[
        Optional[str],
        typer.Option("--answer", "-a", help="The student's own answer"),
    ] = None,
) -> None:
    """
    Ask the AI tutor about a question.
    """
    try:
        settings = get_settings()
        exam = _load_exam(exam_file)
        question = _require_question(exam, question_id)

        context = QuestionContext.from_question(question, answer)
        with console.status("Đang suy nghĩ..."):
            reply = asyncio.run(
                ExplainAssistant(settings).reply(
                    [ChatMessage(role="user", content=message)], context
                )
            )

        console.print(Panel(Markdown(reply), title="Trợ lý"))

    except ValidationError as e:
        console.print(f"[red]Validation Error:[/red] {e}")
        raise typer.Exit(1)
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def history(
    student_id: Annotated[str, typer.Argument(help="Student id")],
) -> None:
    """
    Show a student's completed exam sessions, newest first.
    """
    try:
        settings = get_settings()
        store = JsonFileSessionStore(settings.data_directory / STORE_FILE_NAME)
        service = ExamSessionService(store)
        sessions = asyncio.run(service.student_history(student_id))

        if not sessions:
            console.print(f"[dim]No completed sessions for {student_id}[/dim]")
            return

        exams = {e.id: e for e in asyncio.run(store.list_exams())}

        table = Table(title=f"History of {sessions[0].student_name}")
        table.add_column("Completed", style="dim")
        table.add_column("Exam", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Percentage", justify="right")
        table.add_column("Time", justify="right")

        for session in sessions:
            exam = exams.get(session.exam_id)
            completed = session.completed_at.strftime("%Y-%m-%d %H:%M") if session.completed_at else "-"
            table.add_row(
                completed,
                exam.title if exam else session.exam_id,
                f"{session.score}/{session.total_score}",
                f"{session.percentage:.1f}%",
                f"{session.time_spent // 60}:{session.time_spent % 60:02d}",
            )

        console.print(table)
        console.print(f"\n[bold]Average:[/bold] {average_percentage(sessions):.1f}%")

    except ValidationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)
    except PersistenceError as e:
        console.print(f"[red]Storage Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def health() -> None:
    """
    Check if the grading system is operational.

    Verifies API connectivity and configuration.
    """
    try:
        settings = get_settings()
        console.print("[bold]Math Club Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  API Base URL: {settings.openai_base_url}")
        console.print(f"  Grading Model: {settings.grading_model}")
        console.print(f"  Vision Model: {settings.vision_model}")
        console.print(f"  Request Timeout: {settings.request_timeout_seconds}s")
        console.print(f"  Data Directory: {settings.data_directory}")

        console.print("\n[dim]Checking API connectivity...[/dim]")
        if asyncio.run(LLMClient(settings).health_check()):
            console.print("[green]✓ API is reachable[/green]")
        else:
            console.print("[red]✗ API is not reachable[/red]")
            raise typer.Exit(1)

        console.print("\n[green]All systems operational[/green]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _load_exam(path: Path) -> Exam:
    if not path.exists():
        console.print(f"[red]Error:[/red] Exam file not found: {path}")
        raise typer.Exit(1)
    try:
        return Exam.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Invalid exam file:[/red] {e}")
        raise typer.Exit(1)


def _load_json_object(path: Path) -> dict[str, Any]:
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON:[/red] {e}")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print("[red]Error:[/red] Answers file must hold a JSON object")
        raise typer.Exit(1)
    return data


def _require_question(exam: Exam, question_id: str) -> Question:
    question = exam.get_question(question_id)
    if question is None:
        console.print(f"[red]Error:[/red] Question not found: {question_id}")
        raise typer.Exit(1)
    return question


def _display_submission(exam: Exam, result: SubmissionResult, verbose: bool = False) -> None:
    """Display submission results in a formatted table."""
    score_color = "green" if result.percentage >= 70 else "yellow" if result.percentage >= 50 else "red"
    console.print(
        Panel(
            f"[{score_color}][bold]{result.score} / {result.max_score}[/bold] "
            f"({result.percentage:.1f}%)[/{score_color}]",
            title="Final Score",
        )
    )

    if result.pending_manual_count:
        console.print(
            f"[yellow]⚠ {result.pending_manual_count} question(s) need manual grading[/yellow]"
        )

    table = Table(title="Questions")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Answer")
    table.add_column("Points", justify="right")
    table.add_column("Status")

    for number, (question, qr) in enumerate(zip(exam.questions, result.results), start=1):
        if qr.needs_manual_grading:
            status = "⏳"
        else:
            status = "✅" if qr.is_correct else "❌"
        table.add_row(
            str(number),
            question.type.value,
            strip_html(qr.user_answer)[:30] or "-",
            f"{qr.points_earned}/{question.points}",
            status,
        )

    console.print(table)

    if verbose:
        for number, qr in enumerate(result.results, start=1):
            if qr.ai_feedback:
                console.print(Panel(qr.ai_feedback, title=f"Câu {number}"))


if __name__ == "__main__":
    app()
