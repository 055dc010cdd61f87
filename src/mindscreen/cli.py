"""CLI entry point for mindscreen."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import mindscreen
from mindscreen.bootstrap import create_app_context, create_question_bank
from mindscreen.config import get_settings
from mindscreen.domain.enums import QuestionType
from mindscreen.domain.exceptions import CatalogError, CatalogImportError, SessionError
from mindscreen.infrastructure.logging import get_logger, setup_logging, with_context
from mindscreen.infrastructure.scheduler import AsyncioScheduler
from mindscreen.services.question_bank import QuestionBankManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from mindscreen.domain.entities import AssessmentResult, Question

logger = get_logger(__name__)

EXIT_INTERRUPTED = 130


def _coerce_number(raw: str) -> int | float | str:
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def _choice(question: Question, raw: str) -> str:
    """Map a 1-based option number to its option id; other input passes through."""
    if raw.isdigit() and 1 <= int(raw) <= len(question.options):
        return question.options[int(raw) - 1].id
    return raw


def parse_answer(question: Question, raw: str) -> Any:
    """Turn console input into an answer value for ``question``.

    Choice questions take 1-based option numbers (comma separated for
    multiple choice); scale questions take a number.
    """
    raw = raw.strip()
    if not raw:
        return None
    match question.type:
        case QuestionType.SINGLE_CHOICE:
            return _choice(question, raw)
        case QuestionType.MULTIPLE_CHOICE:
            return [_choice(question, part.strip()) for part in raw.split(",") if part.strip()]
        case QuestionType.SCALE:
            return _coerce_number(raw)
    return raw


def _render_question(question: Question, position: int, total: int) -> str:
    lines = [f"\n[{position}/{total}] {question.text}"]
    if question.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE):
        lines.extend(f"  {n}. {o.text}" for n, o in enumerate(question.options, start=1))
        if question.type is QuestionType.MULTIPLE_CHOICE:
            lines.append("  (separate several choices with commas)")
    elif question.type is QuestionType.SCALE:
        low = question.scale_min if question.scale_min is not None else question.options[0].value
        high = question.scale_max if question.scale_max is not None else question.options[-1].value
        anchors = ""
        if question.scale_labels is not None:
            anchors = f" ({question.scale_labels.min} .. {question.scale_labels.max})"
        lines.append(f"  Enter a number from {low:g} to {high:g}{anchors}")
        lines.extend(f"  {o.value:g} = {o.text}" for o in question.options)
    return "\n".join(lines)


def _render_result(result: AssessmentResult) -> str:
    lines = ["", "Results", "======="]
    for rule_id, score in result.scores.items():
        lines.append(f"{rule_id}: {score.value:g} ({score.label})")
    lines.append(f"Overall risk level: {result.risk_level.value}")
    lines.extend(["", result.interpretation, "", "Recommendations:"])
    lines.extend(f"  - {text}" for text in result.recommendations)
    return "\n".join(lines)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _cmd_version(_: argparse.Namespace) -> int:
    print(f"mindscreen v{mindscreen.__version__}")
    return 0


def _cmd_list(_: argparse.Namespace) -> int:
    bank = create_question_bank(get_settings())
    for assessment_type in bank.get_assessment_types():
        languages = ", ".join(bank.supported_languages(assessment_type.id))
        print(
            f"{assessment_type.id:<14} {assessment_type.name} "
            f"[{assessment_type.category.value}, {len(assessment_type.questions)} questions, "
            f"~{assessment_type.duration_minutes} min, languages: {languages}]"
        )
    return 0


def _cmd_export_catalog(args: argparse.Namespace) -> int:
    bank = create_question_bank(get_settings())
    payload = bank.export_catalog()
    if args.output is None:
        print(payload)
    else:
        args.output.write_text(payload, encoding="utf-8")
        print(f"Catalog exported to {args.output}")
    return 0


def _cmd_validate_catalog(args: argparse.Namespace) -> int:
    bank = QuestionBankManager(fallback_language=get_settings().catalog.fallback_language)
    try:
        report = bank.load_catalog_file(args.path)
    except CatalogImportError as e:
        print(f"Catalog {args.path} is invalid:", file=sys.stderr)
        for entry_id, problems in e.errors.items():
            for problem in problems:
                print(f"  {entry_id}: {problem}", file=sys.stderr)
        return 1
    except CatalogError as e:
        print(str(e), file=sys.stderr)
        return 1
    print(f"Catalog {args.path} is valid: {len(report.imported)} assessment types")
    return 0


@with_context(command="take")
def _cmd_take(args: argparse.Namespace, input_fn: Callable[[str], str] = input) -> int:
    loop = asyncio.new_event_loop()
    context = create_app_context(get_settings(), scheduler=AsyncioScheduler(loop))
    engine = context.engine
    try:
        session = engine.start_assessment(args.type_id, args.language, args.cultural_context)
    except SessionError as e:
        print(str(e), file=sys.stderr)
        context.close()
        loop.close()
        return 1

    presented = context.question_bank.get_presented_assessment_type(
        args.type_id, session.language, session.cultural_context
    )
    if presented is not None and presented.instructions:
        print(presented.instructions)

    try:
        while (question := engine.get_current_question(session.id)) is not None:
            progress = engine.get_progress(session.id)
            total = progress.total if progress else 0
            print(_render_question(question, session.current_question_index + 1, total))
            outcome = engine.submit_answer(session.id, parse_answer(question, input_fn("> ")))
            if not outcome.success:
                message = outcome.validation.message if outcome.validation else "Not accepted"
                print(f"  {message}")
                continue
            if outcome.completed:
                if outcome.result is not None:
                    print(_render_result(outcome.result))
                return 0
        return 0
    except (EOFError, KeyboardInterrupt):
        engine.pause_assessment(session.id)
        print(f"\nPaused session {session.id}")
        return EXIT_INTERRUPTED
    finally:
        context.close()
        loop.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mindscreen", description="Mental-health self-assessment questionnaires."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("version", help="Show the installed version").set_defaults(
        handler=_cmd_version
    )
    commands.add_parser("list", help="List available assessments").set_defaults(
        handler=_cmd_list
    )

    export = commands.add_parser("export-catalog", help="Export the catalog as JSON")
    export.add_argument("--output", type=Path, default=None, help="Write to this file")
    export.set_defaults(handler=_cmd_export_catalog)

    validate = commands.add_parser("validate-catalog", help="Validate a YAML or JSON catalog")
    validate.add_argument("path", type=Path, help="Catalog file")
    validate.set_defaults(handler=_cmd_validate_catalog)

    take = commands.add_parser("take", help="Take an assessment in the console")
    take.add_argument("type_id", help="Assessment type id, e.g. phq-9")
    take.add_argument("--language", default=None, help="Language code, e.g. zh")
    take.add_argument("--cultural-context", default=None, help="Cultural context, e.g. east_asian")
    take.set_defaults(handler=_cmd_take)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the mindscreen CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().logging)
    try:
        return int(args.handler(args))
    except CatalogError as e:
        logger.error("Catalog could not be loaded", error=str(e))
        print(str(e), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
