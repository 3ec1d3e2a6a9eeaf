"""
paper-analysis CLI.

사용법:
    paper-analysis analyze DOC-1 DOC-2 --template summary
    paper-analysis analyze --all --template methodology --no-note
    paper-analysis estimate --all --template summary
    paper-analysis history DOC-1
    paper-analysis test-connection --provider deepseek
    paper-analysis templates list
    paper-analysis templates export > prompts-backup.yaml
    paper-analysis templates import prompts-backup.yaml

설정: --config (기본: 패키지 내장 default.yaml, 상대 경로는 현재 디렉터리 기준), API 키는 .env 또는 환경 변수.
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from paper_analysis.core.config import Settings, load_settings
from paper_analysis.domain.errors import ConfigurationError, ErrorCodes
from paper_analysis.domain.schemas import BatchProgress, BatchStatus
from paper_analysis.library.local import LibraryError, LocalLibrary
from paper_analysis.providers.gateway import ProviderGateway
from paper_analysis.services.analysis import AnalysisEngine
from paper_analysis.templates.manager import PromptTemplateStore, TemplateError

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _open_library(settings: Settings, override: str | None) -> LocalLibrary:
    root = Path(override) if override else settings.library_path
    if root is None:
        raise ConfigurationError(
            ErrorCodes.LIBRARY_NOT_FOUND,
            "No library path configured (use --library or library.path in settings)",
        )
    return LocalLibrary(root)


def _build_engine(settings: Settings, library: LocalLibrary, create_notes: bool = True) -> AnalysisEngine:
    analysis = settings.analysis
    if not create_notes:
        analysis = replace(analysis, auto_create_note=False)
    return AnalysisEngine(
        gateway=ProviderGateway.from_settings(settings),
        templates=PromptTemplateStore(settings.templates_path),
        store=library,
        settings=analysis,
    )


def _select_documents(library: LocalLibrary, document_ids: list[str], select_all: bool):
    if select_all:
        return library.list_documents()
    documents = []
    for document_id in document_ids:
        document = library.get_document(document_id)
        if document is None:
            logger.warning(f"Document not found, skipped: {document_id}")
            continue
        documents.append(document)
    return documents


def _print_progress(progress: BatchProgress) -> None:
    if progress.status == BatchStatus.PROCESSING:
        print(f"[{progress.current}/{progress.total}] {progress.current_label} ...", file=sys.stderr)
    else:
        print(f"[{progress.current}/{progress.total}] {progress.status.value}", file=sys.stderr)


# =============================================================================
# Commands
# =============================================================================

async def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    library = _open_library(settings, args.library)
    engine = _build_engine(settings, library, create_notes=not args.no_note)
    try:
        precheck = engine.can_start_analysis()
        if not precheck.can_start:
            logger.error(precheck.reason)
            return 1

        documents = _select_documents(library, args.documents, args.all)
        if not documents:
            logger.error("No documents to analyze")
            return 1

        results = await engine.analyze_batch(documents, args.template, on_progress=_print_progress)
    finally:
        await engine.shutdown()

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
    else:
        for result in results:
            print("=" * 60)
            print(f"{result.document_id} · {result.template_name}")
            if result.error:
                print(f"ERROR: {result.error}")
            else:
                print(result.content)
            for warning in result.warnings:
                print(f"  warning: {warning}")

    failed = [r for r in results if not r.succeeded]
    return 1 if failed else 0


async def _cmd_estimate(args: argparse.Namespace, settings: Settings) -> int:
    library = _open_library(settings, args.library)
    engine = _build_engine(settings, library)
    documents = _select_documents(library, args.documents, args.all)
    estimate = await engine.estimate_cost(documents, args.template)
    print(json.dumps(estimate.to_dict(), indent=2))
    return 0


async def _cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    library = _open_library(settings, args.library)
    engine = _build_engine(settings, library)
    results = engine.get_history(args.document)
    if not results:
        print(f"No analysis history for {args.document}")
        return 0
    for result in results:
        print("=" * 60)
        print(f"{result.timestamp.isoformat()} · {result.template_name} · {result.provider_name}/{result.model}")
        if args.full:
            print(result.content)
    return 0


async def _cmd_test_connection(args: argparse.Namespace, settings: Settings) -> int:
    gateway = ProviderGateway.from_settings(settings)
    try:
        result = await gateway.test_connection(args.provider)
    finally:
        await gateway.shutdown()

    print(result.message)
    for model in result.models:
        print(f"  - {model.id} ({model.max_tokens} tokens)")
    return 0 if result.success else 1


async def _cmd_templates(args: argparse.Namespace, settings: Settings) -> int:
    store = PromptTemplateStore(settings.templates_path)

    if args.action == "list":
        for template in store.list_templates():
            marker = "*" if template.is_default else " "
            print(f"{marker} {template.id:<32} {template.name}  [{template.category or '-'}]")
    elif args.action == "show":
        template = store.get(args.template_id)
        if template is None:
            logger.error(f"Template not found: {args.template_id}")
            return 1
        print(template.content)
    elif args.action == "export":
        print(store.export_templates(), end="")
    elif args.action == "import":
        text = Path(args.file).read_text(encoding="utf-8")
        imported = store.import_templates(text, replace_all=args.replace)
        print(f"Imported {len(imported)} templates")
    elif args.action == "reset":
        store.reset_to_defaults()
        print("Templates reset to defaults")
    return 0


# =============================================================================
# Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paper-analysis",
        description="Run prompt templates against documents with interchangeable LLM backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=str, help="settings YAML path (default: bundled default.yaml)")
    parser.add_argument("--library", type=str, help="library root containing library.yaml")
    parser.add_argument("--env-file", type=str, help=".env file to load")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="analyze documents sequentially")
    analyze.add_argument("documents", nargs="*", help="document ids")
    analyze.add_argument("--all", action="store_true", help="analyze every document in the library")
    analyze.add_argument("--template", "-t", required=True, help="prompt template id")
    analyze.add_argument("--no-note", action="store_true", help="do not save results as notes")
    analyze.add_argument("--json", action="store_true", help="print results as JSON")

    estimate = subparsers.add_parser("estimate", help="estimate token usage")
    estimate.add_argument("documents", nargs="*", help="document ids")
    estimate.add_argument("--all", action="store_true")
    estimate.add_argument("--template", "-t", required=True)

    history = subparsers.add_parser("history", help="show previous analyses of a document")
    history.add_argument("document", help="document id")
    history.add_argument("--full", action="store_true", help="print note contents")

    test_connection = subparsers.add_parser("test-connection", help="validate API key and list models")
    test_connection.add_argument("--provider", "-p", help="provider kind (default: active provider)")

    templates = subparsers.add_parser("templates", help="manage prompt templates")
    template_actions = templates.add_subparsers(dest="action", required=True)
    template_actions.add_parser("list")
    show = template_actions.add_parser("show")
    show.add_argument("template_id")
    template_actions.add_parser("export")
    import_parser = template_actions.add_parser("import")
    import_parser.add_argument("file")
    import_parser.add_argument("--replace", action="store_true", help="replace all existing templates")
    template_actions.add_parser("reset")

    return parser


COMMANDS = {
    "analyze": _cmd_analyze,
    "estimate": _cmd_estimate,
    "history": _cmd_history,
    "test-connection": _cmd_test_connection,
    "templates": _cmd_templates,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            Path(args.config) if args.config else None,
            Path(args.env_file) if args.env_file else None,
        )
    except ConfigurationError as e:
        _setup_logging("INFO")
        logger.error(e.message)
        return 2

    _setup_logging(settings.log_level)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except (ConfigurationError, TemplateError, LibraryError) as e:
        logger.error(f"[{e.code}] {e.message}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
