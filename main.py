"""Command-line entry point for the Coverbot insurance assistant."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from openai import OpenAIError

from coverbot.chat import ChatService, build_conversation_context
from coverbot.config import config
from coverbot.embeddings import EmbeddingService
from coverbot.errors import DimensionMismatchError, RAGError
from coverbot.ingest import KnowledgeIngestor, load_records
from coverbot.models import CustomerProfile
from coverbot.pipeline import create_pipeline
from coverbot.vector_store import KnowledgeIndex

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

    from coverbot.models import ConversationContext

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_KNOWLEDGE = PROJECT_ROOT / "data" / "knowledge_base.json"

EXIT_COMMANDS = {"exit", "quit", ":q"}


def _add_profile_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--age", type=int, help="Customer age.")
    parser.add_argument(
        "--location",
        help='Customer location, e.g. "Austin, TX".',
    )
    parser.add_argument(
        "--insurance-type",
        help="Line of business, e.g. auto or home.",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Retrieval-grounded insurance assistant.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser(
        "ingest",
        help="Load knowledge into the index.",
    )
    ingest.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=DEFAULT_KNOWLEDGE,
        help="JSON knowledge file or a PDF/TXT/MD document "
        "(default: data/knowledge_base.json).",
    )
    ingest.add_argument(
        "--type",
        dest="doc_type",
        default="knowledge",
        help="Document type for PDF/TXT/MD files (default: knowledge).",
    )
    ingest.add_argument("--title", help="Title for PDF/TXT/MD files.")
    ingest.add_argument("--state", help="State the document applies to.")
    ingest.add_argument(
        "--insurance-type",
        help="Line of business the document applies to.",
    )

    ask = subparsers.add_parser("ask", help="Ask a single question.")
    ask.add_argument("question", help="Question to answer.")
    _add_profile_arguments(ask)

    chat = subparsers.add_parser("chat", help="Start an interactive session.")
    _add_profile_arguments(chat)

    subparsers.add_parser(
        "check",
        help="Verify the embedding model and index agree.",
    )

    return parser.parse_args(argv)


def build_profile(args: argparse.Namespace) -> CustomerProfile | None:
    """Collect the optional customer profile flags."""  # noqa: DOC201
    if args.age is None and not args.location and not args.insurance_type:
        return None
    return CustomerProfile(
        age=args.age,
        location=args.location,
        insurance_type=args.insurance_type,
    )


def run_ingest(args: argparse.Namespace, logger: Logger) -> int:
    """Ingest a JSON knowledge file or a single document."""  # noqa: DOC201
    path: Path = args.path
    if not path.exists():
        logger.error("Knowledge source not found: %s", path)
        return 1

    knowledge_index = KnowledgeIndex()
    knowledge_index.load()
    ingestor = KnowledgeIngestor(EmbeddingService(), knowledge_index)

    if path.suffix.lower() == ".json":
        written = ingestor.ingest_records(load_records(path))
    else:
        written = ingestor.ingest_file(
            path,
            doc_type=args.doc_type,
            title=args.title,
            insurance_type=args.insurance_type,
            state=args.state,
        )

    logger.info(
        "Index now holds %d passages (%d written)", knowledge_index.count(), written
    )
    return 0


def stream_to_stdout(
    chat_service: ChatService,
    context: ConversationContext,
    profile: CustomerProfile | None,
) -> str:
    """Print the streamed reply and return the full text."""  # noqa: DOC201
    parts: list[str] = []
    for text in chat_service.stream_reply(context, profile):
        parts.append(text)
        sys.stdout.write(text)
        sys.stdout.flush()
    sys.stdout.write("\n")
    return "".join(parts)


def run_ask(args: argparse.Namespace, chat_service: ChatService) -> int:
    """Answer one question and exit."""  # noqa: DOC201
    profile = build_profile(args)
    context = build_conversation_context(
        [{"role": "user", "content": args.question}], profile
    )
    stream_to_stdout(chat_service, context, profile)
    return 0


def run_chat(args: argparse.Namespace, chat_service: ChatService) -> int:
    """Run an interactive session until EOF or an exit command."""  # noqa: DOC201
    profile = build_profile(args)
    context = build_conversation_context([], profile)

    print("Coverbot ready. Type 'exit' to quit.")  # noqa: T201
    while True:
        try:
            question = input("> ").strip()
        except EOFError:
            return 0
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            return 0

        context.add_message("user", question)
        reply = stream_to_stdout(chat_service, context, profile)
        context.add_message("assistant", reply)


def run_check(logger: Logger) -> int:
    """Load collaborators and verify their dimensions agree."""  # noqa: DOC201
    pipeline = create_pipeline()
    index = pipeline.vector_index
    count = index.count() if isinstance(index, KnowledgeIndex) else 0
    logger.info(
        "Health check passed: dimension=%d, passages=%d", index.dimension, count
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and dispatch the requested command."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError:
        logger.exception("Configuration invalid")
        return 1

    logger.debug("Running %s (environment=%s)", args.command, config.ENVIRONMENT)

    try:
        if args.command == "ingest":
            return run_ingest(args, logger)
        if args.command == "check":
            return run_check(logger)

        chat_service = ChatService(create_pipeline())
        if args.command == "ask":
            return run_ask(args, chat_service)
        return run_chat(args, chat_service)
    except DimensionMismatchError:
        logger.exception("Embedding model and knowledge index are incompatible")
        return 2
    except (RAGError, OpenAIError, ValueError):
        logger.exception("Command %s failed", args.command)
        return 1
    except KeyboardInterrupt:
        logger.info("Coverbot stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
