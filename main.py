#!/usr/bin/env python3
"""Interactive chat CLI."""

import argparse
import logging
import signal
import sys

from config.settings import Settings
from agents.session import build_session
from llm.errors import OrchestratorError, StreamCancelledError
from memory.context_manager import CompressionError

COMMANDS_HELP = """Commands:
  /bye       quit
  /reset     forget the conversation
  /size      show the context size
  /compress  summarize the conversation now
  /export    print the conversation as JSON
Press Ctrl+C while an answer streams to stop it."""


def _print_chunk(content: str, finish_reason: str) -> None:
    if content:
        print(content, end="", flush=True)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Chat with a local or OpenAI-compatible model, with RAG, tools and context compression"
    )
    parser.add_argument(
        "--question",
        "-q",
        type=str,
        help="Ask a single question and exit"
    )
    parser.add_argument(
        "--system",
        type=str,
        help="System instructions"
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Chat model (default: CHAT_MODEL or ai/qwen2.5:latest)"
    )
    parser.add_argument(
        "--threshold",
        type=int,
        help="Context size (characters) that triggers compression"
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Do not keep the conversation history between questions"
    )
    parser.add_argument(
        "--route",
        action="store_true",
        help="Route each question to a coder, thinker or generic agent by topic"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    overrides = {"verbose": args.verbose}
    if args.system:
        overrides["system_instructions"] = args.system
    if args.model:
        overrides["chat_model"] = args.model
    if args.threshold is not None:
        overrides["context_size_threshold"] = args.threshold
    if args.no_history:
        overrides["keep_conversation_history"] = False
    if args.route:
        overrides["enable_routing"] = True
    settings = Settings(**overrides)

    try:
        session = build_session(settings)
    except (OrchestratorError, ValueError) as e:
        print(f"Error initializing session: {e}", file=sys.stderr)
        sys.exit(1)

    def ask(question: str) -> None:
        # Ctrl+C stops the stream instead of killing the CLI
        previous = signal.signal(signal.SIGINT, lambda signum, frame: session.stop())
        try:
            session.ask(question, on_chunk=_print_chunk)
            print()
        except StreamCancelledError as e:
            print(f"\n[stopped after {e.chunks_delivered} chunks]")
        except CompressionError as e:
            if e.partial_result is not None:
                print()
            print(f"Compression failed, full history kept: {e}", file=sys.stderr)
        finally:
            signal.signal(signal.SIGINT, previous)

    if args.question:
        try:
            ask(args.question)
        except OrchestratorError as e:
            print(f"Error processing question: {e}", file=sys.stderr)
            sys.exit(1)
        return

    print(COMMANDS_HELP)
    while True:
        try:
            question = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not question:
            continue
        if question == "/bye":
            break
        if question == "/reset":
            session.reset()
            print("Conversation reset.")
            continue
        if question == "/size":
            print(f"{session.context_size()} characters (~{session.store.estimate_tokens()} tokens)")
            continue
        if question == "/export":
            print(session.store.export_json())
            continue
        if question == "/compress":
            try:
                outcome = session.compress()
                print(outcome.compressed_text)
            except (CompressionError, RuntimeError) as e:
                print(f"Compression failed: {e}", file=sys.stderr)
            continue

        try:
            ask(question)
        except OrchestratorError as e:
            print(f"Error processing question: {e}", file=sys.stderr)
            if args.verbose:
                import traceback
                traceback.print_exc()


if __name__ == "__main__":
    main()
