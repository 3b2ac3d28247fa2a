#!/usr/bin/env python3
"""
Concierge - message routing pipeline
Entry point for an interactive console session.

Every route is served by an echo handler that prints what it would do, so
the routing, confirmation, list-reference and sequence behaviour can be
tried without real mail/file/web backends.

Usage:
    python run.py                    # Interactive session (LLM fallback via Ollama)
    python run.py --no-llm           # Deterministic routing only
    python run.py --stats            # Print routing stats from the telemetry dataset
    python run.py --stats --limit 500
"""
import sys
import argparse

from concierge.core.logger import init_logger, get_logger
from concierge.core.config import Config


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Concierge - personal-assistant message routing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                       # Interactive session
  python run.py --no-llm              # Skip the LLM fallback router and planner
  python run.py --chat-id 42          # Use a specific chat id
  python run.py --stats --limit 500   # Stats over the newest 500 records
        """
    )

    parser.add_argument(
        "--chat-id",
        type=str,
        default="console",
        help="Chat id for this session (default: console)"
    )

    parser.add_argument(
        "--no-llm",
        action="store_true",
        help="Disable the LLM fallback router, planner and chat replies"
    )

    parser.add_argument(
        "--ollama-url",
        type=str,
        default=Config.OLLAMA_BASE_URL,
        help=f"Ollama API base URL (default: {Config.OLLAMA_BASE_URL})"
    )

    parser.add_argument(
        "--ollama-model",
        type=str,
        default=Config.OLLAMA_MODEL,
        help=f"Ollama model name (default: {Config.OLLAMA_MODEL})"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=Config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Quiet mode: hide per-stage routing internals"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print the routing stats report and exit"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Records read for --stats (default: 1000, max: 20000)"
    )

    return parser.parse_args(argv)


def build_echo_registry(reply):
    """One echo handler per route: prints the decision instead of acting."""
    from concierge.core.routes import ROUTABLE
    from concierge.handlers.base import CallbackHandler, HandlerRegistry

    def make_handler(route):
        def handle(chat_id, text, source="chat", user_id=None, persist_turn=True, params=None):
            shown = {k: v for k, v in (params or {}).items() if v not in (None, [], "", False)}
            reply(chat_id, f"[{route.value}] {shown}")
            return True

        def execute(chat_id, action, item, params):
            return f"{action} {item}"

        return CallbackHandler(route, handle, execute_fn=execute)

    return HandlerRegistry(make_handler(route) for route in ROUTABLE)


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    init_logger(args.log_level, quiet_mode=args.quiet)
    logger = get_logger()

    from concierge.telemetry.dataset import RoutingDatasetSink, read_entries
    from concierge.telemetry.stats import build_stats_report
    from concierge.core.routes import list_route_thresholds

    if args.stats:
        entries = read_entries(Config.TELEMETRY_PATH, args.limit)
        print(build_stats_report(entries, list_route_thresholds(), Config.TELEMETRY_PATH))
        return 0

    from concierge.brain.ollama_client import OllamaClient
    from concierge.core.llm_router import LLMFallbackRouter
    from concierge.core.orchestrator import MessagePipeline
    from concierge.core.sequence_planner import SequencePlanner
    from concierge.context.session_store import get_session_store
    from concierge.handlers.base import ConversationalHandler

    def reply(chat_id, text):
        print(f"bot> {text}")

    client = None
    if not args.no_llm:
        client = OllamaClient(base_url=args.ollama_url, timeout=Config.LLM_TIMEOUT, model=args.ollama_model)
        if not client.ping():
            logger.warning(f"Ollama not reachable at {args.ollama_url}; LLM fallback will degrade to 'none'")

    # Print startup banner
    print("\n" + "=" * 60)
    print("  Concierge - message routing")
    print("=" * 60)
    print(f"  Chat id: {args.chat_id}")
    print(f"  LLM: {'off' if client is None else args.ollama_model}")
    print(f"  Telemetry: {Config.TELEMETRY_PATH if Config.TELEMETRY_ENABLED else 'off'}")
    print(f"  Log Level: {args.log_level}")
    print("=" * 60 + "\n")

    store = get_session_store()
    pipeline = MessagePipeline(
        handlers=build_echo_registry(reply),
        reply_fn=reply,
        llm_router=LLMFallbackRouter(client) if client is not None else None,
        planner=SequencePlanner(client=client),
        telemetry=RoutingDatasetSink(),
        store=store,
        default_handler=ConversationalHandler(reply, client=client, store=store),
    )
    pipeline.start()

    logger.info("Type a message (Ctrl+D or Ctrl+C to quit, /router-stats for stats)")
    try:
        while True:
            try:
                text = input("you> ")
            except EOFError:
                break
            if text.strip():
                pipeline.process_message(args.chat_id, text, source="console")
        return 0

    except KeyboardInterrupt:
        logger.info("\nShutdown requested by user")
        return 0

    finally:
        pipeline.stop()


if __name__ == "__main__":
    sys.exit(main())
