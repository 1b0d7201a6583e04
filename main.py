"""
Main Entry Point - Data Agent

Upload CSV files to a conversation and ask questions about them,
interactively or one question at a time.
"""

import logging

from data_agent.config import AgentSettings
from data_agent.graph import create_data_agent


def run_query(agent, conversation_id: str, question: str, show_trace: bool = False) -> str:
    """
    Run a single question through the agent.

    Args:
        agent: DataAgent instance
        conversation_id: Conversation whose uploaded tables are in scope
        question: Natural language question
        show_trace: Print the execution trace as well

    Returns:
        Final answer string
    """
    print(f"\n{'='*60}")
    print(f"Question: {question}")
    print(f"{'='*60}\n")

    run = agent.run(conversation_id, question)

    if show_trace:
        print("Trace:")
        for tag in run.trace:
            print(f"  {tag}")
        if run.fallback_used:
            print("  (fallback run)")

    print(f"\n{'='*60}")
    print("FINAL ANSWER:")
    print(f"{'='*60}")
    print(run.answer)

    return run.answer


def interactive_mode(agent, conversation_id: str, show_trace: bool = False):
    """Run the agent in interactive mode."""
    print("\n" + "="*60)
    print("Data Agent - Interactive Mode")
    print("="*60)
    print(f"Ask questions about the tables uploaded to conversation '{conversation_id}'.")
    print("Type 'quit' or 'exit' to stop.\n")

    while True:
        try:
            question = input("\nYour question: ").strip()

            if question.lower() in ['quit', 'exit', 'q']:
                print("Goodbye!")
                break

            if not question:
                continue

            run_query(agent, conversation_id, question, show_trace)

        except KeyboardInterrupt:
            print("\nGoodbye!")
            break


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Data Agent - Ask questions about uploaded CSV files")
    parser.add_argument("--ingest", type=str, action="append", help="CSV file to upload (repeatable)")
    parser.add_argument("--conversation", "-c", type=str, default="default", help="Conversation (topic) id")
    parser.add_argument("--query", "-q", type=str, help="Run a single question")
    parser.add_argument("--interactive", "-i", action="store_true", help="Run in interactive mode")
    parser.add_argument("--db", type=str, help="Path to SQLite database")
    parser.add_argument("--provider", choices=["qwen", "openai"], help="Reasoning component backend")
    parser.add_argument("--base-model", type=str, help="Base Qwen model")
    parser.add_argument("--lora", type=str, help="Path to LoRA adapter weights")
    parser.add_argument("--max-tool-calls", type=int, help="Tool call budget per question")
    parser.add_argument("--timeout", type=float, help="Wall-clock limit per question, in seconds")
    parser.add_argument("--trace", action="store_true", help="Print the execution trace")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = AgentSettings.from_env(
        db_path=args.db,
        provider=args.provider,
        base_model=args.base_model,
        lora_path=args.lora,
        max_tool_calls=args.max_tool_calls,
        timeout_seconds=args.timeout,
    )

    if args.ingest:
        from data_agent.setup_data import ingest_csv
        for csv_path in args.ingest:
            entry = ingest_csv(settings.db_path, csv_path, args.conversation)
            if entry:
                print(f"✓ Uploaded {csv_path} as {entry.table} ({', '.join(entry.columns)})")
            else:
                print(f"✗ {csv_path} has no rows; nothing uploaded")
        if not (args.query or args.interactive):
            return

    print("=" * 60)
    print("Initializing Data Agent")
    print("=" * 60)
    print(f"Provider: {settings.provider}")
    print(f"Model: {settings.openai_model if settings.provider == 'openai' else settings.base_model}")
    print("Loading model... (this may take a moment)")

    agent = create_data_agent(settings)
    print("✓ Agent ready!\n")

    if args.query:
        run_query(agent, args.conversation, args.query, args.trace)
    else:
        interactive_mode(agent, args.conversation, args.trace)


if __name__ == "__main__":
    main()
