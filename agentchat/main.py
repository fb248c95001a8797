"""CLI entry point for the Agent Chat service.

A terminal chat loop for testing and development.  For production, use
the FastAPI server (agentchat/server.py).

Usage:
    python -m agentchat.main                       # chat without an agent (default prompt)
    python -m agentchat.main --agent-id <uuid>     # chat with a stored agent
    python -m agentchat.main --debug               # show API calls
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from agentchat.db.database import Database
from agentchat.db.repository import ChatRepository
from agentchat.errors import ChatServiceError
from agentchat.orchestrator import ChatOrchestrator
from agentchat.services.embeddings import EmbeddingClient
from agentchat.services.knowledge_search import KnowledgeSearch
from agentchat.services.vector_store import SupabaseVectorStore
from agentchat.tools.knowledge_base import ToolInvoker

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("agentchat").setLevel(logging.DEBUG if debug else logging.INFO)


async def _new_session(repository: ChatRepository, agent_id: str | None) -> str:
    session = await repository.create_session(agent_id=agent_id, title="CLI session")
    logger.info("Started new session: %s", session.id)
    return session.id


async def _chat_loop(agent_id: str | None) -> None:
    database = Database()
    await database.create_all()
    vector_store = SupabaseVectorStore()
    repository = ChatRepository(database)
    orchestrator = ChatOrchestrator(
        repository, ToolInvoker(KnowledgeSearch(EmbeddingClient(), vector_store)),
    )

    try:
        if agent_id and await repository.get_agent(agent_id) is None:
            print(f"Agent {agent_id} not found.")
            return

        session_id = await _new_session(repository, agent_id)

        while True:
            try:
                user_input = (await asyncio.to_thread(input, "You: ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye!")
                break

            if user_input.lower() == "new":
                session_id = await _new_session(repository, agent_id)
                print(f"\n>> New session started: {session_id[:8]}...\n")
                continue

            try:
                result = await orchestrator.handle_message(session_id, user_input)
            except ChatServiceError as e:
                logger.debug("Message failed", exc_info=True)
                print(f"\nAssistant: I'm sorry, something went wrong: {e.message}")
                print("     Please try again or type 'new' to start a fresh session.\n")
                continue

            print(f"\nAssistant: {result.message.assistant_message or '(no reply)'}\n")
            for product in result.products:
                print(f"  [{product.product_id}] {product.name}: {product.description}")
            if result.products:
                print()
    finally:
        await vector_store.aclose()
        await database.dispose()


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Agent Chat CLI")
    parser.add_argument("--agent-id", help="ID of a stored agent to chat with")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Agent Chat - CLI")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    try:
        asyncio.run(_chat_loop(args.agent_id))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
