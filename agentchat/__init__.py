"""Agent Chat - conversations with configurable AI agents over a product knowledge base.

Architecture Overview
=====================

Each incoming user message runs through a **LangGraph** state machine
(``agentchat.orchestrator``):

1. **load_context / build_prompt** - load the session's agent and stored
   turns, then build the system prompt, history and new user message.

2. **first_completion** - the agent's chat model (OpenAI or Anthropic, picked
   from the model name) answers with the ``search_knowledge_base`` tool bound.

3. **tool_execution** - requested tool calls run concurrently.  When the
   model skips the tool on a product/catalog question, a search is forced.

4. **second_completion / reconcile_products** - the model answers again
   with the tool results; products are merged with those named in the reply.

5. **persist** - exactly one turn is written per successful exchange.

Key Design Decisions
--------------------
- **Knowledge base**: OpenAI embeddings + a Supabase pgvector function
  (``match_documents``) called over PostgREST, wrapped in exponential-backoff
  retries that skip permanent failures.
- **Tool failures never abort a turn**: they become JSON error payloads the
  model can explain to the user.
- **Persistence**: async SQLAlchemy (SQLite by default, Postgres via asyncpg).
- **Dual Interface**: FastAPI server (production) + CLI chat loop (development).

Package Structure
-----------------
- ``agentchat/orchestrator.py`` - LangGraph pipeline
- ``agentchat/llm.py`` - chat-model construction
- ``agentchat/prompts.py`` - system prompt and product reminder
- ``agentchat/config.py`` - configuration from environment variables
- ``agentchat/server.py`` - FastAPI application
- ``agentchat/main.py`` - CLI chat interface
- ``agentchat/db/`` - ORM models, engine and repository
- ``agentchat/services/`` - embeddings, vector store, search, retry, metrics
- ``agentchat/tools/`` - knowledge-base tool and product extraction
- ``agentchat/api/`` - FastAPI routes and Pydantic schemas
"""
