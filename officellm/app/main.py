"""
FastAPI surface over one ``Office``.

Routes:
    POST /tasks                  — Run a task through the manager
    POST /workers/{name}         — Invoke one worker directly
    GET  /workers                — Worker names
    GET  /manager                — Manager name and description
    GET  /conversations          — Stored conversations (filtered, paginated)
    GET  /conversations/stats    — Store statistics
    GET  /conversations/{id}     — One stored conversation
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query

from officellm.core import observability
from officellm.core.errors import WorkerNotFoundError
from officellm.core.logging_core import configure_logging, log_info
from officellm.core.messages import AgentKind, Conversation, ExecutionResult, Task
from officellm.memory import ConversationStore, QueryOptions, StoreStats
from officellm.office import Office


def create_app(office: Office) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        observability.log_event("system", "server_start", agent="server", meta={"instance_id": office.instance_id})
        log_info("SERVER", "Serving office %s", office.instance_id)
        yield
        await office.close()
        observability.log_event("system", "server_stop", agent="server")
        log_info("SERVER", "Office %s closed", office.instance_id)

    app = FastAPI(title="officellm", lifespan=lifespan)
    app.state.office = office

    def _store() -> ConversationStore:
        store = office.get_memory()
        if store is None:
            raise HTTPException(status_code=503, detail="No conversation store configured")
        return store

    @app.post("/tasks", response_model=ExecutionResult)
    async def execute_task(task: Task) -> ExecutionResult:
        return await office.execute_task(task)

    @app.post("/workers/{name}", response_model=ExecutionResult)
    async def call_worker(name: str, params: dict[str, Any] | None = Body(default=None)) -> ExecutionResult:
        try:
            return await office.call_worker(name, params or {})
        except WorkerNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @app.get("/workers")
    async def list_workers() -> list[str]:
        return office.get_workers()

    @app.get("/manager")
    async def get_manager() -> dict[str, str]:
        return office.get_manager()

    @app.get("/conversations", response_model=list[Conversation])
    async def list_conversations(
        agent_kind: AgentKind | None = None,
        agent_name: str | None = None,
        instance_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int | None = Query(default=None, ge=0),
        offset: int = Query(default=0, ge=0),
    ) -> list[Conversation]:
        options = QueryOptions(
            agent_kind=agent_kind,
            agent_name=agent_name,
            instance_id=instance_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
        return await _store().query(options)

    @app.get("/conversations/stats", response_model=StoreStats)
    async def conversation_stats() -> StoreStats:
        return await _store().stats()

    @app.get("/conversations/{conversation_id}", response_model=Conversation)
    async def get_conversation(conversation_id: str) -> Conversation:
        conversation = await _store().get(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail=f"Conversation '{conversation_id}' not found")
        return conversation

    return app
