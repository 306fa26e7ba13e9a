"""
Office — wires one manager to its workers and an optional shared store.

    office = Office(OfficeConfig(manager=..., workers=[...], memory={"type": "in-memory"}))
    result = await office.execute_task(Task(title="...", description="..."))
    direct = await office.call_worker("calculator", {"expression": "2 + 2"})
"""

from __future__ import annotations

from typing import Any, Mapping

from officellm.config import OfficeConfig
from officellm.core.engine import ManagerAgent, WorkerAgent
from officellm.core.errors import ConfigurationError, WorkerNotFoundError
from officellm.core.logging_core import log_info
from officellm.core.messages import ExecutionResult, Task
from officellm.memory import ConversationStore, create_store


class Office:
    """Task submission and direct worker calls over one manager/worker team."""

    def __init__(self, config: OfficeConfig | Mapping[str, Any], store: ConversationStore | None = None) -> None:
        self.config = config if isinstance(config, OfficeConfig) else OfficeConfig.model_validate(config)
        self.instance_id = self.config.instance_id

        if store is None and self.config.memory is not None:
            store = create_store(self.config.memory)
        self._memory = store

        self.manager = ManagerAgent(config=self.config.manager, store=store, instance_id=self.instance_id)
        self._workers: dict[str, WorkerAgent] = {}
        for worker_config in self.config.workers:
            if worker_config.name in self._workers:
                raise ConfigurationError(f"Duplicate worker name '{worker_config.name}'")
            self._workers[worker_config.name] = WorkerAgent(
                config=worker_config, store=store, instance_id=self.instance_id
            )

        log_info(
            "OFFICE",
            "Office %s ready: manager=%s workers=%s memory=%s",
            self.instance_id,
            self.manager.name,
            list(self._workers),
            getattr(store, "memory_type", None),
        )

    async def execute_task(self, task: Task | Mapping[str, Any]) -> ExecutionResult:
        """Run a task through the manager loop."""
        if not isinstance(task, Task):
            task = Task.model_validate(task)
        return await self.manager.execute_task(task, self._workers)

    async def call_worker(self, worker_name: str, params: Mapping[str, Any]) -> ExecutionResult:
        """Invoke one worker directly; unknown names raise ``WorkerNotFoundError``."""
        worker = self._workers.get(worker_name)
        if worker is None:
            raise WorkerNotFoundError(worker_name)
        return await worker.invoke(params)

    def get_workers(self) -> list[str]:
        return list(self._workers)

    def get_worker(self, worker_name: str) -> WorkerAgent | None:
        return self._workers.get(worker_name)

    def get_manager(self) -> dict[str, str]:
        return {"name": self.manager.name, "description": self.manager.config.description}

    def get_memory(self) -> ConversationStore | None:
        return self._memory

    async def close(self) -> None:
        if self._memory is not None:
            await self._memory.close()

    async def __aenter__(self) -> "Office":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
