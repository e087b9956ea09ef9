from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

import httpx

from api.utils.logger import configure_logging

logger = configure_logging()

JobHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class JobDispatcher(ABC):
    """Fire-and-forget job submission. `send` returns an opaque job id."""

    @abstractmethod
    async def send(self, event_name: str, payload: Dict[str, Any]) -> str:
        raise NotImplementedError


class InngestDispatcher(JobDispatcher):
    """
    Sends events to an Inngest-compatible event API (`POST {base_url}/e/{event_key}`).
    The job runner calls back into `POST /api/jobs/{event_name}`.
    """

    def __init__(
        self,
        event_key: str,
        base_url: str = "https://inn.gs",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not event_key:
            raise ValueError("InngestDispatcher requires an event key")
        self.event_key = event_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def send(self, event_name: str, payload: Dict[str, Any]) -> str:
        url = f"{self.base_url}/e/{self.event_key}"
        body = {"name": event_name, "data": payload}
        if self._client is not None:
            resp = await self._client.post(url, json=body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=body)
        resp.raise_for_status()

        ids = resp.json().get("ids") or []
        job_id = ids[0] if isinstance(ids, list) and ids else str(ids)
        logger.info("event=job_dispatched name=%s job_id=%s", event_name, job_id)
        return job_id


class LocalDispatcher(JobDispatcher):
    """
    In-process dispatcher: runs the registered handler as an asyncio task on the current
    loop. Handler failures are logged; the caller already has its job id.
    """

    def __init__(self):
        self._handlers: Dict[str, JobHandler] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def register(self, event_name: str, handler: JobHandler) -> None:
        self._handlers[event_name] = handler

    def task(self, job_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    async def send(self, event_name: str, payload: Dict[str, Any]) -> str:
        handler = self._handlers.get(event_name)
        if handler is None:
            raise LookupError(f"No job handler registered for {event_name}")

        job_id = str(uuid4())
        task = asyncio.create_task(handler(dict(payload)), name=f"job:{event_name}:{job_id}")
        self._tasks[job_id] = task

        def _done(t: asyncio.Task) -> None:
            self._tasks.pop(job_id, None)
            if t.cancelled():
                logger.warning("event=job_cancelled name=%s job_id=%s", event_name, job_id)
            elif t.exception() is not None:
                logger.error("event=job_failed name=%s job_id=%s error=%s", event_name, job_id, t.exception())

        task.add_done_callback(_done)
        logger.info("event=job_dispatched name=%s job_id=%s", event_name, job_id)
        return job_id

    async def drain(self) -> None:
        """Wait for every pending job; used on shutdown and in tests."""
        pending = list(self._tasks.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
