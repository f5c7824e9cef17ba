import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

from fastapi.encoders import jsonable_encoder

LOGGER = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def heartbeat_interval_seconds() -> float:
    return float(os.getenv("APPLYMINT_STREAM_HEARTBEAT_SECONDS", "30"))


def question_delay_seconds() -> float:
    return float(os.getenv("APPLYMINT_STREAM_QUESTION_DELAY_SECONDS", "2"))


def format_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(jsonable_encoder(event), ensure_ascii=True)}\n\n"


class InterviewEventChannel:
    """Server-push channel for one interview session.

    The channel owns its heartbeat and first-question tasks. ``close()`` cancels
    both, and nothing is queued after it returns. ``ask_question`` is a blocking
    callable run in a worker thread; it may return ``None`` when there is
    nothing left to ask.
    """

    def __init__(
        self,
        session_id: str,
        ask_question: Callable[[], dict | None],
        *,
        heartbeat_interval: float | None = None,
        question_delay: float | None = None,
    ) -> None:
        self.session_id = session_id
        self._ask_question = ask_question
        self._heartbeat_interval = heartbeat_interval if heartbeat_interval is not None else heartbeat_interval_seconds()
        self._question_delay = question_delay if question_delay is not None else question_delay_seconds()
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._publish({"type": "connected", "sessionId": self.session_id, "timestamp": _utc_now()})
        self._tasks = [
            asyncio.create_task(self._heartbeat_loop()),
            asyncio.create_task(self._emit_first_question()),
        ]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            self._tasks = []
            LOGGER.info("Closed interview stream for session %s", self.session_id)

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        while not self._closed:
            event = await self._queue.get()
            if self._closed:
                break
            yield event

    async def __aenter__(self) -> "InterviewEventChannel":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _publish(self, event: dict[str, Any]) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            self._publish({"type": "heartbeat", "timestamp": _utc_now()})

    async def _emit_first_question(self) -> None:
        await asyncio.sleep(self._question_delay)
        try:
            question = await asyncio.to_thread(self._ask_question)
        except Exception:
            LOGGER.exception("Question generation failed for session %s", self.session_id)
            self._publish(
                {
                    "type": "error",
                    "payload": {"message": "Failed to generate question"},
                    "timestamp": _utc_now(),
                }
            )
            return
        if question is None:
            return
        self._publish(
            {
                "type": "question_generated",
                "payload": {"question": question},
                "timestamp": _utc_now(),
            }
        )


async def stream_channel(channel: InterviewEventChannel) -> AsyncIterator[str]:
    async with channel:
        async for event in channel.events():
            yield format_sse(event)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
