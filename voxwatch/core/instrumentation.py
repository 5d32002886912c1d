"""Instrumentation for one practice call.

Wraps each stage of a voice turn (STT → LLM → TTS → feedback) with latency
tracking and usage accounting so request handlers only deal with the stage
itself:

    call = CallInstrumentation(telemetry, actor_id=user_id, session_id=sid)
    async with call:
        with call.stt(audio_seconds=3.2):
            text = await transcribe(audio)
        with call.llm():
            reply = await generate(text)
        with call.tts():
            audio = await synthesize(reply)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from voxwatch.logging_config import get_logger

if TYPE_CHECKING:
    from voxwatch.telemetry import Telemetry

logger: Any = get_logger(__name__)

STT_BUCKET = "stt"
LLM_BUCKET = "llm"
TTS_BUCKET = "tts"
FEEDBACK_BUCKET = "feedback"


@dataclass
class CallInstrumentation:
    """Per-call view over the shared telemetry.

    A failure is captured here with ``stage="call"`` and re-raised; the HTTP
    boundary renders it without counting it a second time.
    """

    telemetry: Telemetry
    actor_id: str
    session_id: str | None = None

    completed: bool = field(default=False, init=False)

    @property
    def _meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {"actor_id": self.actor_id}
        if self.session_id:
            meta["session_id"] = self.session_id
        return meta

    async def __aenter__(self) -> CallInstrumentation:
        self.telemetry.usage.track_call_start(self.actor_id)
        logger.bind(**self._meta).info("Call started")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.telemetry.usage.track_call_end(self.actor_id)
            self.completed = True
            logger.bind(**self._meta).info("Call completed")
            return
        if isinstance(exc, Exception):
            self.telemetry.faults.capture(exc, {**self._meta, "stage": "call"})

    @contextmanager
    def stt(self, audio_seconds: float = 0.0) -> Iterator[None]:
        """Time speech-to-text and account the audio it consumed."""
        with self.telemetry.tracker.measure(STT_BUCKET, **self._meta):
            yield
        if audio_seconds > 0:
            self.telemetry.usage.track_resource_usage(self.actor_id, audio_seconds)

    @contextmanager
    def llm(self) -> Iterator[None]:
        """Time a language-model request and count it."""
        self.telemetry.usage.track_llm(self.actor_id)
        with self.telemetry.tracker.measure(LLM_BUCKET, **self._meta):
            yield

    @contextmanager
    def tts(self) -> Iterator[None]:
        """Time a speech-synthesis request and count it."""
        self.telemetry.usage.track_tts(self.actor_id)
        with self.telemetry.tracker.measure(TTS_BUCKET, **self._meta):
            yield

    @contextmanager
    def feedback(self) -> Iterator[None]:
        """Time end-of-call feedback generation."""
        with self.telemetry.tracker.measure(FEEDBACK_BUCKET, **self._meta):
            yield
