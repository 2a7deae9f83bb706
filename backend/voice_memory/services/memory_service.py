from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voice_memory.core.config import Settings
from voice_memory.memory.embedder import DeterministicEmbedder, Embedder, OpenAIEmbedder
from voice_memory.memory.flash import FlashExtractor
from voice_memory.memory.guarded import CompletionService
from voice_memory.memory.long_term import LongTermExtractor
from voice_memory.memory.merger import Merger
from voice_memory.memory.retriever import Retriever
from voice_memory.memory.scheduler import UpdateScheduler
from voice_memory.memory.snapshot_store import SnapshotStore
from voice_memory.memory.types import (
    FlashExtractionResult,
    LongTermExtractionResult,
    MemorySnapshot,
    MemoryUpdateRequest,
    UpdateDecision,
    UpdateOutcome,
)
from voice_memory.providers.completion import create_completion_client
from voice_memory.services.dialogue_history import DialogueHistoryProvider, SQLDialogueHistory
from voice_memory.services.session_registry import (
    MissingSessionContextError,
    SessionContext,
    SessionRegistry,
)

logger = logging.getLogger(__name__)


class MemoryService(ABC):
    """Abstract memory orchestration service."""

    enabled: bool = False

    @abstractmethod
    async def open_session(self, session_id: str) -> MemorySnapshot:
        """Register a session context and return its current snapshot."""

    @abstractmethod
    async def update_session(self, session_id: str) -> UpdateOutcome:
        """Run one scheduler → extract → merge → save cycle for the session."""

    @abstractmethod
    async def retrieve_context(self, session_id: str, text: str) -> list[str]:
        """Return memory texts relevant to the user utterance, best first."""

    @abstractmethod
    async def get_snapshot(self, session_id: str) -> MemorySnapshot:
        """Return the session's current snapshot."""

    @abstractmethod
    async def close_session(self, session_id: str, *, purge: bool = False) -> bool:
        """Tear down the session context; ``purge`` also deletes the persisted snapshot."""

    async def shutdown(self) -> None:
        return None


class NoopMemoryService(MemoryService):
    """Disabled memory mode implementation."""

    enabled = False

    async def open_session(self, session_id: str) -> MemorySnapshot:
        return MemorySnapshot.empty()

    async def update_session(self, session_id: str) -> UpdateOutcome:
        return UpdateOutcome(
            session_id=session_id,
            decision=UpdateDecision(turn_count=0, run_flash=False, run_long_term=False),
            snapshot=MemorySnapshot.empty(),
        )

    async def retrieve_context(self, session_id: str, text: str) -> list[str]:
        return []

    async def get_snapshot(self, session_id: str) -> MemorySnapshot:
        return MemorySnapshot.empty()

    async def close_session(self, session_id: str, *, purge: bool = False) -> bool:
        return False


class TurnMemoryService(MemoryService):
    """Turn-scheduled flash and long-term memory with per-session snapshots."""

    enabled = True

    def __init__(
        self,
        *,
        history: DialogueHistoryProvider,
        scheduler: UpdateScheduler,
        flash_extractor: FlashExtractor,
        long_term_extractor: LongTermExtractor,
        retriever: Retriever,
        merger: Merger,
        registry: SessionRegistry,
    ) -> None:
        self._history = history
        self._scheduler = scheduler
        self._flash_extractor = flash_extractor
        self._long_term_extractor = long_term_extractor
        self._retriever = retriever
        self._merger = merger
        self._registry = registry

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def open_session(self, session_id: str) -> MemorySnapshot:
        context = await self._registry.open(session_id)
        return context.snapshot

    async def update_session(self, session_id: str) -> UpdateOutcome:
        context = self._registry.get(session_id)
        async with context.lock:
            if context.closed:
                raise MissingSessionContextError(session_id, "session context was closed")
            events = await self._history.get_history(session_id)
            if events is None:
                raise MissingSessionContextError(session_id, "no dialogue history for session")

            decision = self._scheduler.decide(events)
            if context.closed:
                logger.info("Memory update for session %s dropped after teardown", session_id)
                return UpdateOutcome(
                    session_id=session_id,
                    decision=decision,
                    snapshot=context.snapshot,
                    cancelled=True,
                )
            if not decision.should_run:
                logger.debug(
                    "Memory update skipped for session %s at turn %s",
                    session_id,
                    decision.turn_count,
                )
                return UpdateOutcome(
                    session_id=session_id, decision=decision, snapshot=context.snapshot
                )

            request = MemoryUpdateRequest(
                session_id=session_id, events=tuple(events), snapshot=context.snapshot
            )
            task = asyncio.create_task(self._run_cycle(context, request, decision))
            context.pending_task = task
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                task.cancel()
                raise
            finally:
                if context.pending_task is task:
                    context.pending_task = None

            if task.cancelled():
                logger.info("Memory update for session %s cancelled by teardown", session_id)
                return UpdateOutcome(
                    session_id=session_id,
                    decision=decision,
                    snapshot=context.snapshot,
                    cancelled=True,
                )
            return task.result()

    async def retrieve_context(self, session_id: str, text: str) -> list[str]:
        snapshot = await self.get_snapshot(session_id)
        return await self._retriever.query(text, snapshot)

    async def get_snapshot(self, session_id: str) -> MemorySnapshot:
        context = self._registry.find(session_id)
        if context is not None:
            return context.snapshot
        return await asyncio.to_thread(self._registry.store.load_or_create, session_id)

    async def close_session(self, session_id: str, *, purge: bool = False) -> bool:
        closed = await self._registry.close(session_id)
        if purge:
            self._registry.store.delete(session_id)
        return closed

    async def shutdown(self) -> None:
        await self._registry.shutdown()

    async def _run_cycle(
        self,
        context: SessionContext,
        request: MemoryUpdateRequest,
        decision: UpdateDecision,
    ) -> UpdateOutcome:
        flash_result, long_term_result = await asyncio.gather(
            self._extract_flash(request, decision),
            self._extract_long_term(request, decision),
        )
        merged = self._merger.merge(
            request.snapshot,
            new_flash=flash_result.records,
            new_long_term=long_term_result.records,
        )
        if context.closed:
            return UpdateOutcome(
                session_id=request.session_id,
                decision=decision,
                snapshot=request.snapshot,
                cancelled=True,
            )

        context.snapshot = merged
        # Saved on the loop thread so a teardown cannot interleave with the write.
        saved = self._registry.store.save(request.session_id, merged)
        return UpdateOutcome(
            session_id=request.session_id,
            decision=decision,
            snapshot=merged,
            new_flash=flash_result.records,
            new_long_term=long_term_result.records,
            saved=saved,
        )

    async def _extract_flash(
        self, request: MemoryUpdateRequest, decision: UpdateDecision
    ) -> FlashExtractionResult:
        if not decision.run_flash:
            return FlashExtractionResult()
        logger.info(
            "Flash memory update triggered for session %s at turn %s",
            request.session_id,
            decision.turn_count,
        )
        return await self._flash_extractor.extract(request.events)

    async def _extract_long_term(
        self, request: MemoryUpdateRequest, decision: UpdateDecision
    ) -> LongTermExtractionResult:
        if not decision.run_long_term:
            return LongTermExtractionResult()
        logger.info(
            "Long term memory update triggered for session %s at turn %s",
            request.session_id,
            decision.turn_count,
        )
        return await self._long_term_extractor.extract(request.events, request.snapshot)


def create_memory_service(
    *,
    sessionmaker: async_sessionmaker[AsyncSession],
    settings: Settings,
    completion: Optional[CompletionService] = None,
    embedder: Optional[Embedder] = None,
    history: Optional[DialogueHistoryProvider] = None,
) -> MemoryService:
    """Factory wiring the memory pipeline from settings."""

    if not settings.memory_enabled:
        logger.info("MEMORY_ENABLED=false; memory updates and retrieval are disabled")
        return NoopMemoryService()

    completion = completion or create_completion_client(settings)
    embedder = embedder or _create_embedder(settings)
    timeout_sec = settings.extraction_timeout_sec
    return TurnMemoryService(
        history=history or SQLDialogueHistory(sessionmaker),
        scheduler=UpdateScheduler(
            flash_interval=settings.flash_memory_interval,
            long_term_interval=settings.long_term_memory_interval,
        ),
        flash_extractor=FlashExtractor(
            completion,
            embedder,
            max_history_turns=settings.flash_max_history_turns,
            max_flash_memory=settings.flash_max_memories,
            max_topics_per_memory=settings.flash_max_topics_per_memory,
            similarity_threshold=settings.flash_similarity_threshold,
            timeout_sec=timeout_sec,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        ),
        long_term_extractor=LongTermExtractor(
            completion,
            embedder,
            max_history_events=settings.long_term_max_history_events,
            timeout_sec=timeout_sec,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        ),
        retriever=Retriever(
            embedder,
            similarity_threshold=settings.retrieval_similarity_threshold,
            max_context_items=settings.retrieval_max_context_items,
            timeout_sec=timeout_sec,
        ),
        merger=Merger(
            similarity_threshold=settings.merge_similarity_threshold,
            max_flash_memories=settings.merge_max_flash_memories,
            max_long_term_memories=settings.merge_max_long_term_memories,
        ),
        registry=SessionRegistry(SnapshotStore(settings.resolved_storage_dir())),
    )


def _create_embedder(settings: Settings) -> Embedder:
    provider = settings.embed_provider.strip().lower()
    if provider == "deterministic":
        model_name = settings.embed_model.strip() or "deterministic-v1"
        return DeterministicEmbedder(dimension=settings.embed_dim, model_name=model_name)

    if provider == "openai":
        api_key = settings.embed_openai_api_key.strip()
        if not api_key:
            logger.warning(
                "EMBED_PROVIDER=openai but EMBED_OPENAI_API_KEY is missing; fallback to deterministic"
            )
            return DeterministicEmbedder(dimension=settings.embed_dim)
        model_name = settings.embed_model.strip()
        if not model_name or model_name.startswith("deterministic"):
            model_name = "text-embedding-3-small"
        return OpenAIEmbedder(
            base_url=settings.openai_base_url,
            api_key=api_key,
            model_name=model_name,
            dimension=settings.embed_dim,
        )

    logger.warning("Unknown EMBED_PROVIDER=%s; fallback to deterministic", provider)
    return DeterministicEmbedder(dimension=settings.embed_dim)


def get_memory_service(request: Request) -> MemoryService:
    """Dependency to access the app memory service."""

    return request.app.state.memory_service
