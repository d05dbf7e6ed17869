"""
Distractor provisioning for multiple-choice presentation.

Resolution order for a card presented as multiple choice:
1. Persisted distractors (three or more) from the distractor store
2. Legacy distractors embedded in card metadata (three or more), when enabled
3. A background distractor_generation job; the card ships with the job id

Provider failures never fail session start: the card degrades to a
flashcard and the failure is logged.
"""

from __future__ import annotations

import random

from loguru import logger

from skillpath.core.errors import UpstreamUnavailableError
from skillpath.core.interfaces import DistractorStore, JobQueue
from skillpath.core.models import CardRecord
from skillpath.core.modes import JobType
from skillpath.study.cards import (
    DISTRACTORS_PER_CARD,
    StudyCard,
    flashcard_from,
    multiple_choice_from,
)


class DistractorProvisioner:
    """Turns a card into a multiple-choice study card, or degrades it to a flashcard."""

    def __init__(
        self,
        distractor_store: DistractorStore,
        job_queue: JobQueue,
        use_metadata_fallback: bool = True,
        job_priority: int = 0,
        rng: random.Random | None = None,
    ):
        self.distractor_store = distractor_store
        self.job_queue = job_queue
        self.use_metadata_fallback = use_metadata_fallback
        self.job_priority = job_priority
        self.rng = rng or random.Random()

    async def provision(self, card: CardRecord, user_id: str) -> StudyCard:
        """
        Resolve distractors for a card assigned multiple choice at session start.

        Enqueues a generation job when no usable distractors exist.
        """
        try:
            ready = await self.ready_distractors(card)
        except UpstreamUnavailableError as exc:
            logger.warning(f"{exc.message}, presenting card {card.id} as flashcard")
            return flashcard_from(card)
        if ready is not None:
            return multiple_choice_from(card, distractors=ready)

        try:
            job = await self.job_queue.create(
                JobType.DISTRACTOR_GENERATION.value,
                {"flashcardId": card.id, "question": card.question, "answer": card.answer},
                user_id,
                priority=self.job_priority,
            )
        except Exception as exc:
            logger.warning(f"Distractor job creation failed for card {card.id}, presenting as flashcard: {exc}")
            return flashcard_from(card)

        logger.debug(f"Queued distractor job {job.id} for card {card.id}")
        return multiple_choice_from(card, job_id=job.id)

    async def resolve_existing(self, card: CardRecord) -> StudyCard:
        """Multiple choice when distractors are already available, flashcard otherwise. Never enqueues."""
        try:
            ready = await self.ready_distractors(card)
        except UpstreamUnavailableError as exc:
            logger.warning(f"{exc.message}, presenting card {card.id} as flashcard")
            return flashcard_from(card)
        if ready is None:
            return flashcard_from(card)
        return multiple_choice_from(card, distractors=ready)

    async def ready_distractors(self, card: CardRecord) -> list[str] | None:
        """
        Three shuffled distractors from the store or legacy metadata, or None.

        Raises:
            UpstreamUnavailableError: the distractor store lookup failed
        """
        try:
            stored = await self.distractor_store.get_distractors(card.id)
        except Exception as exc:
            raise UpstreamUnavailableError(f"Distractor lookup failed for card {card.id}: {exc}") from exc

        if len(stored) >= DISTRACTORS_PER_CARD:
            return self.rng.sample(list(stored), DISTRACTORS_PER_CARD)

        if self.use_metadata_fallback:
            legacy = card.metadata_distractors
            if len(legacy) >= DISTRACTORS_PER_CARD:
                return self.rng.sample(legacy, DISTRACTORS_PER_CARD)

        return None
