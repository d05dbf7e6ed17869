"""
Unit tests for distractor provisioning and its fallbacks.
"""

import random

import pytest

from skillpath.core.models import CardRecord
from skillpath.core.modes import CardType
from skillpath.study.cards import FlashcardStudyCard, MultipleChoiceStudyCard, multiple_choice_from
from skillpath.study.distractors import DistractorProvisioner
from tests.fakes import InMemoryDistractorStore, InMemoryJobQueue


def make_card(card_id="c1", metadata=None) -> CardRecord:
    return CardRecord(
        id=card_id,
        user_id="user-1",
        question="What does TCP stand for?",
        answer="Transmission Control Protocol",
        card_type=CardType.MULTIPLE_CHOICE,
        metadata=metadata or {},
    )


def make_provisioner(store=None, queue=None, **kwargs):
    return DistractorProvisioner(
        store or InMemoryDistractorStore(),
        queue or InMemoryJobQueue(),
        rng=random.Random(5),
        **kwargs,
    )


class TestProvision:
    @pytest.mark.asyncio
    async def test_stored_distractors_are_sampled_to_three(self):
        store = InMemoryDistractorStore({"c1": ["a", "b", "c", "d", "e"]})
        provisioner = make_provisioner(store)

        card = await provisioner.provision(make_card(), "user-1")

        assert isinstance(card, MultipleChoiceStudyCard)
        assert len(card.distractors) == 3
        assert set(card.distractors) <= {"a", "b", "c", "d", "e"}
        assert card.distractors_job_id is None

    @pytest.mark.asyncio
    async def test_legacy_metadata_distractors_are_used(self):
        queue = InMemoryJobQueue()
        provisioner = make_provisioner(queue=queue)

        card = await provisioner.provision(make_card(metadata={"distractors": ["x", "y", "z"]}), "user-1")

        assert sorted(card.distractors) == ["x", "y", "z"]
        assert queue.jobs == {}

    @pytest.mark.asyncio
    async def test_metadata_fallback_can_be_disabled(self):
        queue = InMemoryJobQueue()
        provisioner = make_provisioner(queue=queue, use_metadata_fallback=False)

        card = await provisioner.provision(make_card(metadata={"distractors": ["x", "y", "z"]}), "user-1")

        assert card.distractors == []
        assert card.distractors_job_id in queue.jobs

    @pytest.mark.asyncio
    async def test_missing_distractors_enqueue_generation_job(self):
        queue = InMemoryJobQueue()
        provisioner = make_provisioner(InMemoryDistractorStore({"c1": ["only-one"]}), queue, job_priority=2)

        card = await provisioner.provision(make_card(), "user-1")

        assert isinstance(card, MultipleChoiceStudyCard)
        assert card.distractors == []
        job = queue.jobs[card.distractors_job_id]
        assert job.type == "distractor_generation"
        assert job.payload == {
            "flashcardId": "c1",
            "question": "What does TCP stand for?",
            "answer": "Transmission Control Protocol",
        }
        assert job.user_id == "user-1"
        assert job.priority == 2

    @pytest.mark.asyncio
    async def test_job_queue_failure_degrades_to_flashcard(self):
        provisioner = make_provisioner(queue=InMemoryJobQueue(fail=True))

        card = await provisioner.provision(make_card(), "user-1")

        assert type(card) is FlashcardStudyCard
        assert card.card_type == "flashcard"

    @pytest.mark.asyncio
    async def test_distractor_store_failure_degrades_to_flashcard(self):
        queue = InMemoryJobQueue()
        provisioner = make_provisioner(InMemoryDistractorStore(fail=True), queue)

        card = await provisioner.provision(make_card(metadata={"distractors": ["x", "y", "z"]}), "user-1")

        assert type(card) is FlashcardStudyCard
        assert queue.jobs == {}


class TestResolveExisting:
    @pytest.mark.asyncio
    async def test_never_enqueues(self):
        queue = InMemoryJobQueue()
        provisioner = make_provisioner(queue=queue)

        card = await provisioner.resolve_existing(make_card())

        assert type(card) is FlashcardStudyCard
        assert queue.jobs == {}

    @pytest.mark.asyncio
    async def test_uses_ready_distractors(self):
        provisioner = make_provisioner(InMemoryDistractorStore({"c1": ["a", "b", "c"]}))

        card = await provisioner.resolve_existing(make_card())

        assert isinstance(card, MultipleChoiceStudyCard)
        assert sorted(card.distractors) == ["a", "b", "c"]


class TestMultipleChoiceCard:
    def test_requires_distractors_or_job(self):
        with pytest.raises(ValueError):
            multiple_choice_from(make_card())

    def test_requires_exactly_three_distractors(self):
        with pytest.raises(ValueError):
            multiple_choice_from(make_card(), distractors=["a", "b"])

    def test_to_dict_shape(self):
        data = multiple_choice_from(make_card(), job_id="job-9").to_dict()

        assert data["card_type"] == "multiple_choice"
        assert data["distractors"] is None
        assert data["distractors_job_id"] == "job-9"
        assert data["scheduling"]["state"] == "New"
