"""
Study Module - Session orchestration.

Components:
- card_selection: scope resolution, due ordering, practice fallback, presentation
- distractors: multiple-choice distractor provisioning with fallback
- guided_flow: depth-first next-node selection and tree completion
- rating: scheduling writes, response-time adjustment, mastery roll-up
- deck_sync: live deck membership reconciliation
- session_manager: session lifecycle (start, resume, rate, complete, abandon)
"""

from skillpath.study.card_selection import CardSelectionEngine, SelectionScope, choose_cards, is_in_subtree
from skillpath.study.cards import FlashcardStudyCard, MultipleChoiceStudyCard, StudyCard
from skillpath.study.deck_sync import DeckChanges, LiveDeckSync
from skillpath.study.distractors import DistractorProvisioner
from skillpath.study.guided_flow import GuidedOutcome, GuidedTraversalController, NodeProgress, TreeProgress
from skillpath.study.rating import MasteryRecalculator, RatingIngestor, adjust_rating_for_response_time
from skillpath.study.session_manager import SessionManager, StartedSession
from skillpath.study.summary import CompletionResult, RatingInput, TimedScore

__all__ = [
    "CardSelectionEngine",
    "SelectionScope",
    "choose_cards",
    "is_in_subtree",
    "FlashcardStudyCard",
    "MultipleChoiceStudyCard",
    "StudyCard",
    "DeckChanges",
    "LiveDeckSync",
    "DistractorProvisioner",
    "GuidedOutcome",
    "GuidedTraversalController",
    "NodeProgress",
    "TreeProgress",
    "MasteryRecalculator",
    "RatingIngestor",
    "adjust_rating_for_response_time",
    "SessionManager",
    "StartedSession",
    "CompletionResult",
    "RatingInput",
    "TimedScore",
]
