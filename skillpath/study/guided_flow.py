"""
Guided Traversal Controller.

Guided mode walks a goal's skill tree depth-first: the next node to study
is the incomplete node whose materialized path sorts first ("1" < "1.1" <
"1.2" < "2"). Completion is always recomputed from the card store's
scheduling states; cached mastery percentages are never consulted.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from skillpath.core.interfaces import CardStore
from skillpath.core.mastery import count_completed
from skillpath.core.models import CardRecord, SkillNodeRecord


class GuidedOutcome(str, Enum):
    """Why a guided start produced no session."""

    TREE_COMPLETE = "tree_complete"
    AWAITING_CONTENT = "awaiting_content"

    @property
    def message(self) -> str:
        if self is GuidedOutcome.TREE_COMPLETE:
            return "Congratulations! You've completed all topics in this skill tree."
        return "No study content is available yet. Cards for the remaining topics are still being generated."


@dataclass
class NodeProgress:
    """Completion counts of one enabled node."""

    id: str
    title: str
    path: str
    depth: int
    description: str | None
    total_cards: int
    completed_cards: int

    @property
    def is_complete(self) -> bool:
        return self.total_cards > 0 and self.completed_cards == self.total_cards

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "path": self.path,
            "depth": self.depth,
            "description": self.description,
            "total_cards": self.total_cards,
            "completed_cards": self.completed_cards,
            "is_complete": self.is_complete,
        }


@dataclass
class TreeSummary:
    total_nodes: int = 0
    completed_nodes: int = 0
    total_cards: int = 0
    completed_cards: int = 0

    @property
    def percent_complete(self) -> int:
        if self.total_nodes == 0:
            return 0
        return round(self.completed_nodes / self.total_nodes * 100)

    @property
    def is_tree_complete(self) -> bool:
        return self.total_nodes > 0 and self.completed_nodes == self.total_nodes

    def to_dict(self) -> dict:
        return {
            "total_nodes": self.total_nodes,
            "completed_nodes": self.completed_nodes,
            "total_cards": self.total_cards,
            "completed_cards": self.completed_cards,
            "percent_complete": self.percent_complete,
        }


@dataclass
class TreeProgress:
    nodes: list[NodeProgress] = field(default_factory=list)
    summary: TreeSummary = field(default_factory=TreeSummary)

    def first_incomplete(self) -> NodeProgress | None:
        """
        Enabled node with at least one active card and not every card at Review
        tier, smallest path first.
        """
        for node in self.nodes:
            if node.total_cards > 0 and not node.is_complete:
                return node
        return None

    @property
    def outcome(self) -> GuidedOutcome:
        """Terminal outcome when no incomplete node is left."""
        if self.summary.is_tree_complete:
            return GuidedOutcome.TREE_COMPLETE
        return GuidedOutcome.AWAITING_CONTENT


def build_tree_progress(nodes: list[SkillNodeRecord], cards: list[CardRecord]) -> TreeProgress:
    """
    Per-node completion for the enabled nodes of a tree.

    A node counts its own active cards only; descendants are separate nodes.
    Nodes are returned in path order.
    """
    by_node: dict[str, list[CardRecord]] = defaultdict(list)
    for card in cards:
        if card.node_id:
            by_node[card.node_id].append(card)

    progress: list[NodeProgress] = []
    for node in sorted(nodes, key=lambda n: n.path):
        if not node.is_enabled:
            continue
        node_cards = by_node.get(node.id, [])
        progress.append(
            NodeProgress(
                id=node.id,
                title=node.title,
                path=node.path,
                depth=node.depth,
                description=node.description,
                total_cards=len(node_cards),
                completed_cards=count_completed(c.scheduling for c in node_cards),
            )
        )

    summary = TreeSummary(
        total_nodes=len(progress),
        completed_nodes=sum(1 for p in progress if p.is_complete),
        total_cards=sum(p.total_cards for p in progress),
        completed_cards=sum(p.completed_cards for p in progress),
    )
    return TreeProgress(nodes=progress, summary=summary)


class GuidedTraversalController:
    """Next-node selection and completion detection for guided study."""

    def __init__(self, card_store: CardStore):
        self.card_store = card_store

    async def tree_progress(self, tree_id: str) -> TreeProgress:
        nodes = await self.card_store.get_tree_nodes(tree_id)
        cards = await self.card_store.list_tree_cards(tree_id)
        return build_tree_progress(nodes, cards)

    async def next_incomplete_node(self, tree_id: str) -> NodeProgress | None:
        """Next node to study in depth-first order, None when no node qualifies."""
        progress = await self.tree_progress(tree_id)
        return progress.first_incomplete()

    async def terminal_outcome(self, tree_id: str) -> GuidedOutcome:
        """Outcome reported when next_incomplete_node found nothing."""
        progress = await self.tree_progress(tree_id)
        outcome = progress.outcome
        logger.info(
            f"Guided traversal of tree {tree_id} finished: {outcome.value} "
            f"({progress.summary.completed_nodes}/{progress.summary.total_nodes} nodes)"
        )
        return outcome
