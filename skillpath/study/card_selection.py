"""
Card Selection Engine.

Builds the card list of a new session:

1. Resolve the scope (whole tree, one node, a subtree, or a deck)
2. Keep due cards, ordered by due date, truncated to the limit
3. With no due cards, fall back to the soonest-due "practice" cards
4. Assign a presentation type per card and provision distractors
5. Shuffle the final presentation order

Due order decides which cards enter the session; the shuffle decides the
order they are shown in.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from skillpath.core.errors import AuthorizationError, NoCardsAvailableError, NotFoundError
from skillpath.core.interfaces import CardStore
from skillpath.core.models import CardRecord, SkillNodeRecord, ensure_aware
from skillpath.core.modes import CardState, CardType, ScopeKind, StudyMode
from skillpath.study.cards import StudyCard, flashcard_from
from skillpath.study.distractors import DistractorProvisioner


def is_in_subtree(path: str, root_path: str) -> bool:
    """True for the node at root_path and every descendant (dotted paths)."""
    return path == root_path or path.startswith(root_path + ".")


@dataclass
class SelectionScope:
    """What a session draws cards from."""

    kind: ScopeKind
    scope_id: str
    node_id: str | None = None
    include_children: bool = True


@dataclass
class SelectionResult:
    cards: list[StudyCard]
    due_count: int
    eligible_count: int
    is_practice: bool = False
    node: SkillNodeRecord | None = None
    tree_id: str | None = None
    member_ids: list[str] = field(default_factory=list)


def _by_due(cards: list[CardRecord]) -> list[CardRecord]:
    # sorted() is stable: ties keep store order
    return sorted(cards, key=lambda c: ensure_aware(c.scheduling.due))


def _cap_new_cards(cards: list[CardRecord], cap: int | None) -> list[CardRecord]:
    """Drop New-state cards past the first cap of them; other tiers pass through."""
    if cap is None:
        return cards
    kept = []
    new_taken = 0
    for card in cards:
        if card.scheduling.state is CardState.NEW:
            if new_taken >= cap:
                continue
            new_taken += 1
        kept.append(card)
    return kept


def choose_cards(
    eligible: list[CardRecord],
    limit: int,
    now: datetime,
    new_card_cap: int | None = None,
) -> tuple[list[CardRecord], int, bool]:
    """
    Pick session cards from the eligible pool.

    Args:
        eligible: Active cards in scope, in store order
        limit: Maximum cards in the session
        now: Reference time for due-ness
        new_card_cap: Maximum New-state cards (deck sessions)

    Returns:
        (chosen cards, number of due cards, practice fallback used)
    """
    now = ensure_aware(now)
    seen: set[str] = set()
    unique = []
    for card in eligible:
        if card.id not in seen:
            seen.add(card.id)
            unique.append(card)

    due = _cap_new_cards(_by_due([c for c in unique if c.scheduling.is_due(now)]), new_card_cap)
    if due:
        return due[:limit], len(due), False

    practice = _cap_new_cards(_by_due(unique), new_card_cap)
    return practice[:limit], 0, True


class CardSelectionEngine:
    """Selects and presents the cards of a new study session."""

    def __init__(
        self,
        card_store: CardStore,
        provisioner: DistractorProvisioner,
        rng: random.Random | None = None,
    ):
        self.card_store = card_store
        self.provisioner = provisioner
        self.rng = rng or random.Random()

    async def select_cards(
        self,
        user_id: str,
        scope: SelectionScope,
        mode: StudyMode,
        limit: int,
        now: datetime,
        new_card_cap: int | None = None,
    ) -> SelectionResult:
        """
        Build the presented card list for a scope.

        Raises:
            NotFoundError: goal, deck or node missing (or not the caller's)
            AuthorizationError: deck belongs to another user
            NoCardsAvailableError: scope holds zero active cards
        """
        eligible, node, tree_id = await self._resolve_scope(user_id, scope)
        member_ids = [c.id for c in eligible] if scope.kind is ScopeKind.DECK else []

        if not eligible:
            raise NoCardsAvailableError(
                "No cards available in this scope",
                scope_id=scope.scope_id,
                node_id=scope.node_id,
            )

        chosen, due_count, is_practice = choose_cards(eligible, limit, now, new_card_cap)
        if is_practice:
            logger.info(f"No due cards in scope {scope.scope_id}; using {len(chosen)} practice cards")

        # Sequential: adapters may share one database session
        cards: list[StudyCard] = []
        for card in chosen:
            cards.append(await self.present(card, mode, user_id))

        self.rng.shuffle(cards)

        return SelectionResult(
            cards=cards,
            due_count=due_count,
            eligible_count=len(eligible),
            is_practice=is_practice,
            node=node,
            tree_id=tree_id,
            member_ids=member_ids,
        )

    def assign_type(self, card: CardRecord, mode: StudyMode) -> CardType:
        """Presentation type for a card under a mode."""
        if mode is StudyMode.MULTIPLE_CHOICE:
            return CardType.MULTIPLE_CHOICE
        if mode is StudyMode.MIXED:
            return CardType.MULTIPLE_CHOICE if self.rng.random() < 0.5 else CardType.FLASHCARD
        return card.card_type

    async def present(self, card: CardRecord, mode: StudyMode, user_id: str) -> StudyCard:
        assigned = self.assign_type(card, mode)
        if assigned is CardType.FLASHCARD:
            return flashcard_from(card)
        if mode.needs_distractors:
            return await self.provisioner.provision(card, user_id)
        # Native multiple-choice card outside a distractor mode: no generation
        return await self.provisioner.resolve_existing(card)

    async def _resolve_scope(
        self, user_id: str, scope: SelectionScope
    ) -> tuple[list[CardRecord], SkillNodeRecord | None, str | None]:
        if scope.kind is ScopeKind.DECK:
            deck = await self.card_store.get_deck(scope.scope_id)
            if deck is None:
                raise NotFoundError("Deck not found", deck_id=scope.scope_id)
            if deck.user_id != user_id:
                raise AuthorizationError("Deck belongs to another user", deck_id=scope.scope_id)
            return await self.card_store.list_deck_cards(deck.id, user_id), None, None

        goal = await self.card_store.get_goal(scope.scope_id)
        if goal is None or goal.user_id != user_id:
            raise NotFoundError("Goal not found", goal_id=scope.scope_id)
        if not goal.tree_id:
            raise NotFoundError("Goal has no skill tree", goal_id=goal.id)

        cards = await self.card_store.list_tree_cards(goal.tree_id, user_id)
        if scope.node_id is None:
            return cards, None, goal.tree_id

        node = await self.card_store.get_node(scope.node_id)
        if node is None or node.tree_id != goal.tree_id:
            raise NotFoundError("Node not found in this goal", node_id=scope.node_id)

        if scope.include_children:
            cards = [c for c in cards if is_in_subtree(c.node_path, node.path)]
        else:
            cards = [c for c in cards if c.node_id == node.id]
        return cards, node, goal.tree_id
