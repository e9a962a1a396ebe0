"""
Node response behaviors.

Every behavior answers a single question: what opinion does this node report
for a transaction when a peer queries it? Answers are read from the frozen
snapshot of the previous round, never from in-progress updates.

Malicious nodes delegate to an AdversaryStrategy. Strategies are registered
by name so new ones can be added without touching the round engine.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from .errors import InvalidConfiguration
from .opinions import OpinionSnapshot
from .types import DISLIKE, LIKE, OPINION_VALUES, NodeKind


@dataclass(frozen=True)
class QueryView:
    """
    What a queried node may look at while answering.

    `rng` is the querier's own substream so that parallel node updates stay
    deterministic.
    """
    querier: int
    round_number: int
    snapshot: OpinionSnapshot
    rng: random.Random

    def querier_opinion(self, tx_id: int) -> int:
        return self.snapshot.opinion(self.querier, tx_id)


# =============================================================================
# Behaviors
# =============================================================================

class NodeBehavior(ABC):
    """Response policy of a node."""

    kind: NodeKind
    updates_opinions = True

    @abstractmethod
    def respond(self, node_id: int, tx_id: int, view: QueryView) -> Optional[int]:
        """Opinion reported for `tx_id`, or None to abstain."""
        pass

    def describe(self) -> str:
        return self.kind.value


class HonestBehavior(NodeBehavior):
    """Reports its last published opinion."""

    kind = NodeKind.HONEST

    def __init__(self, finalized_respond: bool = True):
        self.finalized_respond = finalized_respond

    def respond(self, node_id, tx_id, view):
        if not self.finalized_respond and view.snapshot.is_finalized(node_id, tx_id):
            return None
        return view.snapshot.opinion(node_id, tx_id)


class FaultyBehavior(HonestBehavior):
    """Stays silent with a fixed probability, otherwise answers honestly."""

    kind = NodeKind.FAULTY

    def __init__(self, silence_probability: float = 0.5, finalized_respond: bool = True):
        if not 0.0 <= silence_probability <= 1.0:
            raise InvalidConfiguration(
                f"silence_probability must be in [0, 1], got {silence_probability}"
            )
        super().__init__(finalized_respond=finalized_respond)
        self.silence_probability = silence_probability

    def respond(self, node_id, tx_id, view):
        if view.rng.random() < self.silence_probability:
            return None
        return super().respond(node_id, tx_id, view)

    def describe(self) -> str:
        return f"faulty(p={self.silence_probability})"


class MaliciousBehavior(NodeBehavior):
    """Answers according to an adversarial strategy; never updates opinions."""

    kind = NodeKind.MALICIOUS
    updates_opinions = False

    def __init__(self, strategy: 'AdversaryStrategy'):
        self.strategy = strategy

    def respond(self, node_id, tx_id, view):
        return self.strategy.respond(node_id, tx_id, view)

    def describe(self) -> str:
        return f"malicious({self.strategy.name})"


# =============================================================================
# Adversary Strategies
# =============================================================================

class AdversaryStrategy(ABC):
    """A malicious response policy with complete vision of the snapshot."""

    name = "adversary"

    @abstractmethod
    def respond(self, node_id: int, tx_id: int, view: QueryView) -> Optional[int]:
        pass


# Global registry of adversary strategies
ADVERSARY_STRATEGIES: Dict[str, Type[AdversaryStrategy]] = {}


def register_strategy(name: str) -> Callable[[Type[AdversaryStrategy]], Type[AdversaryStrategy]]:
    """
    Class decorator registering an adversary strategy.

    Usage:
        @register_strategy("always_like")
        class AlwaysLike(AdversaryStrategy):
            def respond(self, node_id, tx_id, view):
                return 1
    """
    def decorator(cls: Type[AdversaryStrategy]) -> Type[AdversaryStrategy]:
        cls.name = name
        ADVERSARY_STRATEGIES[name] = cls
        return cls
    return decorator


@register_strategy("opposite_majority")
class OppositeMajority(AdversaryStrategy):
    """
    Report the opinion currently held by the minority of non-malicious
    nodes, pushing the network towards a split. On an exact tie, report the
    opposite of the querier's own opinion.
    """

    def respond(self, node_id, tx_id, view):
        dislikes, likes = view.snapshot.tally(tx_id)
        if likes < dislikes:
            return LIKE
        if likes > dislikes:
            return DISLIKE
        return 1 - view.querier_opinion(tx_id)


@register_strategy("echo")
class EchoQuerier(AdversaryStrategy):
    """Mirror the querier's own opinion back at it to stall any change."""

    def respond(self, node_id, tx_id, view):
        return view.querier_opinion(tx_id)


@register_strategy("fixed")
class FixedOpinion(AdversaryStrategy):
    """Always report the same opinion."""

    def __init__(self, value: int = LIKE):
        if value not in OPINION_VALUES:
            raise InvalidConfiguration(f"Fixed strategy value must be 0 or 1, got {value}")
        self.value = value

    def respond(self, node_id, tx_id, view):
        return self.value


@register_strategy("random")
class RandomOpinion(AdversaryStrategy):
    """Report a fair coin flip."""

    def respond(self, node_id, tx_id, view):
        return view.rng.randint(DISLIKE, LIKE)


def create_strategy(name: str, **params: Any) -> AdversaryStrategy:
    """Instantiate a registered strategy by name."""
    cls = ADVERSARY_STRATEGIES.get(name)
    if cls is None:
        raise InvalidConfiguration(
            f"Unknown adversary strategy: {name}. Valid strategies: {sorted(ADVERSARY_STRATEGIES)}"
        )
    try:
        return cls(**params)
    except TypeError as e:
        raise InvalidConfiguration(f"Invalid parameters for strategy {name}: {e}") from e
