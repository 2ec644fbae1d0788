import random
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from trading_table import deck as deck_ops
from trading_table.config import COMMUNITY_CARDS, HOUSE_FEE
from trading_table.errors import DeckExhausted, InvalidTransition
from trading_table.models import Card, RoundPhase, Table, Trade
from trading_table.settlement import Settlement, compute_settlement, validate_trades

logger = logging.getLogger(__name__)


# Phase values; each carries only what is valid in that phase.
@dataclass(frozen=True)
class Dealing:
    phase = RoundPhase.DEAL

@dataclass(frozen=True)
class Trading:
    community: Tuple[Card, ...]
    phase = RoundPhase.TRADING

@dataclass(frozen=True)
class Revealed:
    community: Tuple[Card, ...]
    phase = RoundPhase.REVEAL

@dataclass(frozen=True)
class Settled:
    community: Tuple[Card, ...]
    settlement: Settlement = field(compare=False)
    phase = RoundPhase.SETTLE

PhaseState = Union[Dealing, Trading, Revealed, Settled]


class Round:
    """
    One pass through deal -> trading -> reveal -> settle for a table.

    A Round is used once and discarded. The next round gets a new instance over
    the same Table (so balances carry forward) and a freshly generated deck.
    Calls are not synchronized; the owner of the table must serialize them.
    """

    def __init__(
        self,
        table: Table,
        deck: Sequence[int],
        house_fee_rate: float = HOUSE_FEE,
        rng: Optional[random.Random] = None,
        shuffle_deck: bool = True,
    ) -> None:
        if not 0.0 <= house_fee_rate <= 1.0:
            raise ValueError("house_fee_rate must be between 0 and 1")
        self.table = table
        self.deck: List[int] = list(deck)
        self._house_fee_rate = house_fee_rate
        self._rng = rng
        self._shuffle_deck = shuffle_deck
        self._phase: PhaseState = Dealing()

    @property
    def house_fee_rate(self) -> float:
        return self._house_fee_rate

    @property
    def state(self) -> RoundPhase:
        return self._phase.phase

    @property
    def community(self) -> List[int]:
        if isinstance(self._phase, Dealing):
            return []
        return [c.value for c in self._phase.community]

    @property
    def settlement(self) -> Optional[Settlement]:
        if isinstance(self._phase, Settled):
            return self._phase.settlement
        return None

    def community_total(self) -> int:
        return sum(self.community)

    def _require(self, expected: type, operation: str) -> None:
        if not isinstance(self._phase, expected):
            raise InvalidTransition(operation, self.state.value)

    def deal(self) -> None:
        self._require(Dealing, "deal")
        needed = len(self.table.players) + COMMUNITY_CARDS
        if len(self.deck) < needed:
            raise DeckExhausted(
                f"Deck holds {len(self.deck)} cards but {needed} are needed to deal"
            )
        if self._shuffle_deck:
            deck_ops.shuffle(self.deck, self._rng)

        for p in self.table.players:
            value, self.deck = deck_ops.pop(self.deck)
            p.card = Card(value)
            p.position = 0
        community = []
        for _ in range(COMMUNITY_CARDS):
            value, self.deck = deck_ops.pop(self.deck)
            community.append(Card(value))

        self._phase = Trading(community=tuple(community))
        logger.info(f"Dealt {len(self.table.players)} hands; round state changed to 'trading'.")

    def reveal(self) -> None:
        self._require(Trading, "reveal")
        self._phase = Revealed(community=self._phase.community)
        logger.info(f"Community revealed: {self.community}; round state changed to 'reveal'.")

    def settle(self, trades: Sequence[Trade]) -> Dict[str, float]:
        """
        Apply the round's trades and the revealed cards to player balances.
        The batch is validated first; on any bad trade nothing is changed.
        """
        self._require(Revealed, "settle")
        trades = validate_trades(trades, self.table.player_ids())
        result = compute_settlement(
            self.table.players,
            self.community,
            trades,
            self._house_fee_rate,
        )
        for p in self.table.players:
            p.position = result.positions[p.player_id]
            p.balance += result.deltas[p.player_id]
        self.table.pot += result.total_fees

        self._phase = Settled(community=self._phase.community, settlement=result)
        logger.info(f"Round settled with {len(trades)} trades; deltas: {result.deltas}")
        return dict(result.deltas)
