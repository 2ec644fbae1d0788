import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from trading_table.errors import InvalidTrade, UnknownPlayer
from trading_table.models import Player, Trade


@dataclass
class Settlement:
    community_total: int
    positions: Dict[str, int] = field(default_factory=dict)        # pid -> net quantity
    volumes: Dict[str, float] = field(default_factory=dict)        # pid -> traded notional
    fees: Dict[str, float] = field(default_factory=dict)           # pid -> house fee
    final_values: Dict[str, float] = field(default_factory=dict)   # pid -> card + community + position
    deltas: Dict[str, float] = field(default_factory=dict)         # pid -> balance change

    @property
    def total_fees(self) -> float:
        return sum(self.fees.values())


def validate_trades(trades: Iterable[Trade], player_ids: Iterable[str]) -> List[Trade]:
    """
    Check a whole batch before anything is applied. Raises UnknownPlayer or
    InvalidTrade on the first offending trade.
    """
    seated = set(player_ids)
    checked = []
    for trade in trades:
        for pid in (trade.from_id, trade.to_id):
            if pid not in seated:
                raise UnknownPlayer(pid)
        if trade.from_id == trade.to_id:
            raise InvalidTrade(trade, "a player cannot trade with themselves")
        if isinstance(trade.quantity, bool) or not isinstance(trade.quantity, int):
            raise InvalidTrade(trade, "quantity must be an integer")
        if trade.quantity <= 0:
            raise InvalidTrade(trade, "quantity must be positive")
        if not isinstance(trade.price, (int, float)) or not math.isfinite(trade.price):
            raise InvalidTrade(trade, "price must be a finite number")
        if trade.price < 0:
            raise InvalidTrade(trade, "price must not be negative")
        checked.append(trade)
    return checked


def compute_settlement(
    players: Sequence[Player],
    community: Sequence[int],
    trades: Sequence[Trade],
    fee_rate: float,
) -> Settlement:
    """
    Turn revealed cards and a validated trade list into per-player balance deltas.
    Pure: nothing on ``players`` is modified.
    """
    result = Settlement(community_total=sum(community))
    for p in players:
        result.positions[p.player_id] = 0
        result.volumes[p.player_id] = 0.0

    for t in trades:
        notional = t.price * t.quantity
        result.volumes[t.from_id] += notional
        result.volumes[t.to_id] += notional
        result.positions[t.from_id] -= t.quantity
        result.positions[t.to_id] += t.quantity

    for p in players:
        pid = p.player_id
        # an undealt player counts as holding a zero card
        card_value = p.card.value if p.card is not None else 0
        final_value = card_value + result.community_total + result.positions[pid]
        fees = result.volumes[pid] * fee_rate
        result.final_values[pid] = final_value
        result.fees[pid] = fees
        result.deltas[pid] = final_value - fees
    return result
