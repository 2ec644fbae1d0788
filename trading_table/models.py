from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RoundPhase(str, Enum):
    DEAL = "deal"
    TRADING = "trading"
    REVEAL = "reveal"
    SETTLE = "settle"


@dataclass(frozen=True)
class Card:
    value: int

@dataclass
class Trade:
    # `quantity` units sold by `from_id` to `to_id` at `price` each
    from_id: str
    to_id: str
    price: float
    quantity: int = 1

    @property
    def notional(self) -> float:
        return self.price * self.quantity

@dataclass
class Player:
    player_id: str
    balance: float = 0.0
    card: Optional[Card] = None
    # net quantity bought minus sold in the current round
    position: int = 0

@dataclass
class Table:
    # insertion order is seating order
    players: List[Player] = field(default_factory=list)
    pot: float = 0.0

    def get_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.player_id == player_id), None)

    def player_ids(self) -> List[str]:
        return [p.player_id for p in self.players]

    def seat(self, player: Player) -> None:
        if self.get_player(player.player_id) is not None:
            raise ValueError(f"Player {player.player_id} is already seated")
        self.players.append(player)

    def unseat(self, player_id: str) -> Player:
        player = self.get_player(player_id)
        if player is None:
            raise KeyError(player_id)
        self.players.remove(player)
        return player
