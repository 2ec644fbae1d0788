import math
import time
import uuid
import random
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from trading_table import deck
from trading_table.config import (
    HOUSE_FEE,
    MAX_ROUND_PLAYERS,
    MIN_PLAYERS,
    NEXT_ROUND_DELAY,
    SEAT_LIMIT,
    STARTING_BALANCE,
    TRADING_DURATION,
)
from trading_table.errors import (
    DeckExhausted,
    InvalidTrade,
    InvalidTransition,
    RoundError,
    SessionError,
    UnknownPlayer,
)
from trading_table.models import Player, RoundPhase, Table, Trade
from trading_table.round import Round

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s'
)
logger = logging.getLogger(__name__)

SIDES = ("buy", "sell")

_ERROR_STATUS = {
    InvalidTransition: 409,
    DeckExhausted: 500,
    UnknownPlayer: 400,
    InvalidTrade: 400,
}


def _translate(exc: RoundError) -> SessionError:
    return SessionError(_ERROR_STATUS.get(type(exc), 400), str(exc))


@dataclass
class TableSession:
    table_id: str
    name: str
    host_id: str
    max_players: int
    table: Table = field(default_factory=Table)
    names: Dict[str, str] = field(default_factory=dict)     # pid -> display name
    status: str = "waiting"                                 # waiting, playing, finished
    round_number: int = 0
    round_id: Optional[str] = None
    round: Optional[Round] = None
    round_ends_at: Optional[float] = None
    finished_at: Optional[float] = None
    pending_trades: List[Trade] = field(default_factory=list)
    trade_log: List[Dict[str, Any]] = field(default_factory=list)
    initial_balances: Dict[str, float] = field(default_factory=dict)
    winners: List[str] = field(default_factory=list)
    results: Optional[dict] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class SessionStore(ABC):
    """Where table sessions live. The registry only talks to this interface."""

    @abstractmethod
    def create(self, session: TableSession) -> None:
        ...

    @abstractmethod
    def get(self, table_id: str) -> Optional[TableSession]:
        ...

    @abstractmethod
    def delete(self, table_id: str) -> None:
        ...

    @abstractmethod
    def list(self) -> List[TableSession]:
        ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, TableSession] = {}
        self._lock = threading.Lock()

    def create(self, session: TableSession) -> None:
        with self._lock:
            if session.table_id in self._sessions:
                raise KeyError(f"Table {session.table_id} already exists")
            self._sessions[session.table_id] = session

    def get(self, table_id: str) -> Optional[TableSession]:
        with self._lock:
            return self._sessions.get(table_id)

    def delete(self, table_id: str) -> None:
        with self._lock:
            self._sessions.pop(table_id, None)

    def list(self) -> List[TableSession]:
        with self._lock:
            return list(self._sessions.values())


class SessionRegistry:
    """
    Creates, joins and leaves tables, and drives one Round per table at a time.

    Each table has its own lock, so tables proceed independently. Timing is
    enforced lazily: any call that touches a table first closes a round whose
    trading window has run out, and starts the next round once a finished
    table has waited NEXT_ROUND_DELAY seconds.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        history=None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else InMemorySessionStore()
        self.history = history
        self.rng = rng or random.Random()
        self.clock = clock
        logger.info("Initialized new SessionRegistry.")

    # ---- lookups ----

    def _get(self, table_id: str) -> TableSession:
        session = self.store.get(table_id)
        if session is None:
            raise SessionError(404, "Table not found")
        return session

    @contextmanager
    def _locked(self, table_id: str) -> Iterator[TableSession]:
        """Hold the table's lock, with timers brought up to date."""
        session = self._get(table_id)
        with session.lock:
            # the table may have been removed while we waited for the lock
            if self.store.get(table_id) is not session:
                raise SessionError(404, "Table not found")
            self._advance_if_due(session)
            yield session

    def _record(self, event: str, *args) -> None:
        # history is an optional audit trail; a failed write never fails the request
        if self.history is None:
            return
        try:
            getattr(self.history, event)(*args)
        except Exception:
            logger.exception(f"Failed to record {event} in round history")

    def _time_left(self, session: TableSession) -> Optional[int]:
        if session.status != "playing" or session.round_ends_at is None:
            return None
        return int(math.ceil(max(0.0, session.round_ends_at - self.clock())))

    def _advance_if_due(self, session: TableSession) -> None:
        if session.status == "playing" and self._time_left(session) == 0:
            logger.info(f"Trading window expired for table {session.table_id}.")
            self._finish_round(session)
        elif session.status == "finished" and self._can_deal(session) \
                and self.clock() >= session.finished_at + NEXT_ROUND_DELAY:
            logger.info(f"Starting next round at table {session.table_id}.")
            self._start_round(session)

    @staticmethod
    def _can_deal(session: TableSession) -> bool:
        return MIN_PLAYERS <= len(session.table.players) <= MAX_ROUND_PLAYERS

    # ---- table membership ----

    def create_table(self, name: str, max_players: int, host_id: str, host_name: Optional[str] = None) -> TableSession:
        name = (name or "").strip()
        if not 3 <= len(name) <= 50:
            raise SessionError(400, "Table name must be between 3 and 50 characters")
        if isinstance(max_players, bool) or not isinstance(max_players, int) \
                or not MIN_PLAYERS <= max_players <= SEAT_LIMIT:
            raise SessionError(400, f"Max players must be between {MIN_PLAYERS} and {SEAT_LIMIT}")
        if not host_id:
            raise SessionError(400, "Player id is required")

        session = TableSession(
            table_id=uuid.uuid4().hex[:8],
            name=name,
            host_id=host_id,
            max_players=max_players,
        )
        session.table.seat(Player(player_id=host_id, balance=STARTING_BALANCE))
        session.names[host_id] = host_name or host_id
        self.store.create(session)
        logger.info(f"Table created: {name} (ID: {session.table_id}) hosted by {host_id}")
        self._record("log_table", session.table_id, name, host_id, max_players)
        return session

    def join_table(self, table_id: str, player_id: str, name: Optional[str] = None) -> TableSession:
        """Seat a player; the round starts by itself once the table is full."""
        with self._locked(table_id) as session:
            if session.table.get_player(player_id) is not None:
                return session
            if session.status == "playing":
                raise SessionError(400, "Cannot join while a round is in progress")
            if len(session.table.players) >= session.max_players:
                raise SessionError(400, "Table is full")
            session.table.seat(Player(player_id=player_id, balance=STARTING_BALANCE))
            session.names[player_id] = name or player_id
            logger.info(f"Player {player_id} joined table {table_id}")

            if len(session.table.players) == session.max_players and self._can_deal(session):
                logger.info(f"Table {table_id} is full; starting round.")
                self._start_round(session)
        return session

    def leave_table(self, table_id: str, player_id: str) -> Optional[TableSession]:
        """Returns the session, or None once the last player has left and the table is gone."""
        with self._locked(table_id) as session:
            if session.table.get_player(player_id) is None:
                raise SessionError(400, "Player not found at table")
            if session.status == "playing":
                self._abort_round(session, reason=f"player {player_id} left")
            session.table.unseat(player_id)
            session.names.pop(player_id, None)
            if player_id in session.winners:
                session.winners.remove(player_id)
            logger.info(f"Player {player_id} left table {table_id}")

            if not session.table.players:
                self.store.delete(table_id)
                logger.info(f"Table {table_id} is empty and has been removed.")
                return None
            if session.host_id == player_id:
                session.host_id = session.table.players[0].player_id
                logger.info(f"Host of table {table_id} passed to {session.host_id}")
        return session

    def list_tables(self) -> List[dict]:
        return [
            {
                "id": s.table_id,
                "name": s.name,
                "players": len(s.table.players),
                "max_players": s.max_players,
            }
            for s in self.store.list()
            if s.status != "playing"
        ]

    # ---- round lifecycle ----

    def start_round(self, table_id: str, requester_id: str) -> TableSession:
        with self._locked(table_id) as session:
            if session.host_id != requester_id:
                raise SessionError(403, "Only the host can start a round")
            if session.status == "playing":
                raise SessionError(400, "Round already in progress")
            if not self._can_deal(session):
                raise SessionError(
                    400, f"Between {MIN_PLAYERS} and {MAX_ROUND_PLAYERS} players are required to start"
                )
            self._start_round(session)
        return session

    def _start_round(self, session: TableSession) -> None:
        rnd = Round(session.table, deck.generate(), HOUSE_FEE, rng=self.rng)
        try:
            rnd.deal()
        except RoundError as exc:
            logger.error(f"Failed to deal round for table {session.table_id}: {exc}")
            raise _translate(exc) from exc

        seated = len(session.table.players)
        session.round = rnd
        session.round_id = uuid.uuid4().hex
        session.round_number += 1
        session.status = "playing"
        session.round_ends_at = self.clock() + TRADING_DURATION
        session.finished_at = None
        session.pending_trades = []
        session.trade_log = []
        session.winners = []
        session.results = None
        session.initial_balances = {p.player_id: p.balance for p in session.table.players}
        logger.info(f"Round {session.round_number} started at table {session.table_id} with {seated} players.")
        self._record(
            "log_round_start",
            session.round_id, session.table_id, session.round_number,
            seated, TRADING_DURATION, rnd.house_fee_rate,
        )

    def submit_trade(
        self,
        table_id: str,
        player_id: str,
        side: str,
        price,
        quantity=1,
        counterparty_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._locked(table_id) as session:
            if session.status != "playing":
                raise SessionError(400, "Round is not accepting trades")
            if session.table.get_player(player_id) is None:
                raise SessionError(404, "Player not found at table")
            if side not in SIDES:
                raise SessionError(400, "Side must be buy or sell")
            if isinstance(price, bool) or not isinstance(price, (int, float)) \
                    or not math.isfinite(price) or price <= 0:
                raise SessionError(400, "Price must be a positive number")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise SessionError(400, "Quantity must be a positive integer")

            others = [pid for pid in session.table.player_ids() if pid != player_id]
            if counterparty_id is None:
                if not others:
                    raise SessionError(400, "No counterparty available")
                counterparty_id = self.rng.choice(others)
            elif counterparty_id == player_id:
                raise SessionError(400, "Cannot trade with yourself")
            elif counterparty_id not in others:
                raise SessionError(400, "Counterparty is not seated at this table")

            if side == "buy":
                trade = Trade(from_id=counterparty_id, to_id=player_id, price=price, quantity=quantity)
            else:
                trade = Trade(from_id=player_id, to_id=counterparty_id, price=price, quantity=quantity)
            session.pending_trades.append(trade)

            summary = {
                "trade_id": uuid.uuid4().hex,
                "player_id": player_id,
                "counterparty_id": counterparty_id,
                "side": side,
                "price": price,
                "quantity": quantity,
                "value": trade.notional,
                "timestamp": self.clock(),
            }
            session.trade_log.append(summary)
            logger.info(f"Trade at table {table_id}: {trade}")
            self._record("log_trade", session.round_id, trade, self._time_left(session))
        return summary

    def close_round(self, table_id: str) -> TableSession:
        """Close the trading window now and settle the round."""
        with self._locked(table_id) as session:
            if session.status != "playing":
                raise SessionError(400, "No round in progress")
            self._finish_round(session)
        return session

    def _finish_round(self, session: TableSession) -> None:
        rnd = session.round
        try:
            rnd.reveal()
            deltas = rnd.settle(session.pending_trades)
        except RoundError as exc:
            logger.error(f"Failed to settle round at table {session.table_id}: {exc}")
            raise _translate(exc) from exc

        players = session.table.players
        top = max(p.balance for p in players)
        session.winners = [p.player_id for p in players if p.balance == top]
        settlement = rnd.settlement
        session.results = {
            "round_number": session.round_number,
            "community": rnd.community,
            "community_total": settlement.community_total,
            "cards": {p.player_id: p.card.value for p in players},
            "positions": dict(settlement.positions),
            "fees": dict(settlement.fees),
            "deltas": deltas,
            "winners": list(session.winners),
        }
        session.status = "finished"
        session.round_ends_at = None
        session.finished_at = self.clock()
        session.pending_trades = []
        logger.info(f"Results computed for table {session.table_id}: {session.results}")
        self._record(
            "log_round_end",
            session.round_id,
            session.results,
            session.initial_balances,
            {p.player_id: p.balance for p in players},
        )

    def _abort_round(self, session: TableSession, reason: str) -> None:
        # discard the round; nothing has been applied to balances yet
        for p in session.table.players:
            p.card = None
            p.position = 0
        session.round = None
        session.round_ends_at = None
        session.pending_trades = []
        session.trade_log = []
        session.status = "waiting"
        logger.info(f"Round {session.round_number} at table {session.table_id} aborted: {reason}")

    # ---- views ----

    @staticmethod
    def _positions(session: TableSession) -> Dict[str, int]:
        if session.status != "playing":
            return {p.player_id: p.position for p in session.table.players}
        # live net quantity from trades not yet settled
        live = {pid: 0 for pid in session.table.player_ids()}
        for t in session.pending_trades:
            live[t.from_id] -= t.quantity
            live[t.to_id] += t.quantity
        return live

    def get_state(self, table_id: str, player_id: Optional[str] = None) -> dict:
        with self._locked(table_id) as session:
            if player_id is not None and session.table.get_player(player_id) is None:
                raise SessionError(400, "Invalid player_id")

            rnd = session.round
            revealed = rnd is not None and rnd.state in (RoundPhase.REVEAL, RoundPhase.SETTLE)
            positions = self._positions(session)
            players = []
            for p in session.table.players:
                entry = {
                    "player_id": p.player_id,
                    "name": session.names.get(p.player_id, p.player_id),
                    "balance": round(p.balance, 2),
                    "position": positions[p.player_id],
                    "is_winner": p.player_id in session.winners,
                }
                if revealed and p.card is not None:
                    entry["card"] = p.card.value
                players.append(entry)

            hand = None
            if player_id is not None:
                card = session.table.get_player(player_id).card
                hand = card.value if card is not None else None

            resp = {
                "table_id": session.table_id,
                "name": session.name,
                "host_id": session.host_id,
                "max_players": session.max_players,
                "status": session.status,
                "round_number": session.round_number,
                "time_left": self._time_left(session),
                "pot": round(session.table.pot, 2),
                "players": players,
                "hand": hand,
                "community": rnd.community if revealed else [],
                "trades": list(session.trade_log),
            }
            if session.status == "finished":
                resp["results"] = session.results
        return resp

    def get_status(self) -> dict:
        sessions = self.store.list()
        return {
            "tables": len(sessions),
            "playing": sum(1 for s in sessions if s.status == "playing"),
            "trading_duration": TRADING_DURATION,
        }
