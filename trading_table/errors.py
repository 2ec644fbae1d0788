"""
Error kinds raised by the round engine and the session layer.

Engine errors all derive from RoundError and carry a short ``kind`` string so
callers can map them to a response without matching on messages.
"""


class RoundError(Exception):
    kind = "round_error"


class InvalidTransition(RoundError):
    kind = "invalid_transition"

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while round is in state '{state}'")
        self.operation = operation
        self.state = state


class DeckExhausted(RoundError):
    kind = "deck_exhausted"

    def __init__(self, message: str = "Deck is empty"):
        super().__init__(message)


class UnknownPlayer(RoundError):
    kind = "unknown_player"

    def __init__(self, player_id: str):
        super().__init__(f"Player {player_id!r} is not seated at this table")
        self.player_id = player_id


class InvalidTrade(RoundError):
    kind = "invalid_trade"

    def __init__(self, trade, reason: str):
        super().__init__(f"Invalid trade {trade}: {reason}")
        self.trade = trade
        self.reason = reason


class SessionError(Exception):
    """A lobby-level failure with the status the HTTP layer should return."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message
