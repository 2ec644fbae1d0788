import os

TRADING_DURATION = int(os.getenv("TRADING_DURATION", "20"))  # seconds
if TRADING_DURATION <= 0:
    raise RuntimeError("TRADING_DURATION must be a positive number of seconds")

NEXT_ROUND_DELAY = float(os.getenv("NEXT_ROUND_DELAY", "5"))  # seconds
if NEXT_ROUND_DELAY < 0:
    raise RuntimeError("NEXT_ROUND_DELAY must not be negative")

HOUSE_FEE = float(os.getenv("HOUSE_FEE", "0.01"))
if not 0.0 <= HOUSE_FEE <= 1.0:
    raise RuntimeError("HOUSE_FEE must be between 0 and 1")

STARTING_BALANCE = float(os.getenv("STARTING_BALANCE", "1000"))

MIN_PLAYERS = 2
SEAT_LIMIT = int(os.getenv("SEAT_LIMIT", "8"))
if SEAT_LIMIT < MIN_PLAYERS:
    raise RuntimeError(f"SEAT_LIMIT must be at least {MIN_PLAYERS}")
MAX_ROUND_PLAYERS = int(os.getenv("MAX_ROUND_PLAYERS", "5"))
if not MIN_PLAYERS <= MAX_ROUND_PLAYERS <= SEAT_LIMIT:
    raise RuntimeError(f"MAX_ROUND_PLAYERS must be between {MIN_PLAYERS} and SEAT_LIMIT")

COMMUNITY_CARDS = 3

DB_ENABLED = os.getenv("DB_ENABLED", "0").lower() in ("1", "true", "yes")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "trading_table")
DB_USER = os.getenv("DB_USER", "trading_table")
DB_PASSWORD = os.getenv("DB_PASSWORD", "secret_password")
