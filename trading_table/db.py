import json
import threading
from datetime import datetime, timezone

import psycopg

from trading_table import config

# Ensure thread-safe DB access
_db_lock = threading.Lock()

# Singleton connection
_conn = None

def get_connection():
    global _conn
    if _conn is None:
        _conn = psycopg.connect(
            host=config.DB_HOST,
            port=config.DB_PORT,
            dbname=config.DB_NAME,
            user=config.DB_USER,
            password=config.DB_PASSWORD,
        )
    return _conn

def init_db():
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS tables(
                table_id TEXT PRIMARY KEY,
                name TEXT,
                host_id TEXT,
                max_players INTEGER,
                created_at TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS rounds(
                round_id TEXT PRIMARY KEY,
                table_id TEXT,
                round_number INTEGER,
                num_players INTEGER,
                trading_duration INTEGER,
                house_fee_rate DOUBLE PRECISION,
                community JSONB,
                start_time TIMESTAMP WITH TIME ZONE,
                end_time TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS trades(
                trade_id SERIAL PRIMARY KEY,
                round_id TEXT,
                seller TEXT,
                buyer TEXT,
                price DOUBLE PRECISION,
                quantity INTEGER,
                time_remaining INTEGER,
                timestamp TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS results(
                round_id         TEXT             NOT NULL,
                player_id        TEXT             NOT NULL,
                initial_balance  DOUBLE PRECISION NOT NULL,
                final_balance    DOUBLE PRECISION NOT NULL,
                card             INTEGER,
                position         INTEGER          NOT NULL,
                fees             DOUBLE PRECISION NOT NULL,
                delta            DOUBLE PRECISION NOT NULL,
                is_winner        BOOLEAN          NOT NULL,
                PRIMARY KEY (round_id, player_id)
            );
        ''')
        conn.commit()

def log_table(table_id: str, name: str, host_id: str, max_players: int):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO tables(table_id, name, host_id, max_players, created_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (table_id) DO NOTHING''',
            (table_id, name, host_id, max_players, datetime.now(timezone.utc))
        )
        conn.commit()

def log_round_start(round_id: str, table_id: str, round_number: int, num_players: int,
                    trading_duration: int, house_fee_rate: float):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO rounds
            (round_id, table_id, round_number, num_players, trading_duration, house_fee_rate, start_time)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (round_id)
            DO UPDATE
                SET start_time = EXCLUDED.start_time,
                    num_players = EXCLUDED.num_players,
                    trading_duration = EXCLUDED.trading_duration,
                    house_fee_rate = EXCLUDED.house_fee_rate
            ''',
            (round_id, table_id, round_number, num_players, trading_duration,
             house_fee_rate, datetime.now(timezone.utc))
        )
        conn.commit()

def log_trade(round_id: str, trade, time_remaining: int):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO trades
            (round_id, seller, buyer, price, quantity, time_remaining, timestamp)
            VALUES (%s, %s, %s, %s, %s, %s, %s)''',
            (round_id, trade.from_id, trade.to_id, trade.price, trade.quantity,
             time_remaining, datetime.now(timezone.utc))
        )
        conn.commit()

def log_round_end(round_id: str, results: dict, initial_balances: dict, final_balances: dict):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE rounds SET end_time = %s, community = %s WHERE round_id = %s''',
            (datetime.now(timezone.utc), json.dumps(results.get('community', [])), round_id)
        )
        for pid, init_bal in initial_balances.items():
            cursor.execute('''
                INSERT INTO results
                (round_id, player_id, initial_balance, final_balance,
                 card, position, fees, delta, is_winner)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (round_id, player_id) DO UPDATE SET
                    initial_balance = EXCLUDED.initial_balance,
                    final_balance   = EXCLUDED.final_balance,
                    card            = EXCLUDED.card,
                    position        = EXCLUDED.position,
                    fees            = EXCLUDED.fees,
                    delta           = EXCLUDED.delta,
                    is_winner       = EXCLUDED.is_winner
                ''',
                (
                    round_id, pid,
                    init_bal, final_balances.get(pid, init_bal),
                    results.get('cards', {}).get(pid),
                    results.get('positions', {}).get(pid, 0),
                    results.get('fees', {}).get(pid, 0.0),
                    results.get('deltas', {}).get(pid, 0.0),
                    pid in results.get('winners', []),
                )
            )
        conn.commit()
