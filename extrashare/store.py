from __future__ import annotations
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .errors import StoreUnavailable
from .records import GlobalState, StakeTransaction, UserRecord
from .wallets import referral_code_for

log = logging.getLogger(__name__)

USER_COLUMNS = (
    "wallet_address", "referral_code", "created_at", "slots_staked", "staked_usd_value",
    "primary_balance", "secondary_balance", "last_accrual_time", "paused_seconds_seen",
    "revealed_at", "collected_at", "last_revealed_reward_usd", "last_referral_bonus_at",
    "referral_count",
)
# Columns a caller may patch; wallet_address / referral_code / created_at are immutable.
USER_MUTABLE = frozenset(USER_COLUMNS[3:])
USER_NUMERIC = frozenset({
    "slots_staked", "staked_usd_value", "primary_balance", "secondary_balance",
    "last_revealed_reward_usd", "referral_count",
})

GLOBAL_COLUMNS = (
    "total_slots_used", "event_start_time", "event_end_time", "max_stake_slots",
    "initial_stake_amount_usd", "event_duration_hours", "max_reward_pool", "last_reset_time",
    "is_paused", "pause_start_time", "paused_seconds", "withdrawals_paused", "total_rewarded",
    "staking_recipient_address", "cycle_number",
)
GLOBAL_NUMERIC = frozenset({"total_slots_used", "total_rewarded", "paused_seconds", "cycle_number"})
GLOBAL_BOOL = frozenset({"is_paused", "withdrawals_paused"})

LEADERBOARD_FIELDS = frozenset({
    "primary_balance", "secondary_balance", "referral_count", "slots_staked", "created_at",
})


# ---------------------------
# DB
# ---------------------------
class LedgerStore:
    """SQLite-backed store for User records and the singleton Global Event record."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def db(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)  # autocommit
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA journal_mode=WAL;")
        con.execute("PRAGMA synchronous=NORMAL;")
        return con

    def init_db(self) -> None:
        try:
            con = self.db()
        except sqlite3.Error as e:
            log.exception("[store] cannot open db path=%s", self.db_path)
            raise StoreUnavailable() from e
        try:
            con.execute("""
            CREATE TABLE IF NOT EXISTS users (
              wallet_address TEXT PRIMARY KEY,
              referral_code TEXT NOT NULL,
              created_at REAL NOT NULL,
              slots_staked INTEGER NOT NULL DEFAULT 0,
              staked_usd_value REAL NOT NULL DEFAULT 0,
              primary_balance REAL NOT NULL DEFAULT 0,
              secondary_balance REAL NOT NULL DEFAULT 0,
              last_accrual_time REAL,
              paused_seconds_seen REAL NOT NULL DEFAULT 0,
              revealed_at REAL,
              collected_at REAL,
              last_revealed_reward_usd REAL NOT NULL DEFAULT 0,
              last_referral_bonus_at REAL,
              referral_count INTEGER NOT NULL DEFAULT 0
            );
            """)
            con.execute("CREATE INDEX IF NOT EXISTS idx_users_referral_code ON users(referral_code);")
            con.execute("""
            CREATE TABLE IF NOT EXISTS stake_transactions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              wallet_address TEXT NOT NULL,
              tx_hash TEXT NOT NULL,
              ts REAL NOT NULL,
              amount_usd REAL NOT NULL,
              withdrawn INTEGER NOT NULL DEFAULT 0
            );
            """)
            # A hash is recorded at most once per user, withdrawn or not.
            con.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_stake_tx_hash_unique "
                "ON stake_transactions(wallet_address, tx_hash);"
            )
            con.execute("""
            CREATE TABLE IF NOT EXISTS global_state (
              id INTEGER PRIMARY KEY CHECK (id = 1),
              total_slots_used INTEGER NOT NULL DEFAULT 0,
              event_start_time REAL NOT NULL DEFAULT 0,
              event_end_time REAL NOT NULL DEFAULT 0,
              max_stake_slots INTEGER NOT NULL DEFAULT 0,
              initial_stake_amount_usd REAL NOT NULL DEFAULT 0,
              event_duration_hours REAL NOT NULL DEFAULT 0,
              max_reward_pool REAL NOT NULL DEFAULT 0,
              last_reset_time REAL NOT NULL DEFAULT 0,
              is_paused INTEGER NOT NULL DEFAULT 0,
              pause_start_time REAL,
              paused_seconds REAL NOT NULL DEFAULT 0,
              withdrawals_paused INTEGER NOT NULL DEFAULT 0,
              total_rewarded REAL NOT NULL DEFAULT 0,
              staking_recipient_address TEXT NOT NULL DEFAULT '',
              cycle_number INTEGER NOT NULL DEFAULT 1
            );
            """)
        except sqlite3.Error as e:
            log.exception("[store] schema init failed path=%s", self.db_path)
            raise StoreUnavailable() from e
        finally:
            con.close()

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """
        One serialized read-modify-write unit.

        BEGIN IMMEDIATE takes SQLite's write lock up front, so every check-then-act
        sequence inside the block sees no concurrent writer. Any exception rolls the
        whole unit back; sqlite errors surface as StoreUnavailable.
        """
        try:
            con = self.db()
        except sqlite3.Error as e:
            log.exception("[store] cannot open db path=%s", self.db_path)
            raise StoreUnavailable() from e
        try:
            con.execute("BEGIN IMMEDIATE;")
            yield con
            con.execute("COMMIT;")
        except sqlite3.Error as e:
            _rollback(con)
            log.exception("[store] transaction failed path=%s", self.db_path)
            raise StoreUnavailable() from e
        except Exception:
            _rollback(con)
            raise
        finally:
            con.close()

    def ping(self) -> bool:
        try:
            con = self.db()
            try:
                con.execute("SELECT 1").fetchone()
            finally:
                con.close()
            return True
        except sqlite3.Error:
            log.warning("[store] ping failed path=%s", self.db_path)
            return False


def _rollback(con: sqlite3.Connection) -> None:
    try:
        con.execute("ROLLBACK;")
    except sqlite3.Error as e:
        # No transaction open (BEGIN itself failed); the connection is closed next.
        log.warning("[store] rollback skipped: %s", e)


# ---------------------------
# Users
# ---------------------------
def _user_from_row(con: sqlite3.Connection, row: sqlite3.Row) -> UserRecord:
    txs = con.execute(
        "SELECT tx_hash, ts, amount_usd FROM stake_transactions "
        "WHERE wallet_address=? AND withdrawn=0 ORDER BY id ASC",
        (row["wallet_address"],),
    ).fetchall()
    return UserRecord(
        wallet_address=str(row["wallet_address"]),
        referral_code=str(row["referral_code"]),
        created_at=float(row["created_at"]),
        slots_staked=int(row["slots_staked"]),
        staked_usd_value=float(row["staked_usd_value"]),
        primary_balance=float(row["primary_balance"]),
        secondary_balance=float(row["secondary_balance"]),
        last_accrual_time=row["last_accrual_time"],
        paused_seconds_seen=float(row["paused_seconds_seen"]),
        revealed_at=row["revealed_at"],
        collected_at=row["collected_at"],
        last_revealed_reward_usd=float(row["last_revealed_reward_usd"]),
        last_referral_bonus_at=row["last_referral_bonus_at"],
        referral_count=int(row["referral_count"]),
        stake_transactions=[
            StakeTransaction(hash=str(t[0]), timestamp=float(t[1]), amount_usd=float(t[2]))
            for t in txs
        ],
    )


def get_user(con: sqlite3.Connection, address: str) -> Optional[UserRecord]:
    row = con.execute(
        f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE wallet_address=?",
        (address,),
    ).fetchone()
    if not row:
        return None
    return _user_from_row(con, row)


def create_user(con: sqlite3.Connection, address: str, now: float) -> UserRecord:
    """Insert a fresh record if absent and return the stored one."""
    con.execute(
        "INSERT OR IGNORE INTO users(wallet_address, referral_code, created_at, last_accrual_time) "
        "VALUES(?,?,?,?)",
        (address, referral_code_for(address), now, now),
    )
    user = get_user(con, address)
    if user is None:
        log.error("[store] user row missing right after insert wallet=%s", address)
        raise StoreUnavailable()
    return user


def upsert_user(
    con: sqlite3.Connection,
    address: str,
    now: float,
    set_fields: Optional[Dict[str, Any]] = None,
    inc_fields: Optional[Dict[str, float]] = None,
    append_tx: Optional[StakeTransaction] = None,
) -> None:
    """
    Partial update of one user, creating the record first if needed.

    set_fields overwrite columns, inc_fields add to numeric columns and
    append_tx records a stake transaction.
    """
    set_fields = set_fields or {}
    inc_fields = inc_fields or {}
    for k in set_fields:
        if k not in USER_MUTABLE:
            raise ValueError(f"unknown user field: {k}")
    for k in inc_fields:
        if k not in USER_NUMERIC:
            raise ValueError(f"not an incrementable user field: {k}")

    con.execute(
        "INSERT OR IGNORE INTO users(wallet_address, referral_code, created_at, last_accrual_time) "
        "VALUES(?,?,?,?)",
        (address, referral_code_for(address), now, now),
    )

    assignments: List[str] = []
    params: List[Any] = []
    for k, v in set_fields.items():
        assignments.append(f"{k} = ?")
        params.append(v)
    for k, v in inc_fields.items():
        assignments.append(f"{k} = {k} + ?")
        params.append(v)
    if assignments:
        params.append(address)
        con.execute(f"UPDATE users SET {', '.join(assignments)} WHERE wallet_address=?", tuple(params))

    if append_tx is not None:
        con.execute(
            "INSERT INTO stake_transactions(wallet_address, tx_hash, ts, amount_usd) VALUES(?,?,?,?)",
            (address, append_tx.hash, append_tx.timestamp, append_tx.amount_usd),
        )


def tx_hash_recorded(con: sqlite3.Connection, address: str, tx_hash: str) -> bool:
    # Includes withdrawn rows: a withdrawn stake's hash stays burned.
    row = con.execute(
        "SELECT 1 FROM stake_transactions WHERE wallet_address=? AND tx_hash=?",
        (address, tx_hash),
    ).fetchone()
    return row is not None


def withdraw_stake_transactions(con: sqlite3.Connection, address: str) -> int:
    cur = con.execute(
        "UPDATE stake_transactions SET withdrawn=1 WHERE wallet_address=? AND withdrawn=0",
        (address,),
    )
    return cur.rowcount


def find_user_by_referral_code(con: sqlite3.Connection, code: str) -> Optional[UserRecord]:
    row = con.execute(
        f"SELECT {', '.join(USER_COLUMNS)} FROM users WHERE referral_code=? "
        "ORDER BY created_at ASC, wallet_address ASC LIMIT 1",
        (code.lower(),),
    ).fetchone()
    if not row:
        return None
    return _user_from_row(con, row)


def clear_reward_flags(con: sqlite3.Connection) -> int:
    """Cycle-reset sweep over every user, as one statement."""
    cur = con.execute(
        "UPDATE users SET revealed_at=NULL, collected_at=NULL, last_revealed_reward_usd=0"
    )
    return cur.rowcount


def count_users(con: sqlite3.Connection) -> int:
    row = con.execute("SELECT COUNT(*) FROM users").fetchone()
    return int(row[0])


def list_users_sorted(
    con: sqlite3.Connection,
    field: str = "primary_balance",
    direction: str = "desc",
    limit: int = 10,
) -> List[UserRecord]:
    field = (field or "").strip().lower()
    direction = (direction or "desc").strip().upper()
    if field not in LEADERBOARD_FIELDS:
        raise ValueError(f"unsupported sort field: {field}")
    if direction not in ("ASC", "DESC"):
        raise ValueError(f"unsupported sort direction: {direction}")

    limit = int(limit)
    if limit < 1:
        limit = 1
    if limit > 100:
        limit = 100

    rows = con.execute(
        f"SELECT {', '.join(USER_COLUMNS)} FROM users "
        f"ORDER BY {field} {direction}, wallet_address ASC LIMIT ?",
        (limit,),
    ).fetchall()
    return [_user_from_row(con, r) for r in rows]


# ---------------------------
# Global Event record
# ---------------------------
def get_global_state(con: sqlite3.Connection) -> Optional[GlobalState]:
    row = con.execute(
        f"SELECT {', '.join(GLOBAL_COLUMNS)} FROM global_state WHERE id=1"
    ).fetchone()
    if not row:
        return None
    return GlobalState(
        total_slots_used=int(row["total_slots_used"]),
        event_start_time=float(row["event_start_time"]),
        event_end_time=float(row["event_end_time"]),
        max_stake_slots=int(row["max_stake_slots"]),
        initial_stake_amount_usd=float(row["initial_stake_amount_usd"]),
        event_duration_hours=float(row["event_duration_hours"]),
        max_reward_pool=float(row["max_reward_pool"]),
        last_reset_time=float(row["last_reset_time"]),
        is_paused=bool(row["is_paused"]),
        pause_start_time=row["pause_start_time"],
        paused_seconds=float(row["paused_seconds"]),
        withdrawals_paused=bool(row["withdrawals_paused"]),
        total_rewarded=float(row["total_rewarded"]),
        staking_recipient_address=str(row["staking_recipient_address"] or ""),
        cycle_number=int(row["cycle_number"]),
    )


def upsert_global_state(
    con: sqlite3.Connection,
    set_fields: Optional[Dict[str, Any]] = None,
    inc_fields: Optional[Dict[str, float]] = None,
) -> None:
    set_fields = set_fields or {}
    inc_fields = inc_fields or {}
    for k in set_fields:
        if k not in GLOBAL_COLUMNS:
            raise ValueError(f"unknown global field: {k}")
    for k in inc_fields:
        if k not in GLOBAL_NUMERIC:
            raise ValueError(f"not an incrementable global field: {k}")

    con.execute("INSERT OR IGNORE INTO global_state(id) VALUES(1)")

    assignments: List[str] = []
    params: List[Any] = []
    for k, v in set_fields.items():
        assignments.append(f"{k} = ?")
        params.append(int(bool(v)) if k in GLOBAL_BOOL else v)
    for k, v in inc_fields.items():
        assignments.append(f"{k} = {k} + ?")
        params.append(v)
    if assignments:
        con.execute(f"UPDATE global_state SET {', '.join(assignments)} WHERE id=1", tuple(params))


def increment_if_below(con: sqlite3.Connection, field: str, delta: float, bound: float) -> bool:
    """
    Atomically add delta to a numeric global field if the result stays <= bound.

    Returns False (and changes nothing) when the bound would be exceeded.
    """
    if field not in GLOBAL_NUMERIC:
        raise ValueError(f"not an incrementable global field: {field}")
    cur = con.execute(
        f"UPDATE global_state SET {field} = {field} + ? WHERE id=1 AND {field} + ? <= ?",
        (delta, delta, bound),
    )
    return cur.rowcount == 1
