"""SQLite schema for negotiation persistence.

Three tables:

- ``negotiations``: one row per negotiation, the mutable current state.
- ``negotiation_history``: append-only event log, guarded by triggers that
  abort any UPDATE or DELETE.
- ``proposal_quota``: per-user, per-UTC-day counter of negotiations opened.

A partial unique index on ``(initiator_id, subject_key)`` restricted to open
statuses backstops the one-open-negotiation-per-subject rule, and a trigger
refuses any change to a row already in a terminal status.
"""

from __future__ import annotations

import sqlite3


def init_negotiation_tables(conn: sqlite3.Connection) -> None:
    """Create the negotiation tables, indexes and triggers if missing.

    Args:
        conn: An open sqlite3.Connection (WAL mode recommended).
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiations (
            id TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            subject_key TEXT NOT NULL,
            subject_json TEXT NOT NULL,
            subject_label TEXT NOT NULL DEFAULT '',
            subject_images_json TEXT NOT NULL DEFAULT '[]',
            initiator_id TEXT NOT NULL,
            counterparty_id TEXT NOT NULL,
            reference_value TEXT,
            current_offer TEXT NOT NULL,
            final_value TEXT,
            quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
            status TEXT NOT NULL,
            awaiting_role TEXT,
            revision INTEGER NOT NULL DEFAULT 0,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK ((status = 'accepted') = (final_value IS NOT NULL)),
            CHECK (expires_at > created_at)
        )
    """)

    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_neg_open_subject "
        "ON negotiations (initiator_id, subject_key) "
        "WHERE status IN ('pending', 'counter_offered')"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_neg_initiator ON negotiations (initiator_id, created_at)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_neg_counterparty "
        "ON negotiations (counterparty_id, created_at)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_neg_status_expiry ON negotiations (status, expires_at)"
    )

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_neg_terminal_sink
        BEFORE UPDATE ON negotiations
        WHEN OLD.status NOT IN ('pending', 'counter_offered')
        BEGIN
            SELECT RAISE(ABORT, 'negotiation is in a terminal status');
        END
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS negotiation_history (
            negotiation_id TEXT NOT NULL REFERENCES negotiations (id),
            seq INTEGER NOT NULL,
            action TEXT NOT NULL,
            actor TEXT NOT NULL,
            at TEXT NOT NULL,
            event_json TEXT NOT NULL,
            PRIMARY KEY (negotiation_id, seq)
        )
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_history_no_update
        BEFORE UPDATE ON negotiation_history
        BEGIN
            SELECT RAISE(ABORT, 'negotiation history is append-only');
        END
    """)
    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_history_no_delete
        BEFORE DELETE ON negotiation_history
        BEGIN
            SELECT RAISE(ABORT, 'negotiation history is append-only');
        END
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS proposal_quota (
            user_id TEXT NOT NULL,
            day TEXT NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (user_id, day)
        )
    """)
