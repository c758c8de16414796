"""SQLite-backed negotiation store.

Every write runs inside one ``BEGIN IMMEDIATE`` transaction that performs its
own reads, so the database write lock is held from the first read to the
commit.  That single rule is what prevents duplicate creation and lost
updates when request handlers race.

Each operation opens its own short-lived connection and closes it on exit,
so no connection outlives the thread that used it.  Connections run in
autocommit mode so transactions are controlled explicitly, over a WAL
journal with a busy timeout.  Queries are parameterized exclusively.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import structlog

from bargaining.domain.errors import (
    ConflictError,
    InvalidTransitionError,
    NegotiationError,
    NotFoundError,
    RateLimitExceededError,
    StoreError,
)
from bargaining.domain.models import (
    HistoryEvent,
    ListFilters,
    Negotiation,
    NegotiationDraft,
    NegotiationStats,
    NegotiationSummary,
    Page,
    TransitionMutation,
)
from bargaining.domain.types import (
    OPEN_STATUSES,
    NegotiationStatus,
    ParticipantRole,
)
from bargaining.pricing.engine import calculate_discount, quantize_money
from bargaining.state.schema import init_negotiation_tables
from bargaining.state.serializers import (
    deserialize_event,
    deserialize_images,
    deserialize_subject,
    format_money,
    format_timestamp,
    parse_money,
    parse_timestamp,
    serialize_event,
    serialize_images,
    serialize_subject,
)

logger = structlog.get_logger()

_OPEN_VALUES: tuple[str, ...] = tuple(sorted(s.value for s in OPEN_STATUSES))
_OPEN_PLACEHOLDERS = ", ".join("?" for _ in _OPEN_VALUES)

_ROLE_COLUMNS: dict[ParticipantRole, str] = {
    ParticipantRole.INITIATOR: "initiator_id",
    ParticipantRole.COUNTERPARTY: "counterparty_id",
}

_SORT_COLUMNS: dict[str, str] = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "expires_at": "expires_at",
}


class _OpenNegotiationRace(NegotiationError):
    """Another transaction created the open negotiation first."""


class NegotiationStore:
    """Persist negotiations and their history in SQLite.

    Args:
        db_path: Path to the SQLite database file.  Created on first use.
        timeout: Seconds a writer waits for the database lock before
            failing.
    """

    def __init__(self, db_path: Path | str, timeout: float = 5.0) -> None:
        self._db_path = str(db_path)
        self._timeout = timeout
        self._closed = False
        with self._errors("init"), self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            init_negotiation_tables(conn)

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a fresh autocommit connection, closed when the block exits.

        Raises:
            StoreError: If the store has been closed.
        """
        if self._closed:
            raise StoreError("Negotiation store is closed")
        with closing(
            sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        ) as conn:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute(f"PRAGMA busy_timeout={int(self._timeout * 1000)}")
            yield conn

    def close(self) -> None:
        """Refuse further operations.  Connections are already closed per call."""
        self._closed = True

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run the block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

        Any exception rolls the transaction back and propagates.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @contextmanager
    def _errors(self, operation: str, negotiation_id: str | None = None) -> Iterator[None]:
        """Wrap raw sqlite errors into an opaque ``StoreError``.

        Domain errors raised inside the block propagate unchanged.
        """
        try:
            yield
        except NegotiationError:
            raise
        except sqlite3.Error as exc:
            logger.exception(
                "store_operation_failed",
                operation=operation,
                negotiation_id=negotiation_id,
            )
            raise StoreError(f"Storage failure during {operation}") from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute("SELECT 1").fetchone()
        except (sqlite3.Error, StoreError):
            logger.warning("store_ping_failed", db_path=self._db_path)
            return False
        return True

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _history(self, conn: sqlite3.Connection, negotiation_id: str) -> list[str]:
        cursor = conn.execute(
            "SELECT event_json FROM negotiation_history WHERE negotiation_id = ? ORDER BY seq",
            (negotiation_id,),
        )
        return [row["event_json"] for row in cursor.fetchall()]

    def _load(self, conn: sqlite3.Connection, negotiation_id: str) -> Negotiation | None:
        row = conn.execute(
            "SELECT * FROM negotiations WHERE id = ?", (negotiation_id,)
        ).fetchone()
        if row is None:
            return None
        return Negotiation(
            id=row["id"],
            kind=row["kind"],
            subject=deserialize_subject(row["subject_json"]),
            subject_label=row["subject_label"],
            subject_images=deserialize_images(row["subject_images_json"]),
            initiator_id=row["initiator_id"],
            counterparty_id=row["counterparty_id"],
            reference_value=parse_money(row["reference_value"]),
            current_offer=parse_money(row["current_offer"]),
            final_value=parse_money(row["final_value"]),
            quantity=row["quantity"],
            status=row["status"],
            awaiting_role=row["awaiting_role"],
            revision=row["revision"],
            history=[deserialize_event(e) for e in self._history(conn, negotiation_id)],
            expires_at=parse_timestamp(row["expires_at"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _summary(row: sqlite3.Row) -> NegotiationSummary:
        return NegotiationSummary(
            id=row["id"],
            kind=row["kind"],
            subject_label=row["subject_label"],
            subject_images=deserialize_images(row["subject_images_json"]),
            initiator_id=row["initiator_id"],
            counterparty_id=row["counterparty_id"],
            reference_value=parse_money(row["reference_value"]),
            current_offer=parse_money(row["current_offer"]),
            final_value=parse_money(row["final_value"]),
            quantity=row["quantity"],
            status=row["status"],
            awaiting_role=row["awaiting_role"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
        )

    def _open_id_for(
        self, conn: sqlite3.Connection, initiator_id: str, subject_key: str
    ) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT id, expires_at FROM negotiations "
            f"WHERE initiator_id = ? AND subject_key = ? AND status IN ({_OPEN_PLACEHOLDERS})",
            (initiator_id, subject_key, *_OPEN_VALUES),
        ).fetchone()

    def _require(self, conn: sqlite3.Connection, negotiation_id: str) -> Negotiation:
        """Load a row the current transaction just read or wrote."""
        negotiation = self._load(conn, negotiation_id)
        if negotiation is None:
            raise StoreError(f"Negotiation {negotiation_id} vanished mid-transaction")
        return negotiation

    def _append_event(
        self, conn: sqlite3.Connection, negotiation_id: str, event: HistoryEvent
    ) -> None:
        conn.execute(
            """
            INSERT INTO negotiation_history (negotiation_id, seq, action, actor, at, event_json)
            VALUES (
                ?,
                (SELECT COALESCE(MAX(seq), -1) + 1 FROM negotiation_history
                 WHERE negotiation_id = ?),
                ?, ?, ?, ?
            )
            """,
            (
                negotiation_id,
                negotiation_id,
                event.action,
                event.actor.value,
                format_timestamp(event.at),
                serialize_event(event),
            ),
        )

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def find_or_create(
        self, draft: NegotiationDraft, quota: int | None = None
    ) -> tuple[Negotiation, bool]:
        """Return the open negotiation for the draft's subject, creating it if absent.

        Lookup and insert run in one write transaction.  An open row whose
        deadline has already passed is expired in the same transaction and a
        fresh negotiation is created in its place.

        Args:
            draft: The negotiation to create if none is open.
            quota: Maximum negotiations the initiator may open per UTC day.
                Only consulted when a new row would be created.  None or 0
                disables the limit.

        Returns:
            ``(negotiation, is_new)``.

        Raises:
            RateLimitExceededError: If creating would exceed *quota*.  Nothing
                is written.
            StoreError: On any storage failure.
        """
        now_str = format_timestamp(draft.created_at)
        try:
            with self._errors("find_or_create"), self._write() as conn:
                existing = self._open_id_for(conn, draft.initiator_id, draft.subject_key)
                if existing is not None:
                    if existing["expires_at"] >= now_str:
                        return self._require(conn, existing["id"]), False
                    conn.execute(
                        "UPDATE negotiations SET status = ?, awaiting_role = NULL, "
                        "revision = revision + 1, updated_at = ? WHERE id = ?",
                        (NegotiationStatus.EXPIRED.value, now_str, existing["id"]),
                    )
                    logger.info("stale_negotiation_expired", negotiation_id=existing["id"])

                if quota:
                    self._consume_quota(conn, draft, quota)

                negotiation_id = uuid.uuid4().hex
                try:
                    conn.execute(
                        """
                        INSERT INTO negotiations (
                            id, kind, subject_key, subject_json, subject_label,
                            subject_images_json, initiator_id, counterparty_id,
                            reference_value, current_offer, final_value, quantity,
                            status, awaiting_role, revision, expires_at, created_at,
                            updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?, 0, ?, ?, ?)
                        """,
                        (
                            negotiation_id,
                            draft.kind.value,
                            draft.subject_key,
                            serialize_subject(draft.subject),
                            draft.subject_label,
                            serialize_images(draft.subject_images),
                            draft.initiator_id,
                            draft.counterparty_id,
                            format_money(draft.reference_value),
                            format_money(draft.offer),
                            draft.quantity,
                            NegotiationStatus.PENDING.value,
                            ParticipantRole.COUNTERPARTY.value,
                            format_timestamp(draft.expires_at),
                            now_str,
                            now_str,
                        ),
                    )
                except sqlite3.IntegrityError as exc:
                    raise _OpenNegotiationRace(draft.subject_key) from exc
                self._append_event(conn, negotiation_id, draft.opening_event())
                return self._require(conn, negotiation_id), True
        except _OpenNegotiationRace:
            # A concurrent writer won the partial unique index; return its row.
            logger.info(
                "open_negotiation_race",
                initiator_id=draft.initiator_id,
                subject_key=draft.subject_key,
            )
            return self._reread_open(draft), False

    def _reread_open(self, draft: NegotiationDraft) -> Negotiation:
        found = self.find_open(draft.initiator_id, draft.subject_key)
        if found is None:
            raise StoreError("Open negotiation vanished after a unique-index conflict")
        return found

    def _consume_quota(
        self, conn: sqlite3.Connection, draft: NegotiationDraft, quota: int
    ) -> None:
        day = draft.created_at.astimezone(UTC).date().isoformat()
        conn.execute(
            """
            INSERT INTO proposal_quota (user_id, day, count) VALUES (?, ?, 1)
            ON CONFLICT (user_id, day) DO UPDATE SET count = count + 1
            """,
            (draft.initiator_id, day),
        )
        used = conn.execute(
            "SELECT count FROM proposal_quota WHERE user_id = ? AND day = ?",
            (draft.initiator_id, day),
        ).fetchone()["count"]
        if used > quota:
            logger.warning(
                "proposal_quota_exceeded",
                user_id=draft.initiator_id,
                day=day,
                limit=quota,
            )
            raise RateLimitExceededError(draft.initiator_id, quota)

    def transition(
        self,
        negotiation_id: str,
        expected_status: NegotiationStatus,
        mutation: TransitionMutation,
        expected_revision: int | None = None,
    ) -> Negotiation:
        """Apply *mutation* if the row is still where the caller left it.

        Args:
            negotiation_id: The negotiation to mutate.
            expected_status: The status the caller read.
            mutation: The new status and field changes, plus an optional
                history event to append.
            expected_revision: The revision the caller read, if known.

        Returns:
            The negotiation after the change.

        Raises:
            NotFoundError: If the negotiation does not exist.
            ConflictError: If the status or revision moved underneath the
                caller.
            InvalidTransitionError: If the row is already terminal.
            StoreError: On any storage failure.
        """
        with self._errors("transition", negotiation_id), self._write() as conn:
            row = conn.execute(
                "SELECT status, revision FROM negotiations WHERE id = ?",
                (negotiation_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Negotiation {negotiation_id} not found")

            status = NegotiationStatus(row["status"])
            revision = row["revision"]
            if status != expected_status or (
                expected_revision is not None and revision != expected_revision
            ):
                logger.info(
                    "transition_conflict",
                    negotiation_id=negotiation_id,
                    expected_status=expected_status,
                    actual_status=status,
                    expected_revision=expected_revision,
                    actual_revision=revision,
                )
                raise ConflictError(
                    negotiation_id,
                    expected=f"{expected_status}@{expected_revision}",
                    actual=f"{status}@{revision}",
                )
            if status not in OPEN_STATUSES:
                raise InvalidTransitionError(status, f"transition to {mutation.status}")

            conn.execute(
                """
                UPDATE negotiations SET
                    status = ?,
                    awaiting_role = ?,
                    current_offer = COALESCE(?, current_offer),
                    final_value = ?,
                    expires_at = COALESCE(?, expires_at),
                    revision = revision + 1,
                    updated_at = ?
                WHERE id = ? AND revision = ?
                """,
                (
                    mutation.status.value,
                    mutation.awaiting_role.value if mutation.awaiting_role else None,
                    format_money(mutation.current_offer),
                    format_money(mutation.final_value),
                    format_timestamp(mutation.expires_at) if mutation.expires_at else None,
                    format_timestamp(mutation.updated_at),
                    negotiation_id,
                    revision,
                ),
            )
            if mutation.event is not None:
                self._append_event(conn, negotiation_id, mutation.event)
            return self._require(conn, negotiation_id)

    def sweep_expired(self, now: datetime) -> int:
        """Expire every open negotiation whose deadline is before *now*.

        A single conditional UPDATE, so concurrent sweepers (or a sweep racing
        a lazy expiry) are safe and a repeated sweep is a no-op.

        Returns:
            The number of negotiations expired.
        """
        now_str = format_timestamp(now)
        with self._errors("sweep_expired"), self._connect() as conn:
            cursor = conn.execute(
                "UPDATE negotiations SET status = ?, awaiting_role = NULL, "
                "revision = revision + 1, updated_at = ? "
                f"WHERE status IN ({_OPEN_PLACEHOLDERS}) AND expires_at < ?",
                (NegotiationStatus.EXPIRED.value, now_str, *_OPEN_VALUES, now_str),
            )
            return cursor.rowcount

    def prune_quota(self, before: datetime) -> int:
        """Delete quota counters for UTC days before *before*'s day.

        Returns:
            The number of counters removed.
        """
        with self._errors("prune_quota"), self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM proposal_quota WHERE day < ?",
                (before.astimezone(UTC).date().isoformat(),),
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, negotiation_id: str) -> Negotiation | None:
        """Load one negotiation with its full history, or None."""
        with self._errors("get", negotiation_id), self._connect() as conn:
            return self._load(conn, negotiation_id)

    def find_open(self, initiator_id: str, subject_key: str) -> Negotiation | None:
        """Load the open negotiation *initiator_id* holds on *subject_key*, or None.

        Read-only: a row past its deadline but not yet expired is returned
        as stored.
        """
        with self._errors("find_open"), self._connect() as conn:
            row = self._open_id_for(conn, initiator_id, subject_key)
            return self._load(conn, row["id"]) if row is not None else None

    def list_for(
        self,
        user_id: str,
        role: ParticipantRole,
        filters: ListFilters | None = None,
    ) -> Page[NegotiationSummary]:
        """Page through the negotiations where *user_id* plays *role*.

        Args:
            user_id: The participant.
            role: Which side the participant is on.
            filters: Kind/status/date filters plus sorting and pagination.

        Returns:
            A page of summaries and the total match count.
        """
        filters = filters or ListFilters()
        clauses = [f"{_ROLE_COLUMNS[role]} = ?"]
        params: list[object] = [user_id]

        if filters.kinds:
            clauses.append(f"kind IN ({', '.join('?' for _ in filters.kinds)})")
            params.extend(k.value for k in filters.kinds)
        if filters.statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in filters.statuses)})")
            params.extend(s.value for s in filters.statuses)
        if filters.created_from is not None:
            clauses.append("created_at >= ?")
            params.append(format_timestamp(filters.created_from))
        if filters.created_to is not None:
            clauses.append("created_at <= ?")
            params.append(format_timestamp(filters.created_to))

        where = " AND ".join(clauses)
        order = "ASC" if filters.sort_order == "asc" else "DESC"
        sort_column = _SORT_COLUMNS[filters.sort_by]
        offset = (filters.page - 1) * filters.limit

        with self._errors("list_for"), self._connect() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS n FROM negotiations WHERE {where}", params
            ).fetchone()["n"]
            rows = conn.execute(
                f"SELECT * FROM negotiations WHERE {where} "
                f"ORDER BY {sort_column} {order}, id {order} LIMIT ? OFFSET ?",
                [*params, filters.limit, offset],
            ).fetchall()

        return Page[NegotiationSummary](
            items=[self._summary(row) for row in rows],
            total=total,
            page=filters.page,
            limit=filters.limit,
        )

    def stats(
        self,
        user_id: str | None = None,
        role: ParticipantRole | None = None,
    ) -> NegotiationStats:
        """Aggregate counts, average discount and success rate.

        Args:
            user_id: Restrict to this participant, or None for everyone.
            role: The participant's side.  Required when *user_id* is given.

        Returns:
            Aggregated ``NegotiationStats``.
        """
        if user_id is not None and role is None:
            raise ValueError("role is required when user_id is given")

        where = ""
        params: list[object] = []
        if user_id is not None and role is not None:
            where = f"WHERE {_ROLE_COLUMNS[role]} = ?"
            params.append(user_id)

        with self._errors("stats"), self._connect() as conn:
            counts = {
                row["status"]: row["n"]
                for row in conn.execute(
                    f"SELECT status, COUNT(*) AS n FROM negotiations {where} GROUP BY status",
                    params,
                ).fetchall()
            }
            accepted_where = f"{where} AND" if where else "WHERE"
            accepted_rows = conn.execute(
                "SELECT reference_value, final_value FROM negotiations "
                f"{accepted_where} status = ? AND reference_value IS NOT NULL",
                [*params, NegotiationStatus.ACCEPTED.value],
            ).fetchall()

        total = sum(counts.values())
        accepted = counts.get(NegotiationStatus.ACCEPTED.value, 0)

        discounts = [
            calculate_discount(parse_money(r["reference_value"]), parse_money(r["final_value"]))
            for r in accepted_rows
        ]
        average_discount = (
            quantize_money(sum(discounts, Decimal("0")) / len(discounts))
            if discounts
            else Decimal("0")
        )
        success_rate = (
            quantize_money(Decimal(accepted) / Decimal(total) * Decimal("100"))
            if total
            else Decimal("0")
        )

        return NegotiationStats(
            total=total,
            pending=counts.get(NegotiationStatus.PENDING.value, 0),
            counter_offered=counts.get(NegotiationStatus.COUNTER_OFFERED.value, 0),
            accepted=accepted,
            rejected=counts.get(NegotiationStatus.REJECTED.value, 0),
            expired=counts.get(NegotiationStatus.EXPIRED.value, 0),
            cancelled=counts.get(NegotiationStatus.CANCELLED.value, 0),
            average_discount=average_discount,
            success_rate=success_rate,
        )
