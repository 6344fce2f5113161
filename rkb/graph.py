"""
Directed, typed links between claims and the triage views built on them.

Provides:
    - Idempotent link insert and per-pair unlink
    - Neighbour traversal (outgoing and incoming)
    - Connectivity counts and orphan detection (< 2 links)
    - Staleness by last access, and the composite review queue
"""

from __future__ import annotations

import logging
import random
import sqlite3
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from rkb.errors import InvalidInputError, NotFoundError
from rkb.schemas import (
    Claim,
    ClaimLink,
    ClaimNeighbors,
    ClaimStats,
    LinkType,
    LinkedClaim,
    ReviewQueue,
)
from rkb.store import claim_from_row, from_timestamp, to_timestamp, utcnow

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)

ORPHAN_THRESHOLD = 2

_CLAIM_SELECT = "c.id, c.text, c.video_id, c.timestamp, c.source_quote, c.category, c.confidence, c.created_at"
_LINK_SELECT = (
    "cl.id AS link_id, cl.source_claim_id, cl.target_claim_id, "
    "cl.link_type, cl.created_at AS link_created_at"
)


def _link_from_row(row: sqlite3.Row) -> ClaimLink:
    return ClaimLink(
        id=row["link_id"],
        source_claim_id=row["source_claim_id"],
        target_claim_id=row["target_claim_id"],
        link_type=LinkType.parse(row["link_type"]) or LinkType.RELATED,
        created_at=from_timestamp(row["link_created_at"]),
    )


class ClaimGraph:
    """
    Claim link graph over the claims table.

    Usage:
        graph = ClaimGraph(db)
        graph.link(1, 2, LinkType.SUPPORTS)
        queue = graph.review_queue(stale_days=30, random_n=5)
    """

    def __init__(self, db: Database, rng: random.Random | None = None):
        self.db = db
        self.rng = rng or random.Random()

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db.conn

    # ------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------

    def link(self, source_id: int, target_id: int, link_type: LinkType | str) -> ClaimLink | None:
        """
        Add a typed edge source -> target.

        Re-linking with the same type is a no-op that returns the existing edge.

        Raises:
            InvalidInputError: unknown link type or source == target

        Returns:
            The stored edge, or None if either claim does not exist
        """
        if isinstance(link_type, str) and not isinstance(link_type, LinkType):
            parsed = LinkType.parse(link_type)
            if parsed is None:
                valid = ", ".join(t.value for t in LinkType)
                raise InvalidInputError(f"Invalid link type: {link_type} (valid: {valid})")
            link_type = parsed

        if source_id == target_id:
            raise InvalidInputError(f"Cannot link claim #{source_id} to itself")

        if self.db.get_claim(source_id) is None or self.db.get_claim(target_id) is None:
            return None

        with self.conn:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO claim_links (source_claim_id, target_claim_id, link_type, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (source_id, target_id, link_type.value, to_timestamp(utcnow())),
            )

        row = self.conn.execute(
            f"""
            SELECT {_LINK_SELECT} FROM claim_links cl
            WHERE cl.source_claim_id = ? AND cl.target_claim_id = ? AND cl.link_type = ?
            """,
            (source_id, target_id, link_type.value),
        ).fetchone()
        return _link_from_row(row)

    def unlink(self, source_id: int, target_id: int) -> bool:
        """Remove every edge source -> target regardless of type."""
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM claim_links WHERE source_claim_id = ? AND target_claim_id = ?",
                (source_id, target_id),
            )
        return cursor.rowcount > 0

    def neighbors(self, claim_id: int) -> ClaimNeighbors | None:
        """Outgoing and incoming edges of a claim, each paired with the claim at the other end."""
        claim = self.db.get_claim(claim_id)
        if claim is None:
            return None

        outgoing = self.conn.execute(
            f"""
            SELECT {_LINK_SELECT}, {_CLAIM_SELECT}
            FROM claim_links cl
            JOIN claims c ON c.id = cl.target_claim_id
            WHERE cl.source_claim_id = ?
            ORDER BY cl.id
            """,
            (claim_id,),
        ).fetchall()
        incoming = self.conn.execute(
            f"""
            SELECT {_LINK_SELECT}, {_CLAIM_SELECT}
            FROM claim_links cl
            JOIN claims c ON c.id = cl.source_claim_id
            WHERE cl.target_claim_id = ?
            ORDER BY cl.id
            """,
            (claim_id,),
        ).fetchall()

        return ClaimNeighbors(
            claim=claim,
            outgoing=[LinkedClaim(link=_link_from_row(r), claim=claim_from_row(r)) for r in outgoing],
            incoming=[LinkedClaim(link=_link_from_row(r), claim=claim_from_row(r)) for r in incoming],
        )

    def link_count(self, claim_id: int) -> int:
        """Number of edges touching the claim in either direction."""
        row = self.conn.execute(
            "SELECT COUNT(*) FROM claim_links WHERE source_claim_id = ? OR target_claim_id = ?",
            (claim_id, claim_id),
        ).fetchone()
        return row[0]

    # ------------------------------------------------------------
    # Triage
    # ------------------------------------------------------------

    def orphans(self) -> list[Claim]:
        """Claims touching fewer than two edges, newest first."""
        rows = self.conn.execute(
            f"""
            SELECT {_CLAIM_SELECT}
            FROM claims c
            WHERE (
                SELECT COUNT(*) FROM claim_links cl
                WHERE cl.source_claim_id = c.id OR cl.target_claim_id = c.id
            ) < ?
            ORDER BY c.created_at DESC, c.id DESC
            """,
            (ORPHAN_THRESHOLD,),
        ).fetchall()
        return [claim_from_row(row) for row in rows]

    def record_access(self, claim_id: int, at: datetime | None = None) -> None:
        """
        Mark a claim as shown to the user.

        Raises:
            NotFoundError: the claim does not exist
        """
        if self.db.get_claim(claim_id) is None:
            raise NotFoundError(f"Claim #{claim_id} not found")

        with self.conn:
            self.conn.execute(
                """
                INSERT INTO claim_access (claim_id, last_accessed) VALUES (?, ?)
                ON CONFLICT(claim_id) DO UPDATE SET last_accessed = excluded.last_accessed
                """,
                (claim_id, to_timestamp(at or utcnow())),
            )

    def last_accessed(self, claim_id: int) -> datetime | None:
        row = self.conn.execute(
            "SELECT last_accessed FROM claim_access WHERE claim_id = ?", (claim_id,)
        ).fetchone()
        return from_timestamp(row["last_accessed"]) if row else None

    def stale(self, days: int, now: datetime | None = None) -> list[Claim]:
        """
        Claims never accessed, or last accessed more than `days` days before `now`.

        Ordered least recently touched first (creation time stands in for
        never-accessed claims).
        """
        cutoff = (now or utcnow()) - timedelta(days=days)
        rows = self.conn.execute(
            f"""
            SELECT {_CLAIM_SELECT}
            FROM claims c
            LEFT JOIN claim_access ca ON ca.claim_id = c.id
            WHERE ca.claim_id IS NULL OR ca.last_accessed < ?
            ORDER BY COALESCE(ca.last_accessed, c.created_at), c.id
            """,
            (to_timestamp(cutoff),),
        ).fetchall()
        return [claim_from_row(row) for row in rows]

    def random_sample(self, count: int) -> list[Claim]:
        """Uniform sample of up to `count` claims."""
        claims = self.db.list_all_claims()
        return self.rng.sample(claims, min(count, len(claims)))

    def review_queue(
        self,
        stale_days: int = 30,
        random_n: int = 5,
        now: datetime | None = None,
    ) -> ReviewQueue:
        """
        Stale claims, orphan claims and a random sample for serendipitous review.

        Sampled claims count as accessed once surfaced.
        """
        queue = ReviewQueue(
            stale=self.stale(stale_days, now=now),
            orphans=self.orphans(),
            random_sample=self.random_sample(random_n),
        )
        for claim in queue.random_sample:
            self.record_access(claim.id, at=now)

        logger.debug(
            f"Review queue: {len(queue.stale)} stale, {len(queue.orphans)} orphans, "
            f"{len(queue.random_sample)} sampled"
        )
        return queue

    # ------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------

    def delete_claim(self, claim_id: int) -> bool:
        """Delete a claim along with its links and access record."""
        return self.db.delete_claim(claim_id)

    def stats(self) -> ClaimStats:
        total = self.conn.execute("SELECT COUNT(*) FROM claims").fetchone()[0]
        links = self.conn.execute("SELECT COUNT(*) FROM claim_links").fetchone()[0]
        well_linked = self.conn.execute(
            """
            SELECT COUNT(*) FROM claims c
            WHERE (
                SELECT COUNT(*) FROM claim_links cl
                WHERE cl.source_claim_id = c.id OR cl.target_claim_id = c.id
            ) >= ?
            """,
            (ORPHAN_THRESHOLD,),
        ).fetchone()[0]
        return ClaimStats(total_claims=total, well_linked_claims=well_linked, total_links=links)
