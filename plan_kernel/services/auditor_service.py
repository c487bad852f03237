"""
AuditorService -- the durable, tamper-evident audit sink.

Responsibility:
    Appends one ``AuditLogEntry`` per audited action and validates the hash
    chain on demand.  Callers describe the action as
    ``{user_id, action, resource, resource_id, before?, after?}``.

Architecture position:
    Kernel > Services.  Called by the quarantine lifecycle service and the
    agreement deriver after their primary write has committed.

Invariants enforced:
    - Chain integrity: ``hash = H(action, resource, resource_id,
      payload_hash, prev_hash)``; the first entry links to GENESIS.
    - seq comes from the locked ``audit_log`` counter row.
    - Append-only: entries are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError from validate_chain() when any stored hash or
      link does not match its recomputed value.
    - Any database error from record().  Callers that treat audit as best
      effort catch it themselves.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from plan_kernel.domain.clock import Clock, SystemClock
from plan_kernel.exceptions import AuditChainBrokenError
from plan_kernel.logging_config import get_logger
from plan_kernel.models.audit_log import AuditLogEntry
from plan_kernel.services.sequence_service import SequenceService
from plan_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.auditor")


class AuditorService:
    """
    Writes and verifies the audit chain.

    Contract:
        ``record()`` flushes a new entry into the caller's transaction.

    Guarantees:
        - Every entry's hash is a deterministic function of its content and
          its predecessor's hash.
        - before/after payloads are stored as JSON-native values.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT decide whether an audit failure is fatal.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_entry = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_entry.hash if last_entry else None

    def record(
        self,
        user_id: UUID,
        action: str,
        resource: str,
        resource_id: UUID | str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Append one audit entry.

        Args:
            user_id: The authenticated actor.
            action: Dotted action name, e.g. ``fund-quarantine.draw-down``.
            resource: Resource type, e.g. ``fund-quarantine``.
            resource_id: Id of the affected record.
            before: State before the change (optional).
            after: State after the change (optional).

        Returns:
            The flushed AuditLogEntry.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_hash = self._get_last_hash()

        before_data = to_json_safe(before) if before is not None else None
        after_data = to_json_safe(after) if after is not None else None
        payload_hash = hash_payload(
            {"user_id": str(user_id), "before": before_data, "after": after_data}
        )
        entry_hash = hash_audit_entry(
            action=action,
            resource=resource,
            resource_id=str(resource_id),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = AuditLogEntry(
            seq=seq,
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id),
            before=before_data,
            after=after_data,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "action": action,
                "resource": resource,
                "resource_id": str(resource_id),
                "seq": seq,
            },
        )
        return entry

    def validate_chain(self) -> bool:
        """
        Recompute every hash in seq order.

        Raises:
            AuditChainBrokenError: At the first entry whose hash or prev_hash
                does not match.
        """
        entries = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for entry in entries:
            if entry.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": entry.seq, "reason": "prev_hash_mismatch"},
                )
                raise AuditChainBrokenError(
                    str(entry.id), expected_prev, entry.prev_hash
                )

            payload_hash = hash_payload(
                {
                    "user_id": str(entry.user_id),
                    "before": entry.before,
                    "after": entry.after,
                }
            )
            expected_hash = hash_audit_entry(
                action=entry.action,
                resource=entry.resource,
                resource_id=entry.resource_id,
                payload_hash=payload_hash,
                prev_hash=entry.prev_hash,
            )
            if entry.payload_hash != payload_hash or entry.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": entry.seq, "reason": "hash_mismatch"},
                )
                raise AuditChainBrokenError(str(entry.id), expected_hash, entry.hash)

            expected_prev = entry.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True

    def entries_for(self, resource: str, resource_id: UUID | str) -> list[AuditLogEntry]:
        """All entries for one resource, oldest first."""
        return list(
            self._session.execute(
                select(AuditLogEntry)
                .where(
                    AuditLogEntry.resource == resource,
                    AuditLogEntry.resource_id == str(resource_id),
                )
                .order_by(AuditLogEntry.seq)
            ).scalars()
        )
