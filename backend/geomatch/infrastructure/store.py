"""
Relational store for identities and booking requests.

CONCURRENCY STRATEGY: Conditional Updates (compare-and-swap)
============================================================

Problem:
  Two providers accept the same pending request at the same instant.
  Both read status='pending', both write status='accepted'.
  Result: two acceptors believe they won.

Solution:
  Every status transition is a single conditional UPDATE that carries the
  expected current state in its WHERE clause:

    UPDATE requests SET status='accepted', acceptor_id=:me, accepted_at=now()
    WHERE id = :id AND status = 'pending'

  The database applies it atomically. rows_affected == 1 means this caller
  won; rows_affected == 0 means the row had already moved on. There is no
  retry: a lost race is final and reported to the caller.

  In-process locks are deliberately absent. They would not help once more
  than one worker process serves connections, and the store already
  serializes writers on the row.

Every public method runs in its own transaction, so each inbound event is
one atomic unit against the store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geomatch.core.exceptions import ACTIVE_REQUEST_EXISTS, ConflictError, PersistenceError
from geomatch.core.logging import get_logger
from geomatch.models.booking_request import BookingRequest
from geomatch.models.enums import ACTIVE_STATUSES, RequestStatus
from geomatch.models.identity import Identity

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RemovalResult:
    identity: Optional[Identity]
    request_ids: list[int] = field(default_factory=list)


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT DO UPDATE."""
    if session.bind.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


class CoordinationStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    # ---------------------- Identities ----------------------

    async def upsert_identity(self, connection_id: str, role: str, name: str) -> Identity:
        """
        Insert the identity or refresh its name. Role is immutable: the
        ON CONFLICT branch only fires when the stored role matches, so the
        caller can detect a role change by comparing the returned row.
        """
        try:
            async with self._sessionmaker.begin() as session:
                insert = _insert_for(session)
                now = utcnow()
                stmt = insert(Identity).values(
                    connection_id=connection_id, role=role, name=name, last_seen=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Identity.connection_id],
                    set_={"name": stmt.excluded.name, "last_seen": stmt.excluded.last_seen},
                    where=Identity.role == stmt.excluded.role,
                )
                await session.execute(stmt)
                result = await session.execute(
                    select(Identity).where(Identity.connection_id == connection_id)
                )
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise self._wrap("upsert_identity", e) from e

    async def update_location(
        self,
        connection_id: str,
        latitude: float,
        longitude: float,
        accuracy: Optional[float],
    ) -> Optional[Identity]:
        """Returns the updated identity, or None when the connection has no identity."""
        try:
            async with self._sessionmaker.begin() as session:
                result = await session.execute(
                    update(Identity)
                    .where(Identity.connection_id == connection_id)
                    .values(latitude=latitude, longitude=longitude, accuracy=accuracy, last_seen=utcnow())
                )
                if result.rowcount == 0:
                    return None
                row = await session.execute(
                    select(Identity).where(Identity.connection_id == connection_id)
                )
                return row.scalar_one()
        except SQLAlchemyError as e:
            raise self._wrap("update_location", e) from e

    async def get_identity(self, connection_id: str) -> Optional[Identity]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(Identity).where(Identity.connection_id == connection_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._wrap("get_identity", e) from e

    async def get_identities(self, connection_ids: Sequence[str]) -> dict[str, Identity]:
        ids = [cid for cid in connection_ids if cid]
        if not ids:
            return {}
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(Identity).where(Identity.connection_id.in_(ids))
                )
                return {identity.connection_id: identity for identity in result.scalars()}
        except SQLAlchemyError as e:
            raise self._wrap("get_identities", e) from e

    async def list_located(self, role: str) -> list[Identity]:
        """Identities of a role that have shared a location."""
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(Identity)
                    .where(
                        Identity.role == role,
                        Identity.latitude.is_not(None),
                        Identity.longitude.is_not(None),
                    )
                    .order_by(Identity.name.asc(), Identity.connection_id.asc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._wrap("list_located", e) from e

    async def list_identities(self, role: Optional[str] = None) -> list[Identity]:
        try:
            async with self._sessionmaker() as session:
                query = select(Identity)
                if role is not None:
                    query = query.where(Identity.role == role)
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._wrap("list_identities", e) from e

    async def remove_identity(self, connection_id: str) -> RemovalResult:
        """
        Delete the identity and cancel the requests it leaves dangling:
        pending requests it made, and pending/accepted requests it accepted.
        """
        try:
            async with self._sessionmaker.begin() as session:
                found = await session.execute(
                    select(Identity).where(Identity.connection_id == connection_id)
                )
                identity = found.scalar_one_or_none()
                await session.execute(
                    delete(Identity).where(Identity.connection_id == connection_id)
                )

                # One UPDATE, so a concurrent accept is re-checked against the predicate
                dangling = or_(
                    (BookingRequest.requester_id == connection_id)
                    & (BookingRequest.status == RequestStatus.PENDING.value),
                    (BookingRequest.acceptor_id == connection_id)
                    & (BookingRequest.status.in_(ACTIVE_STATUSES)),
                )
                cancelled = await session.execute(
                    update(BookingRequest)
                    .where(dangling)
                    .values(
                        status=RequestStatus.CANCELLED.value,
                        cancel_reason="disconnect",
                        closed_at=utcnow(),
                    )
                    .returning(BookingRequest.id)
                    .execution_options(synchronize_session=False)
                )
                request_ids = sorted(cancelled.scalars().all())
                return RemovalResult(identity=identity, request_ids=request_ids)
        except SQLAlchemyError as e:
            raise self._wrap("remove_identity", e) from e

    # ---------------------- Booking requests ----------------------

    async def has_active_request(self, requester_id: str) -> bool:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(BookingRequest.id)
                    .where(
                        BookingRequest.requester_id == requester_id,
                        BookingRequest.status.in_(ACTIVE_STATUSES),
                    )
                    .limit(1)
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise self._wrap("has_active_request", e) from e

    async def insert_request(self, requester_id: str, requester_role: str, target_id: str) -> BookingRequest:
        try:
            async with self._sessionmaker.begin() as session:
                request = BookingRequest(
                    requester_id=requester_id,
                    requester_role=requester_role,
                    target_id=target_id,
                    status=RequestStatus.PENDING.value,
                    created_at=utcnow(),
                )
                session.add(request)
                await session.flush()
                await session.refresh(request)
                return request
        except IntegrityError as e:
            # Partial unique index on active requests per requester
            raise ConflictError(
                "You already have an active booking request",
                reason=ACTIVE_REQUEST_EXISTS,
            ) from e
        except SQLAlchemyError as e:
            raise self._wrap("insert_request", e) from e

    async def get_request(self, request_id: int) -> Optional[BookingRequest]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(BookingRequest).where(BookingRequest.id == request_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._wrap("get_request", e) from e

    async def accept_request(self, request_id: int, acceptor_id: str) -> Optional[BookingRequest]:
        """CAS pending -> accepted. Returns the row if this caller won, else None."""
        return await self._transition(
            "accept_request",
            request_id,
            [BookingRequest.status == RequestStatus.PENDING.value],
            {
                "status": RequestStatus.ACCEPTED.value,
                "acceptor_id": acceptor_id,
                "accepted_at": utcnow(),
            },
        )

    async def cancel_request(self, request_id: int, requester_id: str) -> Optional[BookingRequest]:
        """CAS pending -> cancelled, requester only."""
        return await self._transition(
            "cancel_request",
            request_id,
            [
                BookingRequest.requester_id == requester_id,
                BookingRequest.status == RequestStatus.PENDING.value,
            ],
            {
                "status": RequestStatus.CANCELLED.value,
                "cancel_reason": "requester",
                "closed_at": utcnow(),
            },
        )

    async def complete_request(self, request_id: int, participant_id: str) -> Optional[BookingRequest]:
        """CAS accepted -> completed, either party."""
        return await self._transition(
            "complete_request",
            request_id,
            [
                BookingRequest.status == RequestStatus.ACCEPTED.value,
                or_(
                    BookingRequest.requester_id == participant_id,
                    BookingRequest.acceptor_id == participant_id,
                ),
            ],
            {
                "status": RequestStatus.COMPLETED.value,
                "closed_at": utcnow(),
            },
        )

    async def force_cancel(
        self,
        request_id: int,
        reason: str,
        only_status: Sequence[str] = ACTIVE_STATUSES,
    ) -> Optional[BookingRequest]:
        """CAS any of ``only_status`` -> cancelled. Used by disconnect cascade and expiry."""
        return await self._transition(
            "force_cancel",
            request_id,
            [BookingRequest.status.in_(list(only_status))],
            {
                "status": RequestStatus.CANCELLED.value,
                "cancel_reason": reason,
                "closed_at": utcnow(),
            },
        )

    async def pending_before(self, cutoff: datetime) -> list[int]:
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(BookingRequest.id)
                    .where(
                        BookingRequest.status == RequestStatus.PENDING.value,
                        BookingRequest.created_at < cutoff,
                    )
                    .order_by(BookingRequest.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._wrap("pending_before", e) from e

    async def ping(self) -> bool:
        try:
            async with self._sessionmaker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("store_ping_failed", error=str(e))
            return False

    # ---------------------- Internals ----------------------

    async def _transition(
        self,
        operation: str,
        request_id: int,
        guards: list,
        values: dict,
    ) -> Optional[BookingRequest]:
        try:
            async with self._sessionmaker.begin() as session:
                result = await session.execute(
                    update(BookingRequest)
                    .where(BookingRequest.id == request_id, *guards)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    logger.info("transition_rejected", operation=operation, request_id=request_id)
                    return None
                row = await session.execute(
                    select(BookingRequest).where(BookingRequest.id == request_id)
                )
                return row.scalar_one()
        except SQLAlchemyError as e:
            raise self._wrap(operation, e) from e

    @staticmethod
    def _wrap(operation: str, error: SQLAlchemyError) -> PersistenceError:
        logger.error("store_operation_failed", operation=operation, error=str(error))
        return PersistenceError()
