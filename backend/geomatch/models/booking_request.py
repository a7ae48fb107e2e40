"""
BookingRequest model: a negotiation between a requester and an acceptor
of the opposite role.

Key design decisions:
- Rows are never deleted; terminal rows stay as history
- requester_role is snapshotted at creation so acceptor role checks still
  work after the requester disconnects
- Partial unique index allows one pending/accepted request per requester;
  it backs the single-active-request policy at the store level
- Identity links are plain connection ids, not foreign keys: identities
  vanish on disconnect while their requests remain
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, func, text

from geomatch.db.base import Base
from geomatch.models.enums import RequestStatus

_ACTIVE_WHERE = text("status IN ('pending', 'accepted')")


class BookingRequest(Base):
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(String(64), nullable=False, index=True)
    requester_role = Column(String(20), nullable=False)
    target_id = Column(String(64), nullable=False, index=True)
    acceptor_id = Column(String(64), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value)
    cancel_reason = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'cancelled', 'completed')",
            name="check_request_status",
        ),
        Index(
            "uq_requests_active_requester",
            "requester_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
        Index("ix_requests_status_created", "status", "created_at"),
    )

    @property
    def state(self) -> RequestStatus:
        return RequestStatus(self.status)

    def counterparts(self, connection_id: str) -> list[str]:
        """Every participant of this request other than ``connection_id``."""
        ids = [self.requester_id, self.target_id, self.acceptor_id]
        seen = []
        for cid in ids:
            if cid and cid != connection_id and cid not in seen:
                seen.append(cid)
        return seen

    def __repr__(self) -> str:
        return f"<BookingRequest(id={self.id}, requester={self.requester_id}, status={self.status})>"
