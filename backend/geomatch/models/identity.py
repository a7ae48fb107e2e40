"""
Identity model: one row per live connection.

Key design decisions:
- connection_id is the primary key, so upsert-by-key is a native
  INSERT ... ON CONFLICT and there is never more than one identity per connection
- Location columns are nullable until the first location update
- Index on (role, latitude) backs the "located identities of a role" query
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Float, Index, String, func

from geomatch.db.base import Base


class Identity(Base):
    __tablename__ = "identities"

    connection_id = Column(String(64), primary_key=True)
    role = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)
    last_seen = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('seeker', 'provider')", name="check_identity_role"),
        Index("ix_identities_role_latitude", "role", "latitude"),
    )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self) -> str:
        return f"<Identity(connection_id={self.connection_id}, role={self.role}, name={self.name})>"
