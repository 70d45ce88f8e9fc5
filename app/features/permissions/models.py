"""
Permission grant and permission request models.

- PermissionGrant: per-user override of the position policy. Rows are only
  ever inserted; a newer row for the same permission shadows older ones and
  expiry makes a row inert without deleting it.
- PermissionRequest: a staff member asking for a permission; reviewed once.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Text, Boolean, DateTime, Integer, Enum as SQLEnum, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.permissions.enums import Permission, PermissionRequestStatus
from app.utils import utcnow


class PermissionGrant(Base):
    """
    A single grant (granted=True) or revocation (granted=False).

    The integer id is the insertion sequence; the resolver relies on it to
    break ties between grants with the same granted_at.
    """
    __tablename__ = "permission_grants"
    __table_args__ = (
        Index("ix_permission_grants_user_permission", "user_id", "permission"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    permission: Mapped[Permission] = mapped_column(SQLEnum(Permission), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Provenance
    granted_by_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # None = never expires
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    def __repr__(self) -> str:
        return (
            f"<PermissionGrant(id={self.id}, user_id={self.user_id}, "
            f"permission={self.permission}, granted={self.granted}, expires_at={self.expires_at})>"
        )


class PermissionRequest(Base, TimestampMixin):
    """
    A request for an extra permission.

    reviewer_id and reviewed_at are set exactly when status is no longer
    PENDING. The transition is made with a conditional UPDATE, see
    PermissionRequestWorkflow.review.
    """
    __tablename__ = "permission_requests"
    __table_args__ = (
        # At most one PENDING request per requester and permission
        Index(
            "uq_permission_requests_pending",
            "requester_id",
            "permission",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    requester_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    permission: Mapped[Permission] = mapped_column(SQLEnum(Permission), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[PermissionRequestStatus] = mapped_column(
        SQLEnum(PermissionRequestStatus),
        default=PermissionRequestStatus.PENDING,
        nullable=False,
        index=True
    )

    # Reviewer response
    reviewer_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PermissionRequest(id={self.id}, requester_id={self.requester_id}, "
            f"permission={self.permission}, status={self.status})>"
        )
