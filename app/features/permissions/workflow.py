"""
Permission request workflow.

    PENDING --review(approved=True)--> APPROVED   (+ grant for the requester)
    PENDING --review(approved=False)-> REJECTED

APPROVED and REJECTED are terminal. The PENDING -> terminal step is a single
conditional UPDATE, so of two reviewers racing on the same request exactly
one wins and the other gets ConflictError.

Whether the caller may review at all is decided at the call site
(require_permissions(PERMISSIONS_MANAGE)); this module does not check it.
"""
import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    GrantCreationError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.features.permissions.enums import Permission, PermissionRequestStatus, parse_permission
from app.features.permissions.events import (
    EventPublisher,
    PermissionRequestReviewedEvent,
    request_approved_notification,
)
from app.features.permissions.models import PermissionRequest
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.store import GrantStore
from app.utils import as_naive_utc, get_logger, utcnow


log = get_logger(__name__)


class RequestPage:
    """One page of permission requests."""

    def __init__(self, items: List[PermissionRequest], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.pages = math.ceil(total / page_size) if page_size else 0


class PermissionRequestWorkflow:
    """
    Create, review and list permission requests.

    Usage:
        workflow = PermissionRequestWorkflow(db, resolver, publisher)
        request = await workflow.create(user.id, Permission.QUALITY_MANAGE, "Covering QA")
        await workflow.review(request.id, manager.id, approved=True)
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: PermissionResolver,
        publisher: Optional[EventPublisher] = None,
        grants: Optional[GrantStore] = None,
    ):
        self.db = db
        self.resolver = resolver
        self.publisher = publisher or EventPublisher()
        self.grants = grants or GrantStore(db)

    async def create(
        self,
        requester_id: Optional[str],
        permission: Permission | str,
        reason: Optional[str],
    ) -> PermissionRequest:
        """
        Open a PENDING request.

        Raises:
            UnauthorizedError: no requester identity
            ValidationError: blank reason, unknown permission, or the requester already holds it
            NotFoundError: requester does not exist
            ConflictError: the requester already has a pending request for this permission
        """
        if not requester_id:
            raise UnauthorizedError("A requester identity is required")
        if reason is None or not reason.strip():
            raise ValidationError("A reason is required")
        permission = parse_permission(permission)

        requester = await self.grants.get_user(requester_id)

        if await self._has_pending_request(requester_id, permission):
            raise ConflictError("Already have a pending request for this permission")

        now = utcnow()
        active = await self.grants.list_active_for_user(requester_id, now)
        if permission in self.resolver.resolve(requester.position, active, now):
            raise ValidationError("Already have this permission")

        request = PermissionRequest(
            requester_id=requester_id,
            permission=permission,
            reason=reason.strip(),
        )
        self.db.add(request)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # A concurrent create() won the partial unique index on PENDING requests
            await self.db.rollback()
            log.info("Duplicate pending request from %s for %s: %s", requester_id, permission.value, e.orig)
            raise ConflictError("Already have a pending request for this permission") from e
        await self.db.refresh(request)

        log.info("Permission request %s created: user=%s permission=%s", request.id, requester_id, permission.value)
        return request

    async def review(
        self,
        request_id: str,
        reviewer_id: Optional[str],
        approved: bool,
        review_note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PermissionRequest:
        """
        Move a PENDING request to APPROVED or REJECTED.

        Approval also records a grant for the requester in the same
        transaction. If that grant cannot be written everything is rolled
        back, the request stays PENDING and GrantCreationError is raised.

        Raises:
            UnauthorizedError: no reviewer identity
            NotFoundError: no such request
            ConflictError: the request was already reviewed
            GrantCreationError: approval could not record the grant
        """
        if not reviewer_id:
            raise UnauthorizedError("A reviewer identity is required")
        now = as_naive_utc(now) if now else utcnow()
        new_status = PermissionRequestStatus.APPROVED if approved else PermissionRequestStatus.REJECTED

        # Compare-and-set: the first statement of the transaction is the write
        result = await self.db.execute(
            update(PermissionRequest)
            .where(
                PermissionRequest.id == request_id,
                PermissionRequest.status == PermissionRequestStatus.PENDING,
            )
            .values(
                status=new_status,
                reviewer_id=reviewer_id,
                reviewed_at=now,
                review_note=review_note,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Nothing was written; the session owner ends the transaction
            current = (await self.db.execute(
                select(PermissionRequest.status).where(PermissionRequest.id == request_id)
            )).scalar_one_or_none()
            if current is None:
                raise NotFoundError("Permission request", request_id)
            log.info(
                "Review of permission request %s by %s lost: already %s",
                request_id, reviewer_id, current.value,
            )
            raise ConflictError(f"Permission request {request_id} is not pending (status: {current.value})")

        request = await self.db.get(PermissionRequest, request_id, populate_existing=True)

        if approved:
            try:
                await self.grants.add(
                    user_id=request.requester_id,
                    permission=request.permission,
                    granted=True,
                    granted_by_id=reviewer_id,
                    reason=review_note,
                    now=now,
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                log.critical(
                    "Approval of permission request %s rolled back, grant could not be written: %s",
                    request_id, e,
                )
                raise GrantCreationError(request_id, str(e)) from e

        await self.db.commit()
        await self.db.refresh(request)

        log.info(
            "Permission request %s %s by %s (requester=%s permission=%s)",
            request.id, new_status.value, reviewer_id, request.requester_id, request.permission.value,
        )

        self.publisher.publish_audit(
            PermissionRequestReviewedEvent(
                target_id=request.id,
                actor_id=reviewer_id,
                approved=approved,
                details={
                    "requester_id": request.requester_id,
                    "permission": request.permission.value,
                    "review_note": review_note,
                },
            )
        )
        if approved:
            self.publisher.publish_notification(
                request_approved_notification(request.requester_id, request.id, request.permission, review_note)
            )

        return request

    async def _has_pending_request(self, requester_id: str, permission: Permission) -> bool:
        result = await self.db.execute(
            select(PermissionRequest.id).where(
                PermissionRequest.requester_id == requester_id,
                PermissionRequest.permission == permission,
                PermissionRequest.status == PermissionRequestStatus.PENDING,
            )
        )
        return result.first() is not None

    async def get(self, request_id: str) -> PermissionRequest:
        request = await self.db.get(PermissionRequest, request_id)
        if request is None:
            raise NotFoundError("Permission request", request_id)
        return request

    async def list_requests(
        self,
        status: Optional[PermissionRequestStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> RequestPage:
        """Requests newest first, optionally only those with `status`."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")

        query = select(PermissionRequest)
        count_query = select(func.count()).select_from(PermissionRequest)
        if status is not None:
            query = query.where(PermissionRequest.status == status)
            count_query = count_query.where(PermissionRequest.status == status)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query
            .order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return RequestPage(list(result.scalars().all()), total, page, page_size)

    async def list_for_requester(self, requester_id: str) -> List[PermissionRequest]:
        """A requester's own requests, newest first."""
        result = await self.db.execute(
            select(PermissionRequest)
            .where(PermissionRequest.requester_id == requester_id)
            .order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
        )
        return list(result.scalars().all())
