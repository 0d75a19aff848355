"""
Resource discovery review queue.

Candidate resources (found by crawlers or submitted by staff) wait here
until a moderator approves, rejects or marks them as a duplicate. Approving
an item creates the ``Resource`` in the same transaction.
"""
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import (InsiderError, InvalidStateError,
                                 NotFoundError, ValidationError)
from insider.core.logging_config import LoggingConfig
from insider.core.metrics import discovery_decisions_total
from insider.core.utils import utcnow
from insider.models.resource import (DiscoveryPriority, DiscoveryQueueItem,
                                     DiscoveryStatus, Resource, ResourceStatus)
from insider.services.resource_service import ResourceService

logger = LoggingConfig.get_logger(__name__)

DEFAULT_REJECTION_REASON = "Did not meet quality standards"
BULK_REJECTION_REASON = "Bulk rejected - did not meet standards"

PRIORITIES = [p.value for p in DiscoveryPriority]
STATUSES = [s.value for s in DiscoveryStatus]
_PRIORITY_RANK = case(
    (DiscoveryQueueItem.priority == DiscoveryPriority.HIGH.value, 0),
    (DiscoveryQueueItem.priority == DiscoveryPriority.LOW.value, 2),
    else_=1,
)
_CONFIDENCE = func.coalesce(DiscoveryQueueItem.ai_analysis["confidence"].as_float(), 0)
# Items in these states still wait for a decision
_OPEN_STATUSES = (DiscoveryStatus.PENDING.value, DiscoveryStatus.NEEDS_INFO.value)

_UPDATABLE_FIELDS = (
    "title", "description", "suggested_category", "suggested_tags", "suggested_difficulty",
    "suggested_status", "github", "package", "source", "source_url", "ai_analysis",
    "priority", "status", "review_notes",
)


class DiscoveryService:
    def __init__(self, db: Session):
        self.db = db
        self.resources = ResourceService(db)
        self.bulk_limit = get_settings().discovery_bulk_limit

    def get(self, item_id: UUID) -> DiscoveryQueueItem:
        item = self.db.query(DiscoveryQueueItem).filter(DiscoveryQueueItem.id == item_id).first()
        if not item:
            raise NotFoundError("Queue item not found")
        return item

    def submit(
        self,
        title: str,
        url: str,
        submitted_by: Optional[UUID] = None,
        priority: str = DiscoveryPriority.NORMAL.value,
        **fields: Any
    ) -> DiscoveryQueueItem:
        if not title or not url:
            raise ValidationError("Title and URL are required")
        self._check_priority(priority)

        item = DiscoveryQueueItem(
            title=title,
            url=url,
            priority=priority,
            submitted_by=submitted_by,
            suggested_tags=fields.pop("suggested_tags", None) or [],
        )
        for key, value in fields.items():
            if key in _UPDATABLE_FIELDS and key not in ("status", "priority"):
                setattr(item, key, value)
        if fields.get("raw_data") is not None:
            item.raw_data = fields["raw_data"]

        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Discovery item queued: {url}")
        return item

    def list_items(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[DiscoveryQueueItem], int]:
        """Items ordered by priority, then AI confidence (highest first), then age"""
        query = self.db.query(DiscoveryQueueItem)
        if status:
            self._check_status(status)
            query = query.filter(DiscoveryQueueItem.status == status)
        if priority:
            self._check_priority(priority)
            query = query.filter(DiscoveryQueueItem.priority == priority)

        total = query.count()
        items = query.order_by(
            _PRIORITY_RANK, _CONFIDENCE.desc(), DiscoveryQueueItem.created_at
        ).offset((page - 1) * limit).limit(limit).all()
        return items, total

    def status_counts(self) -> Dict[str, int]:
        counts = {s: 0 for s in STATUSES}
        rows = self.db.query(
            DiscoveryQueueItem.status, func.count(DiscoveryQueueItem.id)
        ).group_by(DiscoveryQueueItem.status).all()
        counts.update(dict(rows))
        return counts

    def _stamp_review(self, item: DiscoveryQueueItem, reviewer_id: UUID) -> None:
        if item.reviewed_by is None:
            item.reviewed_by = reviewer_id
        if item.reviewed_at is None:
            item.reviewed_at = utcnow()

    def update(self, item_id: UUID, reviewer_id: UUID, **fields: Any) -> DiscoveryQueueItem:
        item = self.get(item_id)
        if "priority" in fields and fields["priority"] is not None:
            self._check_priority(fields["priority"])
        if "status" in fields and fields["status"] is not None:
            self._check_status(fields["status"])

        for key in _UPDATABLE_FIELDS:
            if key in fields and fields[key] is not None:
                setattr(item, key, fields[key])
        if item.status != DiscoveryStatus.PENDING.value:
            self._stamp_review(item, reviewer_id)
        item.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(item)
        return item

    def _require_open(self, item: DiscoveryQueueItem) -> None:
        if item.status not in _OPEN_STATUSES:
            raise InvalidStateError(f"Queue item is already {item.status}")

    def _approve(self, item: DiscoveryQueueItem, reviewer_id: UUID, overrides: Dict[str, Any]) -> Resource:
        self._require_open(item)
        category = overrides.get("category") or item.suggested_category
        if not category:
            raise ValidationError("Missing required category")

        github = item.github or {}
        resource = self.resources.create(
            title=overrides.get("title") or item.title,
            url=item.url,
            category=category,
            description=overrides.get("description") or item.description,
            tags=overrides.get("tags") or item.suggested_tags or [],
            difficulty=overrides.get("difficulty") or item.suggested_difficulty,
            status=overrides.get("resource_status") or item.suggested_status or ResourceStatus.COMMUNITY.value,
            github_owner=github.get("owner"),
            github_repo=github.get("repo"),
            github_stars=github.get("stars"),
            discovered_via=item.source,
            created_by=reviewer_id,
            commit=False,
        )

        item.status = DiscoveryStatus.APPROVED.value
        item.review_notes = overrides.get("review_notes", item.review_notes)
        item.created_resource_id = resource.id
        item.updated_at = utcnow()
        self._stamp_review(item, reviewer_id)
        discovery_decisions_total.labels(decision="approved").inc()
        return resource

    def approve(self, item_id: UUID, reviewer_id: UUID, **overrides: Any) -> Tuple[DiscoveryQueueItem, Resource]:
        item = self.get(item_id)
        resource = self._approve(item, reviewer_id, overrides)
        self.db.commit()
        self.db.refresh(item)
        self.db.refresh(resource)
        logger.info(f"Discovery item {item_id} approved as resource {resource.slug}")
        return item, resource

    def _reject(self, item: DiscoveryQueueItem, reviewer_id: UUID, reason: Optional[str], notes: Optional[str]) -> None:
        self._require_open(item)
        item.status = DiscoveryStatus.REJECTED.value
        item.rejection_reason = reason or DEFAULT_REJECTION_REASON
        if notes is not None:
            item.review_notes = notes
        item.updated_at = utcnow()
        self._stamp_review(item, reviewer_id)
        discovery_decisions_total.labels(decision="rejected").inc()

    def reject(
        self,
        item_id: UUID,
        reviewer_id: UUID,
        rejection_reason: Optional[str] = None,
        review_notes: Optional[str] = None
    ) -> DiscoveryQueueItem:
        item = self.get(item_id)
        self._reject(item, reviewer_id, rejection_reason, review_notes)
        self.db.commit()
        self.db.refresh(item)
        return item

    def mark_duplicate(
        self,
        item_id: UUID,
        reviewer_id: UUID,
        duplicate_of: Optional[UUID],
        review_notes: Optional[str] = None
    ) -> DiscoveryQueueItem:
        if not duplicate_of:
            raise ValidationError("duplicate_of is required for duplicate action")
        item = self.get(item_id)
        self._require_open(item)
        self.resources.get(duplicate_of)

        item.status = DiscoveryStatus.DUPLICATE.value
        item.duplicate_of_id = duplicate_of
        if review_notes is not None:
            item.review_notes = review_notes
        item.updated_at = utcnow()
        self._stamp_review(item, reviewer_id)
        discovery_decisions_total.labels(decision="duplicate").inc()
        self.db.commit()
        self.db.refresh(item)
        return item

    def request_info(self, item_id: UUID, reviewer_id: UUID, review_notes: Optional[str] = None) -> DiscoveryQueueItem:
        item = self.get(item_id)
        self._require_open(item)
        item.status = DiscoveryStatus.NEEDS_INFO.value
        if review_notes is not None:
            item.review_notes = review_notes
        item.updated_at = utcnow()
        self._stamp_review(item, reviewer_id)
        discovery_decisions_total.labels(decision="needs_info").inc()
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete(self, item_id: UUID) -> None:
        item = self.get(item_id)
        self.db.delete(item)
        self.db.commit()

    # ------------------------------------------------------------------
    # Bulk actions
    # ------------------------------------------------------------------

    def _check_bulk_ids(self, ids: List[UUID]) -> None:
        if not ids:
            raise ValidationError("A non-empty list of ids is required")
        if len(ids) > self.bulk_limit:
            raise ValidationError(f"Maximum {self.bulk_limit} items per bulk operation")

    def bulk(self, action: str, ids: List[UUID], reviewer_id: UUID, data: Optional[Dict[str, Any]] = None) -> Dict:
        """
        Apply one action to many queue items.

        Failures are reported per item and do not stop the batch. All
        successful changes are committed together.
        """
        self._check_bulk_ids(ids)
        data = data or {}

        if action == "update_priority":
            self._check_priority(data.get("priority"))
        elif action not in ("approve", "reject", "delete"):
            raise ValidationError(f"Unknown bulk action '{action}'")

        results = []
        for item_id in ids:
            try:
                item = self.get(item_id)
                entry: Dict[str, Any] = {"id": str(item_id), "success": True}
                if action == "approve":
                    resource = self._approve(item, reviewer_id, {"review_notes": "Bulk approved"})
                    entry["resource_id"] = str(resource.id)
                elif action == "reject":
                    self._reject(item, reviewer_id, data.get("rejection_reason") or BULK_REJECTION_REASON, None)
                elif action == "delete":
                    self.db.delete(item)
                else:
                    item.priority = data["priority"]
                    item.updated_at = utcnow()
                results.append(entry)
            except InsiderError as e:
                results.append({"id": str(item_id), "success": False, "error": e.detail})

        self.db.commit()
        succeeded = sum(1 for r in results if r["success"])
        logger.info(f"Bulk {action} on {len(ids)} discovery items: {succeeded} succeeded")
        return {
            "action": action,
            "results": results,
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }

    @staticmethod
    def _check_priority(priority: Optional[str]) -> None:
        if priority not in PRIORITIES:
            raise ValidationError(f"Invalid priority value. Allowed: {PRIORITIES}")

    @staticmethod
    def _check_status(status: str) -> None:
        if status not in STATUSES:
            raise ValidationError(f"Invalid status '{status}'. Allowed: {STATUSES}")
