"""
Activity Logging Service
Records who changed what in the back office
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from typing import Optional, List, Dict, Any, Tuple
from datetime import date, datetime, timedelta
import json
import logging

from app.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityAction:
    """Constants for activity actions"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    CANCEL = "CANCEL"
    RESTORE = "RESTORE"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"

    # Finance
    STOCK_ADJUST = "STOCK_ADJUST"
    RESTOCK = "RESTOCK"
    ORDER_COMPLETE = "ORDER_COMPLETE"
    DISTRIBUTE = "DISTRIBUTE"
    RECONCILE = "RECONCILE"
    APPROVE = "APPROVE"
    PAY = "PAY"


class ActivityLogService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Any = None,
        entity_name: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict] = None,
        user=None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        status: str = "success",
    ) -> ActivityLog:
        """
        Add an activity row to the current unit of work.

        The row is committed together with the change it describes, so a
        rolled back request leaves no trace here either.
        """
        entry = ActivityLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            entity_name=entity_name,
            description=description,
            extra_data=json.dumps(metadata, default=str) if metadata else None,
            user_id=user.id if user is not None else None,
            user_name=user.name if user is not None else None,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            status=status,
        )
        self.db.add(entry)

        logger.info(
            f"Activity: {action} {entity_type}(id={entity_id}) "
            f"by user={entry.user_id} status={status}"
        )
        return entry

    def get_logs(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ActivityLog], int]:
        query = self.db.query(ActivityLog)

        if start_date:
            query = query.filter(ActivityLog.timestamp >= start_date)
        if end_date:
            query = query.filter(ActivityLog.timestamp < end_date + timedelta(days=1))
        if user_id:
            query = query.filter(ActivityLog.user_id == user_id)
        if action:
            query = query.filter(ActivityLog.action == action)
        if entity_type:
            query = query.filter(ActivityLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(ActivityLog.entity_id == str(entity_id))

        total = query.count()
        logs = query.order_by(desc(ActivityLog.timestamp), desc(ActivityLog.id)).offset(offset).limit(limit).all()
        return logs, total

    def get_stats(self, days: int = 30) -> Dict[str, Any]:
        """Counts by action and entity type over the trailing window"""
        since = datetime.utcnow() - timedelta(days=days)
        base = self.db.query(ActivityLog).filter(ActivityLog.timestamp >= since)

        by_action = dict(
            base.with_entities(ActivityLog.action, func.count(ActivityLog.id))
            .group_by(ActivityLog.action).all()
        )
        by_entity = dict(
            base.with_entities(ActivityLog.entity_type, func.count(ActivityLog.id))
            .group_by(ActivityLog.entity_type).all()
        )
        unique_users = base.with_entities(func.count(func.distinct(ActivityLog.user_id))).scalar() or 0

        return {
            "days": days,
            "total": sum(by_action.values()),
            "by_action": by_action,
            "by_entity_type": by_entity,
            "unique_users": unique_users,
        }
