# stocksync/services/webhook_log_service.py
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stocksync.core.config import get_settings
from stocksync.core.enums import WebhookDirection, WebhookStatus
from stocksync.core.utils import utcnow
from stocksync.models.webhook_log import WebhookLog
from stocksync.schemas.webhook import EventCount, WebhookStats

logger = logging.getLogger(__name__)


class WebhookLogService:
    """
    Audit trail for every inbound webhook and outbound push.

    Rows are committed as 'pending' before the caller mutates anything, so a
    crash mid-update still leaves a record. The only later change allowed is
    the move to 'success' or 'failed'.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def start(
        self,
        store_id: Optional[int],
        event_type: str,
        direction: WebhookDirection,
        payload: Dict[str, Any],
        remote_id: Optional[int] = None,
        product_id: Optional[int] = None,
    ) -> WebhookLog:
        log_entry = WebhookLog(
            store_id=store_id,
            event_type=event_type,
            direction=direction.value,
            payload=payload,
            status=WebhookStatus.PENDING.value,
            remote_id=remote_id,
            product_id=product_id,
        )
        self.db.add(log_entry)
        await self.db.commit()

        logger.debug(
            f"Webhook log {log_entry.id}: {direction.value} {event_type} "
            f"(store: {store_id or 'unknown'}, remote id: {remote_id or 'N/A'})"
        )
        return log_entry

    async def record_failure(
        self,
        store_id: Optional[int],
        event_type: str,
        direction: WebhookDirection,
        payload: Dict[str, Any],
        error: str,
        remote_id: Optional[int] = None,
    ) -> WebhookLog:
        """Pending row and its failure in one go, for events rejected before any work"""
        log_entry = await self.start(store_id, event_type, direction, payload, remote_id=remote_id)
        return await self.mark_failed(log_entry, error)

    async def _finish(
        self,
        log_entry: WebhookLog,
        status: WebhookStatus,
        message: Optional[str],
        product_id: Optional[int],
    ) -> WebhookLog:
        log_entry.status = status.value
        log_entry.error_message = message
        if product_id is not None:
            log_entry.product_id = product_id
        await self.db.commit()
        return log_entry

    async def mark_success(
        self,
        log_entry: WebhookLog,
        note: Optional[str] = None,
        product_id: Optional[int] = None,
    ) -> WebhookLog:
        return await self._finish(log_entry, WebhookStatus.SUCCESS, note, product_id)

    async def mark_failed(
        self,
        log_entry: WebhookLog,
        error: str,
        product_id: Optional[int] = None,
    ) -> WebhookLog:
        logger.warning(f"Webhook log {log_entry.id} failed: {error}")
        return await self._finish(log_entry, WebhookStatus.FAILED, error, product_id)

    async def get_logs(self, store_id: int, limit: Optional[int] = None) -> List[WebhookLog]:
        limit = limit or get_settings().WEBHOOK_LOG_DEFAULT_LIMIT
        result = await self.db.execute(
            select(WebhookLog)
            .where(WebhookLog.store_id == store_id)
            .order_by(WebhookLog.created_at.desc(), WebhookLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_stats(self, store_id: int, days: int = 7) -> WebhookStats:
        since = utcnow() - timedelta(days=days)
        window = (WebhookLog.store_id == store_id, WebhookLog.created_at >= since)

        status_rows = await self.db.execute(
            select(WebhookLog.status, func.count(WebhookLog.id))
            .where(*window)
            .group_by(WebhookLog.status)
        )
        by_status = {status: count for status, count in status_rows.all()}

        event_rows = await self.db.execute(
            select(WebhookLog.event_type, func.count(WebhookLog.id))
            .where(*window)
            .group_by(WebhookLog.event_type)
            .order_by(WebhookLog.event_type)
        )

        total = sum(by_status.values())
        successful = by_status.get(WebhookStatus.SUCCESS.value, 0)
        failed = by_status.get(WebhookStatus.FAILED.value, 0)

        return WebhookStats(
            total=total,
            successful=successful,
            failed=failed,
            success_rate=round(successful / total * 100) if total else 0,
            by_event=[EventCount(event=event, count=count) for event, count in event_rows.all()],
        )
