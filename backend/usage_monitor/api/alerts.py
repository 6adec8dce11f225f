"""Alert CRUD and history API endpoints."""

import json
import logging
import time
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_aggregate_db
from ..models.alert import Alert, AlertHistory
from ..schemas.alert import (
    AlertCreate,
    AlertToggle,
    AlertResponse,
    AlertCreateResponse,
    AlertHistoryResponse,
    AlertTypeInfo,
)
from ..middleware.auth import verify_access
from ..services.alerter import ALERT_TYPES

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/alerts", tags=["Alerts"])


def _to_response(alert: Alert) -> AlertResponse:
    # Rows written by older versions may hold rules that no longer parse; return them raw
    try:
        rule = json.loads(alert.rule_json) if alert.rule_json else None
    except ValueError:
        rule = alert.rule_json

    return AlertResponse(
        id=alert.id,
        name=alert.name,
        rule=rule,
        enabled=bool(alert.enabled),
        start_time=alert.start_time,
        end_time=alert.end_time,
        notify_telegram=bool(alert.notify_telegram),
        trigger_action=alert.trigger_action,
        last_triggered=alert.last_triggered,
        last_value=alert.last_value,
        trigger_count=alert.trigger_count or 0,
        created_at=alert.created_at,
    )


async def _get_alert_or_404(db: AsyncSession, alert_id: int) -> Alert:
    result = await db.execute(select(Alert).where(Alert.id == alert_id))
    alert = result.scalar_one_or_none()
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.get("", response_model=List[AlertResponse])
async def list_alerts(
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """List all alerts, newest first."""
    result = await db.execute(select(Alert).order_by(Alert.id.desc()))
    return [_to_response(a) for a in result.scalars().all()]


@router.get("/history", response_model=List[AlertHistoryResponse])
async def alert_history(
    limit: int = Query(100, ge=1, le=1000),
    alert_id: Optional[int] = None,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Recent alert firings, newest first."""
    query = select(AlertHistory)
    if alert_id is not None:
        query = query.where(AlertHistory.alert_id == alert_id)
    query = query.order_by(AlertHistory.triggered_at.desc(), AlertHistory.id.desc()).limit(limit)

    result = await db.execute(query)
    return [AlertHistoryResponse.model_validate(h) for h in result.scalars().all()]


@router.get("/types", response_model=List[AlertTypeInfo])
async def alert_types(_: bool = Depends(verify_access)):
    """Supported alert types."""
    return ALERT_TYPES


@router.post("", response_model=AlertCreateResponse)
async def create_alert(
    data: AlertCreate,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Create a new alert. The rule is validated before it is stored."""
    alert = Alert(
        name=data.name,
        rule_json=json.dumps(data.rule.to_document()),
        enabled=data.enabled,
        start_time=data.start_time,
        end_time=data.end_time,
        notify_telegram=data.notify_telegram,
        trigger_action=data.trigger_action,
        last_triggered=0,
        trigger_count=0,
        created_at=int(time.time()),
    )

    db.add(alert)
    await db.commit()
    await db.refresh(alert)

    logger.info(f"Created alert: {alert.id} ({data.name})")

    return AlertCreateResponse(id=alert.id)


@router.put("/{alert_id}", response_model=AlertResponse)
async def update_alert(
    alert_id: int,
    data: AlertCreate,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Replace an alert's definition. Trigger bookkeeping is kept."""
    alert = await _get_alert_or_404(db, alert_id)

    alert.name = data.name
    alert.rule_json = json.dumps(data.rule.to_document())
    alert.enabled = data.enabled
    alert.start_time = data.start_time
    alert.end_time = data.end_time
    alert.notify_telegram = data.notify_telegram
    alert.trigger_action = data.trigger_action

    await db.commit()
    await db.refresh(alert)

    logger.info(f"Updated alert: {alert_id}")

    return _to_response(alert)


@router.patch("/{alert_id}/toggle", response_model=AlertResponse)
async def toggle_alert(
    alert_id: int,
    data: AlertToggle,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Enable or disable an alert."""
    alert = await _get_alert_or_404(db, alert_id)
    alert.enabled = data.enabled

    await db.commit()
    await db.refresh(alert)

    logger.info(f"{'Enabled' if data.enabled else 'Disabled'} alert: {alert_id}")

    return _to_response(alert)


@router.delete("/{alert_id}")
async def delete_alert(
    alert_id: int,
    _: bool = Depends(verify_access),
    db: AsyncSession = Depends(get_aggregate_db)
):
    """Delete an alert. Its history is kept until retention removes it."""
    alert = await _get_alert_or_404(db, alert_id)

    await db.delete(alert)
    await db.commit()

    logger.info(f"Deleted alert: {alert_id}")

    return {"message": "Alert deleted", "id": alert_id}
