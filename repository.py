"""
Touchpoint Repository
=====================

Read adapter between the record store and the attribution core. Turns
opportunity and activity rows into immutable Opportunity snapshots, filtered
to a date window.

Failures come back as typed exceptions (OpportunityNotFoundError,
StoreUnavailableError, InvalidRecordError) rather than empty defaults, so
callers can decide whether to skip the opportunity or fail.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import List, Optional

import pandas as pd

from db import Database
from exceptions import InvalidRecordError, OpportunityNotFoundError, StoreUnavailableError, ValidationError
from models import (
    DateRange,
    Opportunity,
    Touchpoint,
    map_activity_type,
    map_lead_source,
    lead_source_touchpoint_id
)

logger = logging.getLogger(__name__)


def parse_timestamp(value) -> datetime:
    """Parse a stored timestamp. Aware values are converted to naive UTC."""
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class TouchpointRepository:
    """Repository for collecting opportunity touchpoints from the store."""

    def __init__(self, db: Database):
        self.db = db

    def _read(self, sql: str, params: tuple, operation: str, opportunity_id: str = None) -> pd.DataFrame:
        try:
            return self.db.read_sql(sql, params)
        except Exception as e:
            raise StoreUnavailableError(
                f"Store read failed during {operation}: {e}",
                opportunity_id=opportunity_id,
                operation=operation
            ) from e

    # ========================================================================
    # Reads
    # ========================================================================

    def list_opportunity_ids(
        self,
        tenant_id: str,
        date_range: DateRange,
        owner_id: Optional[str] = None,
        stage: Optional[str] = None
    ) -> List[str]:
        """
        IDs of the tenant's won opportunities that closed inside the window.
        """
        sql = """
            SELECT opportunity_id FROM opportunities
            WHERE tenant_id = ?
              AND status = 'WON'
              AND substr(actual_close_date, 1, 10) >= ?
              AND substr(actual_close_date, 1, 10) <= ?
        """
        params = [tenant_id, date_range.start.isoformat(), date_range.end.isoformat()]

        if owner_id:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        if stage:
            sql += " AND stage = ?"
            params.append(stage)

        sql += " ORDER BY actual_close_date, opportunity_id"

        df = self._read(sql, tuple(params), "list_opportunities")
        ids = [str(opp_id) for opp_id in df["opportunity_id"]]
        logger.debug(f"Tenant {tenant_id}: {len(ids)} won opportunities closed in {date_range.to_dict()}")
        return ids

    def fetch_opportunity_touchpoints(
        self,
        opportunity_id: str,
        date_range: DateRange,
        tenant_id: Optional[str] = None
    ) -> Opportunity:
        """
        Load an opportunity with its touchpoints inside the window.

        An opportunity whose touchpoints all fall outside the window comes
        back with an empty touchpoint tuple; that is not an error.

        Raises:
            OpportunityNotFoundError: no such opportunity (for this tenant)
            StoreUnavailableError: the store could not be read
            InvalidRecordError: a stored row has an unparsable timestamp or
                an invalid amount
        """
        sql = "SELECT * FROM opportunities WHERE opportunity_id = ?"
        params = [opportunity_id]
        if tenant_id is not None:
            sql += " AND tenant_id = ?"
            params.append(tenant_id)

        opp = self._read(sql, tuple(params), "fetch_opportunity", opportunity_id)
        if opp.empty:
            raise OpportunityNotFoundError(opportunity_id)

        activities = self._read("""
            SELECT activity_id, activity_type, subject, created_at
            FROM activities
            WHERE opportunity_id = ?
            ORDER BY created_at, activity_id
        """, (opportunity_id,), "fetch_activities", opportunity_id)

        try:
            return self._to_snapshot(opportunity_id, opp.iloc[0], activities, date_range)
        except (ValueError, TypeError, ValidationError) as e:
            raise InvalidRecordError(
                f"Unreadable store record for opportunity {opportunity_id}: {e}",
                opportunity_id=opportunity_id,
                cause=type(e).__name__
            ) from e

    def _to_snapshot(
        self,
        opportunity_id: str,
        row: pd.Series,
        activities: pd.DataFrame,
        date_range: DateRange
    ) -> Opportunity:
        touchpoints = []

        lead_source = row.get("lead_source")
        if lead_source and not pd.isna(lead_source):
            touchpoints.append(Touchpoint(
                id=lead_source_touchpoint_id(opportunity_id),
                opportunity_id=opportunity_id,
                type=map_lead_source(lead_source),
                timestamp=parse_timestamp(row["created_at"]),
                description=f"Lead source: {lead_source}"
            ))

        for activity in activities.itertuples(index=False):
            touchpoints.append(Touchpoint(
                id=str(activity.activity_id),
                opportunity_id=opportunity_id,
                type=map_activity_type(activity.activity_type),
                timestamp=parse_timestamp(activity.created_at),
                description=activity.subject if isinstance(activity.subject, str) else activity.activity_type
            ))

        in_range = [tp for tp in touchpoints if date_range.contains(tp.timestamp)]
        if touchpoints and not in_range:
            logger.info(f"Opportunity {opportunity_id}: all {len(touchpoints)} touchpoints outside window")

        return Opportunity(
            id=opportunity_id,
            name=str(row["opportunity_name"]),
            total_value=float(row["amount"]),
            touchpoints=tuple(in_range)
        )

    # ========================================================================
    # Writes (seeding and tests)
    # ========================================================================

    def add_opportunity(
        self,
        tenant_id: str,
        opportunity_id: str,
        name: str,
        amount: float,
        status: str = "WON",
        stage: Optional[str] = None,
        owner_id: Optional[str] = None,
        lead_source: Optional[str] = None,
        created_at: Optional[datetime] = None,
        actual_close_date: Optional[str] = None
    ) -> str:
        """Insert an opportunity and return its ID."""
        if amount is None or amount < 0:
            raise ValidationError("Opportunity amount must be non-negative", field="amount", value=amount)

        created_at = created_at or datetime.now()
        self.db.run_sql("""
            INSERT INTO opportunities(
                opportunity_id, tenant_id, opportunity_name, amount, status,
                stage, owner_id, lead_source, created_at, actual_close_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """, (
            opportunity_id, tenant_id, name, float(amount), status,
            stage, owner_id, lead_source, created_at.isoformat(), actual_close_date
        ))
        return opportunity_id

    def add_activity(
        self,
        opportunity_id: str,
        activity_type: str,
        created_at: datetime,
        subject: Optional[str] = None,
        activity_id: Optional[str] = None
    ) -> str:
        """Record an activity against an opportunity and return its ID."""
        activity_id = activity_id or str(uuid.uuid4())
        self.db.run_sql("""
            INSERT INTO activities(activity_id, opportunity_id, activity_type, subject, created_at)
            VALUES (?, ?, ?, ?, ?);
        """, (activity_id, opportunity_id, activity_type, subject, created_at.isoformat()))
        return activity_id
