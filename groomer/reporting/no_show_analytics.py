"""
No-show analytics.

Read-only breakdown of a user's no-shows by hour, industry, company size
and revenue.
"""

import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func

from ..core.database import DatabaseManager, Meeting


logger = logging.getLogger(__name__)


UNKNOWN = "Unknown"


def company_size_bucket(size: Optional[int]) -> str:
    if size is None:
        return UNKNOWN
    if size <= 10:
        return "1-10"
    if size <= 50:
        return "11-50"
    if size <= 200:
        return "51-200"
    if size <= 1000:
        return "201-1000"
    return "1000+"


def revenue_bucket(revenue: Optional[Decimal]) -> str:
    if revenue is None:
        return UNKNOWN
    if revenue < 1_000_000:
        return "<$1M"
    if revenue < 10_000_000:
        return "$1M-$10M"
    if revenue < 50_000_000:
        return "$10M-$50M"
    return "$50M+"


class NoShowAnalytics:
    """
    Usage:
        analytics = NoShowAnalytics(db)
        report = analytics.get_no_show_analytics(user_id)
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def get_no_show_analytics(
        self, user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        No-show counts for meetings originally scheduled in [start, end).

        A rescheduled meeting is placed at its original start time, where the
        no-show happened.

        Returns:
            Dictionary with total_meetings, total_no_shows, no_show_rate and
            by_hour / by_industry / by_company_size / by_revenue counts
        """
        scheduled_at = func.coalesce(Meeting.original_meeting_time, Meeting.start_time)

        with self.db.get_session() as session:
            query = session.query(
                Meeting.status,
                Meeting.no_show_marked_at,
                scheduled_at.label("scheduled_at"),
                Meeting.industry,
                Meeting.company_size,
                Meeting.revenue,
            ).filter(Meeting.user_id == user_id)
            if start is not None:
                query = query.filter(scheduled_at >= start)
            if end is not None:
                query = query.filter(scheduled_at < end)
            rows = query.all()

        # Rescheduled meetings keep their no-show marker after leaving the no_show status
        no_shows = [r for r in rows if r.status == "no_show" or r.no_show_marked_at is not None]

        by_hour = Counter(r.scheduled_at.hour for r in no_shows)
        by_industry = Counter((r.industry or "").strip() or UNKNOWN for r in no_shows)
        by_company_size = Counter(company_size_bucket(r.company_size) for r in no_shows)
        by_revenue = Counter(revenue_bucket(r.revenue) for r in no_shows)

        total = len(rows)
        return {
            "total_meetings": total,
            "total_no_shows": len(no_shows),
            "no_show_rate": round(len(no_shows) / total * 100, 2) if total else 0.0,
            "by_hour": dict(sorted(by_hour.items())),
            "by_industry": dict(by_industry.most_common()),
            "by_company_size": dict(by_company_size),
            "by_revenue": dict(by_revenue),
        }
