"""
Grooming Efficiency Aggregator

Weekly snapshot of how much meeting grooming the qualification engine did
on a user's behalf.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..core.database import DatabaseManager, GroomingMetrics, Meeting
from ..qualification.engine import is_automated_reason
from ..utils.time_utils import utc_now, week_bounds


logger = logging.getLogger(__name__)


# Minutes a person spends reviewing one meeting by hand
MINUTES_PER_REVIEW = 5


class GroomingEfficiencyAggregator:
    """
    Usage:
        aggregator = GroomingEfficiencyAggregator(db)
        metrics = aggregator.compute_week(user_id, week_start)
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def run_current_week(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Recompute the current week for every user."""
        week_start, _ = week_bounds(now or utc_now())
        stats = {"users": 0, "errors": 0}

        for user_id in self.db.get_all_user_ids():
            try:
                self.compute_week(user_id, week_start)
                stats["users"] += 1
            except Exception as e:
                logger.error(f"Error computing grooming metrics for user {user_id}: {e}", exc_info=True)
                stats["errors"] += 1

        logger.info(f"Grooming metrics updated for {stats['users']} user(s) ({stats['errors']} errors)")
        return stats

    def compute_week(self, user_id: int, week_start: datetime) -> GroomingMetrics:
        """
        Compute and upsert metrics for the week containing week_start.

        Counts meetings created during [Monday 00:00, next Monday 00:00).
        """
        start, end = week_bounds(week_start)

        with self.db.get_session() as session:
            rows = (
                session.query(Meeting.status, Meeting.qualification_reason)
                .filter(
                    Meeting.user_id == user_id,
                    Meeting.created_at >= start,
                    Meeting.created_at < start + timedelta(days=7),
                )
                .all()
            )

        values = self._summarize(rows)

        session = self.db.get_session()
        try:
            metrics = self._upsert(session, user_id, start, end, values)
            session.commit()
        except IntegrityError:
            # Another writer inserted the same week first
            session.rollback()
            metrics = self._upsert(session, user_id, start, end, values)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.debug(f"Grooming metrics for user {user_id} week {start:%Y-%m-%d}: {values}")
        return metrics

    @staticmethod
    def _summarize(rows) -> Dict[str, Any]:
        total = len(rows)
        qualified = sum(1 for r in rows if r.status == "qualified")
        disqualified = sum(1 for r in rows if r.status == "disqualified")
        needs_review = sum(1 for r in rows if r.status == "needs_review")
        auto_qualified = sum(
            1 for r in rows if r.status == "qualified" and is_automated_reason(r.qualification_reason)
        )
        auto_disqualified = sum(
            1 for r in rows if r.status == "disqualified" and is_automated_reason(r.qualification_reason)
        )
        automated = auto_qualified + auto_disqualified

        return {
            "total_meetings": total,
            "qualified_meetings": qualified,
            "disqualified_meetings": disqualified,
            "auto_qualified_meetings": auto_qualified,
            "auto_disqualified_meetings": auto_disqualified,
            "needs_review_meetings": needs_review,
            "time_saved_minutes": automated * MINUTES_PER_REVIEW,
            "time_spent_grooming_minutes": needs_review * MINUTES_PER_REVIEW,
            "automation_accuracy": (automated / total * 100) if total else 0.0,
        }

    @staticmethod
    def _upsert(session, user_id: int, start: datetime, end: datetime, values: Dict[str, Any]) -> GroomingMetrics:
        metrics = session.query(GroomingMetrics).filter_by(user_id=user_id, week_start=start).first()
        if metrics is None:
            metrics = GroomingMetrics(user_id=user_id, week_start=start, week_end=end)
            session.add(metrics)
        for key, value in values.items():
            setattr(metrics, key, value)
        metrics.week_end = end
        metrics.updated_at = utc_now()
        session.flush()
        return metrics

    def get_weekly_metrics(self, user_id: int, week_start: Optional[datetime] = None) -> Optional[GroomingMetrics]:
        """Stored metrics for one week (current week by default)."""
        start, _ = week_bounds(week_start or utc_now())
        with self.db.get_session() as session:
            return session.query(GroomingMetrics).filter_by(user_id=user_id, week_start=start).first()

    def get_historical_metrics(
        self, user_id: int, weeks: int = 12, now: Optional[datetime] = None
    ) -> List[GroomingMetrics]:
        """Stored weeks starting within the last `weeks` weeks, oldest first."""
        since = (now or utc_now()) - timedelta(weeks=weeks)
        with self.db.get_session() as session:
            return (
                session.query(GroomingMetrics)
                .filter(GroomingMetrics.user_id == user_id, GroomingMetrics.week_start >= since)
                .order_by(GroomingMetrics.week_start)
                .all()
            )

    def get_team_report(self, user_ids: List[int], weeks: int = 4, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Per-user and team totals over the last `weeks` weeks.

        Users with no stored weeks are left out of the per-user list.
        """
        team_metrics = []
        for user_id in user_ids:
            history = self.get_historical_metrics(user_id, weeks, now)
            if not history:
                continue
            team_metrics.append(
                {
                    "user_id": user_id,
                    "total_time_saved_minutes": sum(m.time_saved_minutes for m in history),
                    "total_meetings_processed": sum(m.total_meetings for m in history),
                    "average_accuracy": round(sum(m.automation_accuracy for m in history) / len(history), 2),
                    "weeks_tracked": len(history),
                }
            )

        return {
            "team_metrics": team_metrics,
            "summary": {
                "total_time_saved": sum(m["total_time_saved_minutes"] for m in team_metrics),
                "total_meetings": sum(m["total_meetings_processed"] for m in team_metrics),
                "average_team_accuracy": (
                    round(sum(m["average_accuracy"] for m in team_metrics) / len(team_metrics), 2)
                    if team_metrics
                    else 0.0
                ),
            },
        }
