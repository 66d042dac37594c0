"""Read-side owner metrics: status counts, activity timeline, and funnel."""

from collections import Counter
from datetime import timedelta

from sqlalchemy import case, func, or_, select

from onceview.common.db import as_utc, unit_of_work, utcnow
from onceview.common.errors import ValidationError
from onceview.common.state_machine import ACTIVE, EXPIRED, TOKEN_STATUSES, VIEWED
from onceview.services.responses.models import ViewerResponse
from onceview.services.tokens.models import TokenActivityLog, VideoToken
from onceview.services.tokens.store import ACTIVITY_TYPES


def _rate(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator, 4)


class AnalyticsService:
    """Derives per-owner metrics without mutating any record."""

    def __init__(self, session_factory, clock=utcnow) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def get_owner_metrics(self, owner_id: str, days: int = 30) -> dict:
        """Compute status counts, daily activity, funnel, and conversion rates.

        Active tokens past their expiry are reported as expired here; the
        stored status flips only on the next write-path read.
        """

        if not 1 <= days <= 365:
            raise ValidationError("days", "must be between 1 and 365")
        now = self.clock()
        with unit_of_work(self.session_factory, "get_owner_metrics") as db:
            owner_tokens = select(VideoToken.id).where(VideoToken.owner_id == owner_id)

            status_counts = {status: 0 for status in TOKEN_STATUSES}
            for status, count in db.execute(
                select(VideoToken.status, func.count())
                .where(VideoToken.owner_id == owner_id)
                .group_by(VideoToken.status)
            ).all():
                status_counts[status] = count
            overdue = db.execute(
                select(func.count())
                .select_from(VideoToken)
                .where(
                    VideoToken.owner_id == owner_id,
                    VideoToken.status == ACTIVE,
                    VideoToken.expires_at < now,
                )
            ).scalar_one()
            status_counts[ACTIVE] -= overdue
            status_counts[EXPIRED] += overdue

            since = now - timedelta(days=days)
            buckets: dict[str, Counter] = {}
            for activity_type, created_at in db.execute(
                select(TokenActivityLog.activity_type, TokenActivityLog.created_at).where(
                    or_(
                        TokenActivityLog.video_token_id.in_(owner_tokens),
                        TokenActivityLog.profile_id == owner_id,
                    ),
                    TokenActivityLog.created_at >= since,
                )
            ).all():
                day = as_utc(created_at).date().isoformat()
                buckets.setdefault(day, Counter())[activity_type] += 1
            timeline = [
                {"date": day, **{kind: buckets[day][kind] for kind in ACTIVITY_TYPES}}
                for day in sorted(buckets)
            ]

            profile_views = db.execute(
                select(func.count())
                .select_from(TokenActivityLog)
                .where(
                    TokenActivityLog.profile_id == owner_id,
                    TokenActivityLog.log_type == "profile_token",
                    TokenActivityLog.activity_type == "viewed",
                )
            ).scalar_one()
            video_views = status_counts[VIEWED]
            total_responses, interested_responses = db.execute(
                select(
                    func.count(ViewerResponse.id),
                    func.sum(case((ViewerResponse.interest_level == "interested", 1), else_=0)),
                ).where(
                    or_(
                        ViewerResponse.profile_id == owner_id,
                        ViewerResponse.video_token_id.in_(owner_tokens),
                    )
                )
            ).one()
            total_responses = int(total_responses or 0)
            interested_responses = int(interested_responses or 0)

        return {
            "status_counts": status_counts,
            "activity_timeline": timeline,
            "funnel": {
                "profile_views": profile_views,
                "video_views": video_views,
                "total_responses": total_responses,
                "interested_responses": interested_responses,
            },
            "conversion": {
                "response_rate": _rate(total_responses, profile_views + video_views),
                "interest_rate": _rate(interested_responses, total_responses),
            },
        }
