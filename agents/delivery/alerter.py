"""
Alert classification and notification fan-out.

Turns scored opportunities into MatchAlerts and formats the notification
sent for each one.
"""
from datetime import datetime
from typing import Optional

import structlog

from agents.matching.models import CompanyProfile, ScoredOpportunity

from .channels import NotificationSink
from .models import AlertPriority, AlertType, MatchAlert, NotificationPayload

NOTIFICATION_TITLE = "BidRadar Opportunity Match"


class AlertBuilder:
    """Classifies matches and builds alert notifications."""

    HIGH_MATCH_THRESHOLD = 90.0
    URGENT_DEADLINE_THRESHOLD = 0.7

    def __init__(self, sink: Optional[NotificationSink] = None):
        self.sink = sink
        self.logger = structlog.get_logger().bind(agent="alerter")

    @classmethod
    def classify(cls, scored: ScoredOpportunity) -> tuple[AlertType, AlertPriority]:
        """
        Rules, first match wins:
        - score >= 90: high_match / high
        - set-aside match: set_aside_match / high
        - deadline urgency >= 0.7: deadline_approaching / high
        - otherwise: new_opportunity / medium
        """
        if scored.score >= cls.HIGH_MATCH_THRESHOLD:
            return AlertType.HIGH_MATCH, AlertPriority.HIGH
        if scored.factors.set_aside_match:
            return AlertType.SET_ASIDE_MATCH, AlertPriority.HIGH
        if scored.factors.deadline_urgency >= cls.URGENT_DEADLINE_THRESHOLD:
            return AlertType.DEADLINE_APPROACHING, AlertPriority.HIGH
        return AlertType.NEW_OPPORTUNITY, AlertPriority.MEDIUM

    def build_alert(
        self,
        profile: CompanyProfile,
        scored: ScoredOpportunity,
        created_at: Optional[datetime] = None,
    ) -> MatchAlert:
        alert_type, priority = self.classify(scored)
        alert = MatchAlert(
            profile_id=profile.id,
            opportunity_id=scored.opportunity.id,
            opportunity=scored.opportunity.model_copy(deep=True),
            match_score=scored.score,
            relevance_factors=scored.factors,
            alert_type=alert_type,
            priority=priority,
        )
        if created_at is not None:
            alert.created_at = created_at
        return alert

    @staticmethod
    def format_message(alert: MatchAlert) -> str:
        title = alert.opportunity.title
        score = round(alert.match_score)
        if alert.alert_type == AlertType.HIGH_MATCH:
            return f"High match ({score}%): {title}"
        if alert.alert_type == AlertType.SET_ASIDE_MATCH:
            return f"Set-aside opportunity: {title}"
        if alert.alert_type == AlertType.DEADLINE_APPROACHING:
            return f"Deadline approaching: {title}"
        return f"New opportunity ({score}%): {title}"

    def build_notification(self, alert: MatchAlert) -> NotificationPayload:
        return NotificationPayload(
            title=NOTIFICATION_TITLE,
            body=self.format_message(alert),
            alert_id=alert.id,
            profile_id=alert.profile_id,
            priority=alert.priority,
        )

    async def notify(self, alerts: list[MatchAlert]) -> int:
        """Send one notification per alert. Returns how many were delivered."""
        if self.sink is None:
            return 0

        delivered = 0
        for alert in alerts:
            try:
                await self.sink.send(self.build_notification(alert))
                delivered += 1
            except Exception as e:
                self.logger.error(
                    "notification_failed",
                    alert_id=alert.id,
                    profile_id=alert.profile_id,
                    error=str(e),
                )
        return delivered
