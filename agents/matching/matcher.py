"""
Real-Time Opportunity Matcher
Periodically re-scores the opportunity corpus against company profiles and
raises deduplicated alerts.

Pipeline per cycle:
1. Fetch the current opportunity corpus from the vector store
2. Score every opportunity against the profile
3. Keep scores >= min_match_score, highest first
4. Skip opportunities that already have an alert for the profile
5. Classify, store (bounded per profile) and notify
"""
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, Field

from agents.delivery.alert_store import AlertStore
from agents.delivery.alerter import AlertBuilder
from agents.delivery.models import MatchAlert
from backend.core.config import Settings
from backend.core.scheduler import IntervalTicker, PeriodicRunner, Ticker
from backend.services.vector_store import OpportunityCorpus

from .models import CompanyProfile, ScoredOpportunity
from .scorer import RelevanceScorer


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchingConfig(BaseModel):
    """Runtime settings of the matching loop."""

    check_interval: float = Field(default=300, gt=0, description="Seconds between cycles")
    min_match_score: float = Field(default=70, ge=0, le=100)
    max_alerts_per_profile: int = Field(default=10, ge=1)
    enable_notifications: bool = True
    auto_refresh: bool = Field(
        default=True,
        description="Keep re-running cycles after the first; off means one cycle per start",
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "MatchingConfig":
        return cls(
            check_interval=settings.matching_check_interval,
            min_match_score=settings.matching_min_score,
            max_alerts_per_profile=settings.matching_max_alerts_per_profile,
            enable_notifications=settings.matching_enable_notifications,
            auto_refresh=settings.matching_auto_refresh,
        )


class MatcherStats(BaseModel):
    is_running: bool
    total_alerts: int
    active_profiles: int
    last_check: Optional[datetime] = None


class OpportunityMatcher:
    """
    Per-profile matching loops plus the alert stores they feed.

    Each profile has at most one loop. Cycles of one profile never overlap;
    different profiles run independently. Stopping a loop lets a cycle in
    flight finish before its alerts are discarded.
    """

    def __init__(
        self,
        corpus: OpportunityCorpus,
        scorer: Optional[RelevanceScorer] = None,
        alerter: Optional[AlertBuilder] = None,
        config: Optional[MatchingConfig] = None,
        ticker_factory: Callable[[float], Ticker] = IntervalTicker,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.corpus = corpus
        self.scorer = scorer or RelevanceScorer()
        self.alerter = alerter or AlertBuilder()
        self.config = config or MatchingConfig()
        self._ticker_factory = ticker_factory
        self._clock = clock

        self._loops: dict[str, PeriodicRunner] = {}
        self._profiles: dict[str, CompanyProfile] = {}
        self._stores: dict[str, AlertStore] = {}
        self.last_check: Optional[datetime] = None

        self.logger = structlog.get_logger().bind(agent="matcher")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def is_running(self, profile_id: Optional[str] = None) -> bool:
        if profile_id is None:
            return any(loop.running for loop in self._loops.values())
        loop = self._loops.get(profile_id)
        return loop is not None and loop.running

    async def start_matching(self, profile: CompanyProfile) -> bool:
        """
        Start the loop for ``profile``.

        Returns False (and logs a warning) when a loop is already running for
        that profile. With auto_refresh off a single cycle runs instead.
        """
        if self.is_running(profile.id):
            self.logger.warning("matching_already_running", profile_id=profile.id)
            return False

        self._profiles[profile.id] = profile

        if not self.config.auto_refresh:
            await self.run_cycle(profile)
            return True

        runner = PeriodicRunner(
            lambda: self._run_profile_cycle(profile.id),
            self._ticker_factory(self.config.check_interval),
            name=f"matching:{profile.id}",
        )
        self._loops[profile.id] = runner
        runner.start()

        self.logger.info(
            "matching_started",
            profile_id=profile.id,
            check_interval=self.config.check_interval,
        )
        return True

    async def stop_matching(self, profile_id: str, clear_alerts: bool = True) -> bool:
        """
        Stop the loop for ``profile_id``.

        No further cycles start. A cycle already running is awaited, then
        the profile's alerts are cleared unless ``clear_alerts`` is False.
        Alerts are cleared even when no loop was running (auto_refresh off).
        Returns whether a loop was stopped.
        """
        runner = self._loops.pop(profile_id, None)
        if runner is not None:
            runner.stop()
            await runner.join()

        if clear_alerts:
            await self.clear_alerts(profile_id)
            self._profiles.pop(profile_id, None)

        if runner is None:
            return False

        self.logger.info("matching_stopped", profile_id=profile_id, cycles=runner.cycles_completed)
        return True

    async def close(self) -> None:
        """Stop every loop, keeping alerts."""
        for profile_id in list(self._loops):
            await self.stop_matching(profile_id, clear_alerts=False)

    # =========================================================================
    # Cycles
    # =========================================================================

    def _store_for(self, profile_id: str) -> AlertStore:
        if profile_id not in self._stores:
            self._stores[profile_id] = AlertStore(profile_id, capacity=self.config.max_alerts_per_profile)
        return self._stores[profile_id]

    async def _run_profile_cycle(self, profile_id: str) -> None:
        profile = self._profiles.get(profile_id)
        if profile is None:
            return
        try:
            await self.run_cycle(profile)
        except Exception as e:
            self.logger.error("matching_cycle_failed", profile_id=profile_id, error=str(e), exc_info=True)

    def _score_candidates(self, profile: CompanyProfile, opportunities: list, now: datetime) -> list[ScoredOpportunity]:
        matches = []
        for opportunity in opportunities:
            try:
                scored = self.scorer.score_opportunity(opportunity, profile, now=now)
            except Exception as e:
                self.logger.warning(
                    "opportunity_scoring_failed",
                    profile_id=profile.id,
                    opportunity_id=getattr(opportunity, "id", None),
                    error=str(e),
                )
                continue
            if scored.score >= self.config.min_match_score:
                matches.append(scored)

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    async def run_cycle(self, profile: CompanyProfile) -> list[MatchAlert]:
        """
        Run one matching cycle for ``profile``.

        Returns the alerts added to the profile's store.
        """
        now = self._clock()
        opportunities = await self.corpus.list_opportunities()
        matches = self._score_candidates(profile, opportunities, now)

        store = self._store_for(profile.id)
        candidates = [
            self.alerter.build_alert(profile, match, created_at=now)
            for match in matches
            if not store.has_opportunity(match.opportunity.id)
        ]
        new_alerts = await store.add_batch(candidates)
        self.last_check = now

        notified = 0
        if new_alerts and self.config.enable_notifications:
            notified = await self.alerter.notify(new_alerts)

        self.logger.info(
            "matching_cycle_complete",
            profile_id=profile.id,
            opportunities_scored=len(opportunities),
            matches=len(matches),
            new_alerts=len(new_alerts),
            notifications_sent=notified,
        )
        return new_alerts

    # =========================================================================
    # Alerts
    # =========================================================================

    def get_alerts(self, profile_id: str) -> list[MatchAlert]:
        store = self._stores.get(profile_id)
        return store.alerts() if store else []

    async def mark_alert_read(self, profile_id: str, alert_id: str) -> bool:
        store = self._stores.get(profile_id)
        return await store.mark_read(alert_id) if store else False

    async def mark_alert_action_taken(self, profile_id: str, alert_id: str, action: str) -> bool:
        store = self._stores.get(profile_id)
        return await store.mark_action_taken(alert_id, action) if store else False

    async def clear_alerts(self, profile_id: str) -> None:
        store = self._stores.pop(profile_id, None)
        if store is not None:
            await store.clear()

    # =========================================================================
    # Configuration and stats
    # =========================================================================

    async def update_config(self, **changes) -> MatchingConfig:
        """
        Apply configuration changes.

        A new max_alerts_per_profile resizes existing stores; a new
        check_interval restarts running loops with the new period.
        """
        previous = self.config
        self.config = MatchingConfig.model_validate({**previous.model_dump(), **changes})

        if self.config.max_alerts_per_profile != previous.max_alerts_per_profile:
            for store in self._stores.values():
                await store.resize(self.config.max_alerts_per_profile)

        if self.config.check_interval != previous.check_interval:
            for profile_id in [pid for pid in self._loops if self.is_running(pid)]:
                profile = self._profiles[profile_id]
                await self.stop_matching(profile_id, clear_alerts=False)
                await self.start_matching(profile)

        self.logger.info("matching_config_updated", **changes)
        return self.config

    def get_stats(self) -> MatcherStats:
        return MatcherStats(
            is_running=self.is_running(),
            total_alerts=sum(len(store) for store in self._stores.values()),
            active_profiles=sum(1 for pid in self._loops if self.is_running(pid)),
            last_check=self.last_check,
        )
