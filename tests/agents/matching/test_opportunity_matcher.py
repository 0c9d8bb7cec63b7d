"""
Tests for OpportunityMatcher.

Loops are driven with ManualTicker so each cycle runs on demand.
"""
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from agents.delivery.channels import CallbackNotificationSink
from agents.matching.matcher import MatchingConfig
from backend.core.scheduler import ManualTicker
from backend.services.context import ServiceContext
from tests.conftest import FIXED_NOW, make_opportunity, make_settings


def qualifying_opportunity(opportunity_id: str, **overrides):
    fields = {
        "title": f"AI Development {opportunity_id}",
        "synopsis": "Machine learning platform build-out",
        "naics_code": "541511",
        "set_aside": "Small Business",
        "state": "MD",
        "response_deadline": FIXED_NOW + timedelta(days=20),
    }
    fields.update(overrides)
    return make_opportunity(opportunity_id, **fields)


def weak_opportunity(opportunity_id: str):
    return make_opportunity(opportunity_id, title="Routine janitorial cleaning", naics_code="561720", state="TX")


@pytest_asyncio.fixture
async def harness():
    tickers = []
    notifications = []

    def ticker_factory(interval):
        ticker = ManualTicker()
        tickers.append(ticker)
        return ticker

    async def collect(payload):
        notifications.append(payload)

    context = ServiceContext.create(
        make_settings(),
        sink=CallbackNotificationSink(collect),
        ticker_factory=ticker_factory,
        clock=lambda: FIXED_NOW,
    )
    yield SimpleNamespace(
        context=context,
        matcher=context.matcher,
        corpus=context.corpus,
        tickers=tickers,
        notifications=notifications,
    )
    await context.close()


class TestRunCycle:
    """Tests for a single matching cycle."""

    @pytest.mark.asyncio
    async def test_scenario_opportunity_raises_alert(self, harness, sample_profile, sample_opportunity):
        await harness.corpus.add_opportunity(sample_opportunity)

        alerts = await harness.matcher.run_cycle(sample_profile)

        assert len(alerts) == 1
        assert alerts[0].opportunity_id == "opp-ai-001"
        assert alerts[0].match_score >= 65
        assert harness.matcher.get_alerts("acme") == alerts
        assert [n.body for n in harness.notifications] == ["Set-aside opportunity: AI Software Development"]

    @pytest.mark.asyncio
    async def test_below_threshold_not_alerted(self, harness, sample_profile):
        await harness.corpus.add_opportunities([weak_opportunity("weak-1"), qualifying_opportunity("good-1")])

        alerts = await harness.matcher.run_cycle(sample_profile)

        assert [a.opportunity_id for a in alerts] == ["good-1"]

    @pytest.mark.asyncio
    async def test_same_opportunity_alerted_once(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        first = await harness.matcher.run_cycle(sample_profile)
        second = await harness.matcher.run_cycle(sample_profile)

        assert len(first) == 1
        assert second == []
        assert len(harness.matcher.get_alerts("acme")) == 1
        assert len(harness.notifications) == 1

    @pytest.mark.asyncio
    async def test_store_capped_at_max_alerts(self, harness, sample_profile):
        await harness.corpus.add_opportunities([qualifying_opportunity(f"opp-{i:02d}") for i in range(11)])

        alerts = await harness.matcher.run_cycle(sample_profile)

        stored = harness.matcher.get_alerts("acme")
        assert len(alerts) == 10
        assert len(stored) == 10
        assert len({a.opportunity_id for a in stored}) == 10

    @pytest.mark.asyncio
    async def test_alerts_ordered_by_score(self, harness, sample_profile):
        await harness.corpus.add_opportunities([
            qualifying_opportunity("plain"),
            qualifying_opportunity("local", state="VA"),
        ])

        alerts = await harness.matcher.run_cycle(sample_profile)

        assert [a.opportunity_id for a in alerts] == ["local", "plain"]
        assert alerts[0].match_score > alerts[1].match_score

    @pytest.mark.asyncio
    async def test_scoring_failure_skips_only_that_opportunity(self, harness, sample_profile):
        await harness.corpus.add_opportunities([qualifying_opportunity("ok"), qualifying_opportunity("broken")])
        original = harness.matcher.scorer.score_opportunity

        def flaky(opportunity, profile, **kwargs):
            if opportunity.id == "broken":
                raise ValueError("bad record")
            return original(opportunity, profile, **kwargs)

        with patch.object(harness.matcher.scorer, "score_opportunity", side_effect=flaky):
            alerts = await harness.matcher.run_cycle(sample_profile)

        assert [a.opportunity_id for a in alerts] == ["ok"]

    @pytest.mark.asyncio
    async def test_notifications_disabled(self, harness, sample_profile):
        await harness.matcher.update_config(enable_notifications=False)
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        alerts = await harness.matcher.run_cycle(sample_profile)

        assert len(alerts) == 1
        assert harness.notifications == []

    @pytest.mark.asyncio
    async def test_empty_corpus(self, harness, sample_profile):
        assert await harness.matcher.run_cycle(sample_profile) == []
        assert harness.matcher.last_check == FIXED_NOW


class TestMatchingLoop:
    """Tests for starting, ticking and stopping per-profile loops."""

    @pytest.mark.asyncio
    async def test_start_runs_first_cycle_immediately(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        assert await harness.matcher.start_matching(sample_profile) is True
        await harness.tickers[0].wait_until_idle()

        assert harness.matcher.is_running("acme") is True
        assert len(harness.matcher.get_alerts("acme")) == 1

    @pytest.mark.asyncio
    async def test_tick_picks_up_new_opportunities(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await harness.matcher.start_matching(sample_profile)
        ticker = harness.tickers[0]
        await ticker.wait_until_idle()

        await harness.corpus.add_opportunity(qualifying_opportunity("opp-2"))
        await ticker.tick()

        assert [a.opportunity_id for a in harness.matcher.get_alerts("acme")] == ["opp-2", "opp-1"]

    @pytest.mark.asyncio
    async def test_second_start_is_a_no_op(self, harness, sample_profile):
        await harness.matcher.start_matching(sample_profile)

        assert await harness.matcher.start_matching(sample_profile) is False
        assert len(harness.tickers) == 1

    @pytest.mark.asyncio
    async def test_stop_clears_alerts(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await harness.matcher.start_matching(sample_profile)
        await harness.tickers[0].wait_until_idle()

        assert await harness.matcher.stop_matching("acme") is True

        assert harness.matcher.is_running("acme") is False
        assert harness.matcher.get_alerts("acme") == []

    @pytest.mark.asyncio
    async def test_stop_can_keep_alerts(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await harness.matcher.start_matching(sample_profile)
        await harness.tickers[0].wait_until_idle()

        await harness.matcher.stop_matching("acme", clear_alerts=False)

        assert len(harness.matcher.get_alerts("acme")) == 1

    @pytest.mark.asyncio
    async def test_stop_unknown_profile(self, harness):
        assert await harness.matcher.stop_matching("nobody") is False

    @pytest.mark.asyncio
    async def test_cycle_failure_does_not_kill_loop(self, harness, sample_profile):
        await harness.matcher.start_matching(sample_profile)
        ticker = harness.tickers[0]
        await ticker.wait_until_idle()

        with patch.object(harness.corpus, "list_opportunities", AsyncMock(side_effect=RuntimeError("store down"))):
            await ticker.tick()

        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await ticker.tick()

        assert harness.matcher.is_running("acme") is True
        assert len(harness.matcher.get_alerts("acme")) == 1

    @pytest.mark.asyncio
    async def test_profiles_run_independently(self, harness, sample_profile):
        other = sample_profile.model_copy(update={"id": "globex"})
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        await harness.matcher.start_matching(sample_profile)
        await harness.matcher.start_matching(other)
        for ticker in harness.tickers:
            await ticker.wait_until_idle()

        await harness.matcher.stop_matching("acme")

        assert harness.matcher.get_alerts("acme") == []
        assert len(harness.matcher.get_alerts("globex")) == 1
        assert harness.matcher.is_running("globex") is True

    @pytest.mark.asyncio
    async def test_auto_refresh_off_runs_single_cycle(self, harness, sample_profile):
        await harness.matcher.update_config(auto_refresh=False)
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        assert await harness.matcher.start_matching(sample_profile) is True

        assert harness.tickers == []
        assert harness.matcher.is_running("acme") is False
        assert len(harness.matcher.get_alerts("acme")) == 1

    @pytest.mark.asyncio
    async def test_stop_without_loop_still_clears_alerts(self, harness, sample_profile):
        await harness.matcher.update_config(auto_refresh=False)
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await harness.matcher.start_matching(sample_profile)

        assert await harness.matcher.stop_matching("acme") is False
        assert harness.matcher.get_alerts("acme") == []


class TestMatcherConfig:
    """Tests for runtime configuration and stats."""

    def test_from_settings(self):
        config = MatchingConfig.from_settings(make_settings(matching_min_score=80, matching_check_interval=60))

        assert config.min_match_score == 80
        assert config.check_interval == 60
        assert config.max_alerts_per_profile == 10

    @pytest.mark.asyncio
    async def test_raising_threshold_filters_matches(self, harness, sample_profile):
        await harness.matcher.update_config(min_match_score=99)
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))

        assert await harness.matcher.run_cycle(sample_profile) == []

    @pytest.mark.asyncio
    async def test_shrinking_capacity_truncates_stores(self, harness, sample_profile):
        await harness.corpus.add_opportunities([qualifying_opportunity(f"opp-{i}") for i in range(5)])
        await harness.matcher.run_cycle(sample_profile)

        await harness.matcher.update_config(max_alerts_per_profile=2)

        assert len(harness.matcher.get_alerts("acme")) == 2

    @pytest.mark.asyncio
    async def test_interval_change_restarts_loops(self, harness, sample_profile):
        await harness.matcher.start_matching(sample_profile)
        await harness.tickers[0].wait_until_idle()

        await harness.matcher.update_config(check_interval=60)

        assert len(harness.tickers) == 2
        assert harness.matcher.is_running("acme") is True

    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self, harness):
        with pytest.raises(ValueError):
            await harness.matcher.update_config(min_match_score=150)

    @pytest.mark.asyncio
    async def test_stats(self, harness, sample_profile):
        await harness.corpus.add_opportunity(qualifying_opportunity("opp-1"))
        await harness.matcher.start_matching(sample_profile)
        await harness.tickers[0].wait_until_idle()

        stats = harness.matcher.get_stats()

        assert stats.is_running is True
        assert stats.active_profiles == 1
        assert stats.total_alerts == 1
        assert stats.last_check == FIXED_NOW
