"""
Bounded per-profile alert storage.

Each profile keeps at most ``capacity`` alerts ordered newest first, with
at most one alert per opportunity. Writers are serialized with a lock per
profile so both properties hold under concurrent cycles.
"""
import asyncio
from typing import Optional

from .models import MatchAlert


class AlertStore:
    """Alerts for a single profile."""

    def __init__(self, profile_id: str, capacity: int = 10):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.profile_id = profile_id
        self.capacity = capacity
        self._alerts: list[MatchAlert] = []  # newest first
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._alerts)

    def has_opportunity(self, opportunity_id: str) -> bool:
        return any(alert.opportunity_id == opportunity_id for alert in self._alerts)

    def alerts(self) -> list[MatchAlert]:
        return list(self._alerts)

    def get(self, alert_id: str) -> Optional[MatchAlert]:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    async def add_batch(self, alerts: list[MatchAlert]) -> list[MatchAlert]:
        """
        Insert one cycle's alerts ahead of the existing ones.

        Alerts for opportunities already present (or repeated within the
        batch) are skipped. The batch keeps its given order, so when it
        overflows the store, its trailing entries are dropped after every
        older alert. Returns the alerts that were retained.
        """
        async with self._lock:
            fresh: list[MatchAlert] = []
            seen = {alert.opportunity_id for alert in self._alerts}
            for alert in alerts:
                if alert.opportunity_id in seen:
                    continue
                seen.add(alert.opportunity_id)
                fresh.append(alert)

            self._alerts = (fresh + self._alerts)[: self.capacity]
            retained_ids = {alert.id for alert in self._alerts}
            return [alert for alert in fresh if alert.id in retained_ids]

    async def add(self, alert: MatchAlert) -> bool:
        return bool(await self.add_batch([alert]))

    async def mark_read(self, alert_id: str) -> bool:
        async with self._lock:
            alert = self.get(alert_id)
            if alert is None:
                return False
            alert.read = True
            return True

    async def mark_action_taken(self, alert_id: str, action: str) -> bool:
        async with self._lock:
            alert = self.get(alert_id)
            if alert is None:
                return False
            alert.action_taken = action
            alert.read = True
            return True

    async def clear(self) -> None:
        async with self._lock:
            self._alerts = []

    async def resize(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        async with self._lock:
            self.capacity = capacity
            self._alerts = self._alerts[:capacity]
