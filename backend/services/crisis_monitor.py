"""
Background crisis monitor.

Periodically assesses the monitored countries and pushes the results to
WebSocket subscribers: one ``crisis_update`` per country plus a critical
alert for every CRITICAL assessment.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from models.crisis import RiskLevel
from utils.logger import monitor_logger as logger
from utils.utcnow import utc_iso
from api.websocket import ConnectionManager
from services.aggregator import CrisisAggregator


class CrisisMonitor:
    """Poll crisis assessments and broadcast them over WebSocket."""

    def __init__(
        self,
        aggregator: CrisisAggregator,
        broadcaster: ConnectionManager,
        countries: list[str],
        interval_seconds: float = 300.0,
    ) -> None:
        self.aggregator = aggregator
        self.broadcaster = broadcaster
        self.countries = list(countries)
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[str] = None
        self.last_error: Optional[str] = None
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start background monitor loop (idempotent)."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="crisis-monitor")
        logger.info(
            "Crisis monitor started",
            countries=self.countries,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Crisis monitor stopped")

    async def run_once(self) -> list[dict[str, Any]]:
        """One monitoring cycle; returns the assessments it broadcast."""
        assessments = await self.aggregator.get_multi_country_assessment(self.countries)
        critical = 0
        for assessment in assessments:
            await self.broadcaster.send_crisis_update(assessment)
            if assessment.get("overallRisk") == RiskLevel.CRITICAL.value:
                critical += 1
                threats = assessment.get("immediateThreats") or []
                await self.broadcaster.send_critical_alert(
                    {
                        "country": assessment.get("country"),
                        "riskLevel": assessment.get("overallRisk"),
                        "message": threats[0] if threats else "Critical risk level detected",
                        "confidence": assessment.get("confidence"),
                        "displacementRisk": (assessment.get("displacementRisk") or {}).get("level"),
                    }
                )
        self.cycles += 1
        self.last_run = utc_iso()
        self.last_error = None
        logger.info("Monitoring cycle complete", countries=len(assessments), critical=critical)
        return assessments

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                self.last_error = str(e)
                logger.exception("Monitoring cycle failed", error=str(e))
            await asyncio.sleep(self.interval_seconds)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "countries": list(self.countries),
            "intervalSeconds": self.interval_seconds,
            "cycles": self.cycles,
            "lastRun": self.last_run,
            "lastError": self.last_error,
        }
