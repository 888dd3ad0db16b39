import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from api.websocket import ConnectionManager


class FakeWebSocket:
    def __init__(self, fail_sends: bool = False):
        self.accept = AsyncMock()
        self.close = AsyncMock()
        self.sent: list[dict] = []
        self.fail_sends = fail_sends

    async def send_text(self, text: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(text))


async def _connected(manager: ConnectionManager, **kwargs):
    ws = FakeWebSocket(**kwargs)
    client = await manager.connect(ws)
    return client, ws


@pytest.mark.asyncio
async def test_connect_sends_welcome():
    manager = ConnectionManager()

    client, ws = await _connected(manager)

    ws.accept.assert_awaited_once()
    assert client.id.startswith("client_")
    assert ws.sent[0]["type"] == "connection"
    assert ws.sent[0]["clientId"] == client.id


@pytest.mark.asyncio
async def test_subscribe_accepts_only_known_topics():
    manager = ConnectionManager()
    client, ws = await _connected(manager)

    await manager.handle_message(
        client.id, json.dumps({"type": "subscribe", "data": {"topics": ["alerts", "bogus", "crisis_updates"]}})
    )
    await manager.handle_message(client.id, json.dumps({"type": "unsubscribe", "data": {"topics": ["alerts"]}}))

    assert ws.sent[1] == {"type": "subscription_confirmed", "topics": ["alerts", "crisis_updates"], "timestamp": ws.sent[1]["timestamp"]}
    assert ws.sent[2]["type"] == "unsubscription_confirmed"
    assert client.subscriptions == {"crisis_updates"}
    assert manager.stats()["roomSubscriptions"] == {"crisis_updates": 1}


@pytest.mark.asyncio
async def test_topics_must_be_a_list():
    manager = ConnectionManager()
    client, ws = await _connected(manager)

    await manager.handle_message(client.id, json.dumps({"type": "subscribe", "data": {"topics": "alerts"}}))

    assert ws.sent[-1]["type"] == "error"
    assert ws.sent[-1]["message"] == "Topics must be an array"


@pytest.mark.asyncio
async def test_ping_invalid_json_and_status():
    manager = ConnectionManager()
    client, ws = await _connected(manager)
    provider = AsyncMock(return_value={"monitor": {"running": False}})

    await manager.handle_message(client.id, json.dumps({"type": "ping"}))
    await manager.handle_message(client.id, "{not json")
    await manager.handle_message(client.id, json.dumps(["list"]))
    await manager.handle_message(client.id, json.dumps({"type": "request_status"}), provider)

    assert [m["type"] for m in ws.sent[1:]] == ["pong", "error", "error", "system_status"]
    assert ws.sent[2]["message"] == "Invalid message format"
    status = ws.sent[-1]["data"]
    assert status["clients"]["total"] == 1
    assert status["services"] == {"monitor": {"running": False}}


@pytest.mark.asyncio
async def test_broadcast_reaches_subscribers_and_drops_dead_clients():
    manager = ConnectionManager()
    alive, alive_ws = await _connected(manager)
    other, other_ws = await _connected(manager)
    alive.subscriptions.add("crisis_updates")
    other.subscriptions.add("crisis_updates")
    other_ws.fail_sends = True

    sent = await manager.send_crisis_update(
        {"country": "Sudan", "overallRisk": "CRITICAL", "confidence": 0.82, "displacementRisk": {"level": "CRITICAL"}}
    )

    assert sent == 1
    assert other.id not in manager.clients
    update = alive_ws.sent[-1]
    assert update["topic"] == "crisis_updates"
    assert update["data"]["confidence"] == 82
    assert update["data"]["summary"]["displacementRisk"] == "CRITICAL"


@pytest.mark.asyncio
async def test_critical_alert_goes_to_alert_topic_and_everyone():
    manager = ConnectionManager()
    subscriber, sub_ws = await _connected(manager)
    _, bystander_ws = await _connected(manager)
    subscriber.subscriptions.add("alerts")

    sent = await manager.send_critical_alert({"country": "Sudan", "message": "Mass displacement"})

    assert sent == 1
    assert [m["type"] for m in sub_ws.sent[1:]] == ["critical_alert", "system_alert"]
    assert bystander_ws.sent[-1]["message"] == "CRITICAL: Sudan - Mass displacement"


@pytest.mark.asyncio
async def test_heartbeat_pings_and_close_disconnects_all():
    manager = ConnectionManager()
    _, ws = await _connected(manager)

    assert await manager.heartbeat_once() == 1
    assert ws.sent[-1]["type"] == "ping"

    await manager.close()
    ws.close.assert_awaited_once_with(code=1000, reason="Server shutdown")
    assert manager.clients == {}


@pytest.mark.asyncio
async def test_ai_analysis_update_tolerates_misshapen_sections():
    manager = ConnectionManager()
    client, ws = await _connected(manager)
    client.subscriptions.add("ai_analysis")

    sent = await manager.send_ai_analysis_update(
        {"aiRiskAssessment": "HIGH", "confidence": 0.7, "keyFindings": "Shelling", "recommendations": ["Open corridors"], "metadata": "n/a"}
    )

    assert sent == 1
    data = ws.sent[-1]["data"]
    assert data["aiRiskLevel"] == "HIGH"
    assert data["keyFindings"] == ["Shelling"]
    assert data["recommendations"] == []
    assert data["country"] is None
