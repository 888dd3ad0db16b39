import asyncio
import json
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect

from services.ai.llm_provider import json_list, json_section
from utils.logger import get_logger
from utils.utcnow import utc_iso

logger = get_logger("websocket")

VALID_TOPICS = (
    "crisis_updates",
    "ai_analysis",
    "global_metrics",
    "alerts",
    "system_status",
)

StatusProvider = Callable[[], Awaitable[dict[str, Any]]]


@dataclass
class ClientInfo:
    id: str
    websocket: WebSocket
    connected_at: float = field(default_factory=time.monotonic)
    subscriptions: set[str] = field(default_factory=set)


def _client_id() -> str:
    return f"client_{int(time.time() * 1000)}_{random.randint(0, 999_999):06d}"


class ConnectionManager:
    """Manages WebSocket connections and their topic subscriptions"""

    def __init__(self):
        self.clients: dict[str, ClientInfo] = {}
        self._started_at = time.monotonic()
        self._heartbeat_task: Optional[asyncio.Task] = None

    async def connect(self, websocket: WebSocket) -> ClientInfo:
        await websocket.accept()
        client = ClientInfo(id=_client_id(), websocket=websocket)
        self.clients[client.id] = client
        logger.info("WebSocket client connected", client_id=client.id, total_clients=len(self.clients))
        await self.send_personal(
            client.id,
            {
                "type": "connection",
                "status": "connected",
                "clientId": client.id,
                "timestamp": utc_iso(),
                "message": "Connected to RefugeeWatch AI real-time updates",
            },
        )
        return client

    def disconnect(self, client_id: str):
        client = self.clients.pop(client_id, None)
        if client is not None:
            logger.info(
                "WebSocket client disconnected",
                client_id=client_id,
                connected_seconds=int(time.monotonic() - client.connected_at),
                total_clients=len(self.clients),
            )

    async def send_personal(self, client_id: str, message: dict) -> bool:
        """Send message to one client; a failed send drops the client"""
        client = self.clients.get(client_id)
        if client is None:
            return False
        try:
            await client.websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.warning("WebSocket send failed", client_id=client_id, error=str(e))
            self.disconnect(client_id)
            return False

    async def _send_many(self, client_ids: list[str], message: dict) -> int:
        message_json = json.dumps(message, default=str)
        sent = 0
        for client_id in client_ids:
            client = self.clients.get(client_id)
            if client is None:
                continue
            try:
                await client.websocket.send_text(message_json)
                sent += 1
            except Exception:
                self.disconnect(client_id)
        return sent

    async def broadcast_to_topic(self, topic: str, message: dict) -> int:
        """Send to every subscriber of ``topic``; returns the number reached"""
        payload = {**message, "topic": topic, "timestamp": utc_iso()}
        subscribers = [cid for cid, c in self.clients.items() if topic in c.subscriptions]
        return await self._send_many(subscribers, payload)

    async def broadcast_to_all(self, message: dict) -> int:
        payload = {**message, "timestamp": utc_iso()}
        return await self._send_many(list(self.clients), payload)

    # ==================== CLIENT MESSAGES ====================

    async def _update_subscriptions(self, client_id: str, data: Any, subscribe: bool):
        client = self.clients.get(client_id)
        if client is None:
            return
        topics = data.get("topics") if isinstance(data, dict) else None
        if not isinstance(topics, list):
            await self.send_personal(
                client_id,
                {"type": "error", "message": "Topics must be an array", "timestamp": utc_iso()},
            )
            return

        changed = []
        for topic in topics:
            if subscribe and topic in VALID_TOPICS and topic not in client.subscriptions:
                client.subscriptions.add(topic)
                changed.append(topic)
            elif not subscribe and topic in client.subscriptions:
                client.subscriptions.discard(topic)
                changed.append(topic)

        logger.info(
            "Client subscriptions updated",
            client_id=client_id,
            subscribed=subscribe,
            topics=changed,
            total=len(client.subscriptions),
        )
        await self.send_personal(
            client_id,
            {
                "type": "subscription_confirmed" if subscribe else "unsubscription_confirmed",
                "topics": changed,
                "timestamp": utc_iso(),
            },
        )

    async def handle_message(
        self, client_id: str, raw: str, status_provider: Optional[StatusProvider] = None
    ):
        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("message must be a JSON object")
        except ValueError as e:
            logger.warning("WebSocket message parsing failed", client_id=client_id, error=str(e))
            await self.send_personal(
                client_id,
                {"type": "error", "message": "Invalid message format", "timestamp": utc_iso()},
            )
            return

        msg_type = message.get("type")
        if msg_type == "subscribe":
            await self._update_subscriptions(client_id, message.get("data"), subscribe=True)
        elif msg_type == "unsubscribe":
            await self._update_subscriptions(client_id, message.get("data"), subscribe=False)
        elif msg_type == "ping":
            await self.send_personal(client_id, {"type": "pong", "timestamp": utc_iso()})
        elif msg_type == "request_status":
            status = {"clients": {"total": len(self.clients)}, **self.stats()}
            if status_provider is not None:
                status["services"] = await status_provider()
            await self.send_personal(client_id, {"type": "system_status", "data": status})
        else:
            logger.warning("Unknown WebSocket message type", client_id=client_id, type=msg_type)

    # ==================== HEARTBEAT ====================

    async def start_heartbeat(self, interval_seconds: float = 30.0):
        """Start background ping loop (idempotent)."""
        if self._heartbeat_task and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(max(1.0, interval_seconds)), name="ws-heartbeat"
        )

    async def stop_heartbeat(self):
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
        self._heartbeat_task = None

    async def heartbeat_once(self) -> int:
        """Ping every client; clients that cannot be reached are dropped"""
        return await self._send_many(list(self.clients), {"type": "ping", "timestamp": utc_iso()})

    async def _heartbeat_loop(self, interval_seconds: float):
        while True:
            await asyncio.sleep(interval_seconds)
            await self.heartbeat_once()

    async def close(self):
        await self.stop_heartbeat()
        for client_id, client in list(self.clients.items()):
            try:
                await client.websocket.close(code=1000, reason="Server shutdown")
            except Exception as e:
                logger.debug("WebSocket close failed", client_id=client_id, error=str(e))
            self.clients.pop(client_id, None)

    def stats(self) -> dict[str, Any]:
        rooms: dict[str, int] = {}
        for client in self.clients.values():
            for topic in client.subscriptions:
                rooms[topic] = rooms.get(topic, 0) + 1
        return {
            "totalClients": len(self.clients),
            "totalRooms": len(rooms),
            "roomSubscriptions": rooms,
            "uptime": round(time.monotonic() - self._started_at, 1),
        }

    # ==================== DOMAIN BROADCASTS ====================

    async def send_crisis_update(self, assessment: dict[str, Any]) -> int:
        displacement = assessment.get("displacementRisk") or {}
        return await self.broadcast_to_topic(
            "crisis_updates",
            {
                "type": "crisis_update",
                "data": {
                    "country": assessment.get("country"),
                    "riskLevel": assessment.get("overallRisk"),
                    "confidence": round(float(assessment.get("confidence") or 0) * 100),
                    "lastUpdate": assessment.get("timestamp"),
                    "summary": {
                        "displacementRisk": displacement.get("level"),
                        "estimatedAffected": displacement.get("estimatedNumbers"),
                        "timeline": displacement.get("timeline"),
                    },
                },
            },
        )

    async def send_ai_analysis_update(self, analysis: dict[str, Any]) -> int:
        metadata = json_section(analysis, "metadata")
        return await self.broadcast_to_topic(
            "ai_analysis",
            {
                "type": "ai_analysis_update",
                "data": {
                    "country": metadata.get("country"),
                    "aiRiskLevel": analysis.get("aiRiskAssessment"),
                    "confidence": round(float(analysis.get("confidence") or 0) * 100),
                    "keyFindings": json_list(analysis, "keyFindings")[:3],
                    "recommendations": json_list(json_section(analysis, "recommendations"), "immediate")[:2],
                    "model": metadata.get("modelUsed"),
                },
            },
        )

    async def send_global_metrics_update(self, metrics: dict[str, Any]) -> int:
        return await self.broadcast_to_topic(
            "global_metrics",
            {
                "type": "global_metrics_update",
                "data": {
                    "summary": metrics.get("summary"),
                    "riskDistribution": metrics.get("riskDistribution"),
                    "totalAtRisk": metrics.get("totalAtRisk"),
                    "trendsOverview": metrics.get("trendsOverview"),
                },
            },
        )

    async def send_critical_alert(self, alert: dict[str, Any]) -> int:
        """Alert subscribers of ``alerts`` and flag it to every client"""
        sent = await self.broadcast_to_topic(
            "alerts", {"type": "critical_alert", "data": alert, "priority": "high"}
        )
        await self.broadcast_to_all(
            {
                "type": "system_alert",
                "message": f"CRITICAL: {alert.get('country')} - {alert.get('message')}",
                "priority": "critical",
            }
        )
        return sent


# Global connection manager
manager = ConnectionManager()


async def handle_websocket(
    websocket: WebSocket,
    connections: Optional[ConnectionManager] = None,
    status_provider: Optional[StatusProvider] = None,
):
    """Main WebSocket handler"""
    connections = connections or manager
    client = await connections.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await connections.handle_message(client.id, raw, status_provider)
    except WebSocketDisconnect:
        connections.disconnect(client.id)
    except Exception as e:
        logger.error("WebSocket error", client_id=client.id, error=str(e))
        connections.disconnect(client.id)
