"""
Notification Bus
Fire-and-forget fan-out of ledger changes to a patient's connected WebSockets
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Set

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    """Event names pushed to clients"""
    MEDICATIONS_UPDATED = "medications-updated"


@dataclass
class NotificationResult:
    """Outcome of one fan-out"""
    patient_id: int
    delivered: int = 0
    dropped: int = 0


class NotificationBus:
    """
    Holds the open WebSocket sessions per patient.

    Delivery is best effort: nothing is queued for patients without a
    session and nothing is replayed on reconnect.
    """

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = {}

    def connect(self, patient_id: int, websocket: WebSocket) -> None:
        self._connections.setdefault(patient_id, set()).add(websocket)
        logger.info(f"Patient {patient_id} connected ({self.connection_count(patient_id)} session(s))")

    def disconnect(self, patient_id: int, websocket: WebSocket) -> None:
        sessions = self._connections.get(patient_id)
        if not sessions:
            return
        sessions.discard(websocket)
        if not sessions:
            del self._connections[patient_id]

    def connection_count(self, patient_id: int) -> int:
        return len(self._connections.get(patient_id, ()))

    async def notify_patient(self, patient_id: int, payload: Dict[str, Any]) -> NotificationResult:
        """Push an event to every session of one patient. Never raises."""
        result = NotificationResult(patient_id=patient_id)
        message = {
            "event": NotificationEvent.MEDICATIONS_UPDATED.value,
            "patientId": patient_id,
            "timestamp": datetime.utcnow().isoformat(),
            **payload,
        }

        dead: List[WebSocket] = []
        for websocket in list(self._connections.get(patient_id, ())):
            try:
                await websocket.send_json(message)
                result.delivered += 1
            except Exception as e:
                logger.warning(f"Dropping WebSocket for patient {patient_id}: {e}")
                dead.append(websocket)

        for websocket in dead:
            self.disconnect(patient_id, websocket)
        result.dropped = len(dead)

        logger.debug(f"Notified patient {patient_id}: {result.delivered} delivered, {result.dropped} dropped")
        return result

    async def notify_missed(self, patient_id: int, count: int) -> NotificationResult:
        """Convenience wrapper for automatic missed-dose transitions"""
        return await self.notify_patient(patient_id, {
            "count": count,
            "message": f"{count} medication(s) automatically marked as missed",
        })
