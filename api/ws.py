"""
WebSocket API Router
Live ledger updates for a patient's open dashboards
"""

import logging
from typing import Optional
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from api.security import verify_token
from database import get_db_context
from exceptions import AdherenceError
from services.context import TrackerContext
from services.patient_service import patient_service


logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/patients/{patient_id}")
async def patient_updates(
    websocket: WebSocket,
    patient_id: int,
    token: Optional[str] = Query(None)
):
    """
    Stream ``medications-updated`` events for one patient. The patient
    themself or an assigned doctor may subscribe.
    """
    context: TrackerContext = websocket.app.state.context

    user = verify_token(token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        with get_db_context(context.session_factory) as session:
            patient_service.authorize_patient_access(session, user, patient_id)
    except AdherenceError as e:
        logger.info(f"Refused WebSocket for patient {patient_id}: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    context.bus.connect(patient_id, websocket)
    try:
        while True:
            # Clients only listen; incoming frames keep the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        context.bus.disconnect(patient_id, websocket)
        logger.info(f"Patient {patient_id} WebSocket closed")
