"""
Tests for Notification Bus
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from tools.notification_bus import NotificationBus, NotificationEvent


def make_socket(fail: bool = False):
    websocket = MagicMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return websocket


class TestNotificationBus:

    @pytest.mark.asyncio
    async def test_notify_missed_payload(self):
        bus = NotificationBus()
        websocket = make_socket()
        bus.connect(7, websocket)

        result = await bus.notify_missed(7, 2)

        assert result.delivered == 1
        message = websocket.send_json.await_args.args[0]
        assert message["event"] == NotificationEvent.MEDICATIONS_UPDATED.value
        assert message["patientId"] == 7
        assert message["count"] == 2
        assert message["message"] == "2 medication(s) automatically marked as missed"

    @pytest.mark.asyncio
    async def test_only_target_patient_notified(self):
        bus = NotificationBus()
        mine, theirs = make_socket(), make_socket()
        bus.connect(1, mine)
        bus.connect(2, theirs)

        await bus.notify_patient(1, {"count": 1})

        mine.send_json.assert_awaited_once()
        theirs.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dead_socket_is_dropped_without_raising(self):
        bus = NotificationBus()
        alive, dead = make_socket(), make_socket(fail=True)
        bus.connect(1, alive)
        bus.connect(1, dead)

        result = await bus.notify_patient(1, {"count": 1})

        assert result.delivered == 1
        assert result.dropped == 1
        assert bus.connection_count(1) == 1

    @pytest.mark.asyncio
    async def test_no_sessions(self):
        result = await NotificationBus().notify_patient(99, {"count": 3})
        assert result.delivered == 0
        assert result.dropped == 0

    @pytest.mark.unit
    def test_disconnect(self):
        bus = NotificationBus()
        websocket = make_socket()
        bus.connect(1, websocket)
        bus.disconnect(1, websocket)
        bus.disconnect(1, websocket)
        assert bus.connection_count(1) == 0
