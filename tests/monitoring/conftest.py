from unittest.mock import AsyncMock

import pytest

from gp51link.gp51.protocol import Device, DeviceGroup, MonitorListResponse
from gp51link.session.manager import SessionManager


@pytest.fixture
def mock_sessions(valid_session) -> AsyncMock:
    sessions = AsyncMock(spec=SessionManager)
    sessions.get_valid_session.return_value = valid_session
    sessions.current = valid_session
    return sessions


@pytest.fixture
def monitor_list() -> MonitorListResponse:
    return MonitorListResponse(
        groups=[
            DeviceGroup(
                groupid=1,
                groupname="Fleet",
                devices=[Device(deviceid="860001"), Device(deviceid="860002")],
            )
        ]
    )
