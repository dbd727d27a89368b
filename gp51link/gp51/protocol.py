"""
GP51 web API response definitions using msgspec.

GP51 answers every action with a JSON object carrying `status` (0 = ok) and
an optional `cause`. Field names are the vendor's lowercase spellings; unknown
fields are ignored on decode.
"""

from typing import Final

import msgspec

STATUS_OK: Final[int] = 0

# Vendor field values are loosely typed: ids come back as numbers or strings
DeviceId = int | str


class GP51Response(msgspec.Struct):
    """Envelope common to every GP51 action"""

    status: int = STATUS_OK
    cause: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class LoginResponse(GP51Response):
    token: str | None = None


class Device(msgspec.Struct):
    deviceid: DeviceId
    devicename: str = ""
    devicetype: DeviceId | None = None
    isfree: int = 0
    lastactivetime: int = 0
    simnum: str = ""
    remark: str = ""

    @property
    def is_active(self) -> bool:
        return self.isfree == 1


class DeviceGroup(msgspec.Struct):
    groupid: DeviceId
    groupname: str = ""
    remark: str = ""
    devices: list[Device] = msgspec.field(default_factory=list)


class MonitorListResponse(GP51Response):
    groups: list[DeviceGroup] = msgspec.field(default_factory=list)

    def devices(self) -> list[Device]:
        return [device for group in self.groups for device in group.devices]


class LoginRequest(msgspec.Struct, rename={"from_": "from"}):
    username: str
    password: str  # MD5 hex digest, never the clear password
    from_: str = "WEB"
    type: str = "USER"
