"""Last-known-location slot fed by the platform location service."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Final

from earthlord.models import LocationFix

logger = logging.getLogger(__name__)


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED_WHEN_IN_USE = "authorized_when_in_use"
    AUTHORIZED_ALWAYS = "authorized_always"

    @property
    def is_authorized(self) -> bool:
        return self in (AuthorizationStatus.AUTHORIZED_WHEN_IN_USE, AuthorizationStatus.AUTHORIZED_ALWAYS)


LOCATION_ERROR_MESSAGES: Final[dict[str, str]] = {
    "denied": "定位权限被拒绝，请在设置中开启",
    "location_unknown": "无法获取位置，请稍后重试",
    "network": "网络错误，请检查网络连接",
}


class LocationSource:
    """Holds the freshest fix pushed by the platform callback.

    There is no queue: every :meth:`update` overwrites the previous fix, and
    the sampling tick only ever reads the latest one.
    """

    def __init__(self, status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED) -> None:
        self._status = status
        self._latest: LocationFix | None = None
        self._updating = False
        self.error: str | None = None
        self.permission_requested = False

    @property
    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    @property
    def is_authorized(self) -> bool:
        return self._status.is_authorized

    @property
    def is_updating(self) -> bool:
        return self._updating

    def latest(self) -> LocationFix | None:
        return self._latest

    def update(self, fix: LocationFix) -> None:
        """Platform callback: a new fix arrived."""

        self._latest = fix
        self.error = None

    def start_updating(self) -> bool:
        """Begin receiving fixes. Returns False (and may request permission) when not authorized."""

        if not self.is_authorized:
            logger.warning("未授权，无法开始定位")
            if self._status is AuthorizationStatus.NOT_DETERMINED:
                self.permission_requested = True
            return False
        self._updating = True
        self.error = None
        return True

    def stop_updating(self) -> None:
        self._updating = False

    def set_authorization(self, status: AuthorizationStatus) -> None:
        """Authorization changed; start updates as soon as access is granted."""

        old = self._status
        self._status = status
        logger.info("授权状态变化：%s -> %s", old.value, status.value)
        if self.is_authorized and not self._updating:
            self.start_updating()

    def report_error(self, kind: str, detail: str = "") -> None:
        """Record a location failure as a user-facing message."""

        message = LOCATION_ERROR_MESSAGES.get(kind)
        if message is None:
            message = f"定位失败：{detail or kind}"
        logger.warning("定位失败：%s %s", kind, detail)
        self.error = message
