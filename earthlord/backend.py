"""Supabase (PostgREST) client for exploration records and item data.

Every failure surfaces as :class:`BackendError`; callers decide whether to
degrade or report it.
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, Sequence

from earthlord.models import CollectedItem, ItemDefinition, RewardTier
from earthlord.timeutils import isoformat_utc

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """The backend could not be reached or rejected the request."""


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Immutable summary of a finished exploration, as stored server-side."""

    started_at: datetime
    ended_at: datetime
    duration_s: int
    total_distance_m: float
    point_count: int
    reward_tier: RewardTier
    items_count: int

    def to_row(self, user_id: str) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "started_at": isoformat_utc(self.started_at),
            "ended_at": isoformat_utc(self.ended_at),
            "duration_seconds": self.duration_s,
            "total_distance": round(self.total_distance_m, 2),
            "point_count": self.point_count,
            "reward_tier": self.reward_tier.value,
            "items_count": self.items_count,
        }


class ExplorationBackend(Protocol):
    """What the exploration service needs from the server side."""

    def fetch_item_definitions(self) -> list[ItemDefinition]: ...

    def save_exploration_session(self, record: SessionRecord) -> str: ...

    def add_inventory_items(
        self,
        items: Sequence[CollectedItem],
        *,
        source_type: str,
        source_session_id: str,
    ) -> None: ...


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Connection settings for the Supabase REST API."""

    base_url: str
    api_key: str
    access_token: str | None = None
    user_id: str | None = None
    timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> BackendConfig | None:
        """Read ``EARTHLORD_SUPABASE_URL`` / ``EARTHLORD_SUPABASE_KEY`` and friends.

        Returns:
            Config, or None if URL or key is not set.
        """

        env = os.environ if environ is None else environ
        url = env.get("EARTHLORD_SUPABASE_URL", "").strip()
        key = env.get("EARTHLORD_SUPABASE_KEY", "").strip()
        if not url or not key:
            return None
        timeout = env.get("EARTHLORD_TIMEOUT_SECONDS", "").strip()
        try:
            timeout_s = float(timeout) if timeout else 15.0
        except ValueError as exc:
            raise ValueError(f"EARTHLORD_TIMEOUT_SECONDS 不是数字：{timeout!r}") from exc
        return cls(
            base_url=url.rstrip("/"),
            api_key=key,
            access_token=env.get("EARTHLORD_ACCESS_TOKEN") or None,
            user_id=env.get("EARTHLORD_USER_ID") or None,
            timeout_seconds=timeout_s,
        )


class SupabaseBackend:
    """Talks to the ``item_definitions``, ``exploration_sessions`` and ``inventory_items`` tables."""

    def __init__(self, config: BackendConfig) -> None:
        self._cfg = config

    def fetch_item_definitions(self) -> list[ItemDefinition]:
        rows = self._request("GET", "item_definitions", params={"select": "*", "is_active": "eq.true"})
        if not isinstance(rows, list):
            raise BackendError(f"item_definitions 返回格式异常：{type(rows).__name__}")
        out: list[ItemDefinition] = []
        for row in rows:
            try:
                out.append(ItemDefinition.from_row(row))
            except (KeyError, TypeError, AttributeError):
                logger.warning("跳过无法解析的物品定义：%r", row)
        return out

    def save_exploration_session(self, record: SessionRecord) -> str:
        user_id = self._require_user()
        rows = self._request(
            "POST",
            "exploration_sessions",
            body=record.to_row(user_id),
            prefer="return=representation",
        )
        try:
            session_id = str(rows[0]["id"])
        except (IndexError, KeyError, TypeError) as exc:
            raise BackendError("exploration_sessions 未返回记录 id") from exc
        logger.info("探索记录保存成功：%s", session_id)
        return session_id

    def add_inventory_items(
        self,
        items: Sequence[CollectedItem],
        *,
        source_type: str,
        source_session_id: str,
    ) -> None:
        if not items:
            return
        user_id = self._require_user()
        rows = [
            {
                "user_id": user_id,
                "item_definition_id": item.item_id,
                "quality": item.quality.value,
                "quantity": item.quantity,
                "source_type": source_type,
                "source_session_id": source_session_id,
            }
            for item in items
        ]
        self._request("POST", "inventory_items", body=rows, prefer="return=minimal")
        logger.info("已添加 %s 个物品到背包", len(rows))

    def _require_user(self) -> str:
        if not self._cfg.user_id:
            raise BackendError("未登录，无法保存探索记录")
        return self._cfg.user_id

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._cfg.base_url}/rest/v1/{table}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        headers = {
            "apikey": self._cfg.api_key,
            "Authorization": f"Bearer {self._cfg.access_token or self._cfg.api_key}",
            "Accept": "application/json",
        }
        data = None
        if body is not None:
            data = json.dumps(body, ensure_ascii=False).encode("utf-8")
            headers["Content-Type"] = "application/json"
        if prefer:
            headers["Prefer"] = prefer

        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self._cfg.timeout_seconds) as resp:  # noqa: S310
                text = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")[:200]
            raise BackendError(f"{method} {table} 失败：HTTP {exc.code} {detail}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise BackendError(f"{method} {table} 失败：{exc}") from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise BackendError(f"{method} {table} 返回的不是 JSON") from exc
