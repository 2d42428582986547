"""In-process registry of live notification channels."""

from __future__ import annotations

from threading import Lock
from typing import Any, Dict, List, Mapping, MutableMapping, Protocol, Tuple


class NotificationChannel(Protocol):
    """Anything able to push a JSON payload to a connected client."""

    async def send_json(self, data: Any) -> None:
        ...


class ConnectionRegistry:
    """Map of actor id to the channels currently connected for them.

    The registry is an ephemeral cache; notification rows in the database are
    the source of truth. Channels are compared by identity since websocket
    objects are not hashable.
    """

    def __init__(self) -> None:
        self._channels: MutableMapping[str, List[NotificationChannel]] = {}
        self._lock = Lock()

    def register(self, actor_id: str, channel: NotificationChannel) -> None:
        with self._lock:
            channels = self._channels.setdefault(actor_id, [])
            if not any(existing is channel for existing in channels):
                channels.append(channel)

    def unregister(self, actor_id: str, channel: NotificationChannel) -> None:
        with self._lock:
            channels = self._channels.get(actor_id)
            if channels is None:
                return
            remaining = [existing for existing in channels if existing is not channel]
            if remaining:
                self._channels[actor_id] = remaining
            else:
                del self._channels[actor_id]

    def channels_for(self, actor_id: str) -> Tuple[NotificationChannel, ...]:
        with self._lock:
            return tuple(self._channels.get(actor_id, ()))

    def is_connected(self, actor_id: str) -> bool:
        with self._lock:
            return bool(self._channels.get(actor_id))

    def snapshot(self) -> Mapping[str, int]:
        """Number of live channels per actor."""

        with self._lock:
            counts: Dict[str, int] = {actor: len(channels) for actor, channels in self._channels.items()}
        return counts
