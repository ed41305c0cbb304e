"""Process-lifetime registry of generated resources and client subscriptions."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Protocol

from mcp import types
from pydantic import AnyUrl, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from nl2kql.services.errors import RegistryConflictError

LOG = logging.getLogger("nl2kql.serving.mcp.resources")

BINARY_MIME_PREFIXES = ("application/", "image/", "video/")


def is_binary_mime(mime_type: str | None) -> bool:
    """
    Classify a MIME type as binary content.

    Returns
    -------
    bool
        True for ``application/``, ``image/``, and ``video/`` types.
    """
    if mime_type is None:
        return False
    return mime_type.startswith(BINARY_MIME_PREFIXES)


class ResourceRecord(BaseModel):
    """Metadata for one registered resource; serialized with PascalCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_pascal, populate_by_name=True)

    name: str
    uri: str
    mime_type: str | None = None
    size: int | None = None
    description: str | None = None
    properties: dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize with PascalCase keys (``Name``, ``Uri``, ``MimeType``...)."""
        return self.model_dump_json(by_alias=True)

    def to_mcp(self) -> types.Resource:
        """
        Convert to the MCP wire model.

        Returns
        -------
        types.Resource
            Resource descriptor for ``resources/list``.
        """
        return types.Resource(
            name=self.name,
            uri=AnyUrl(self.uri),
            mimeType=self.mime_type,
            size=self.size,
            description=self.description,
        )


class NotifyingSession(Protocol):
    """Subset of ``mcp.server.session.ServerSession`` used for resource notifications."""

    async def send_resource_list_changed(self) -> None:
        """Send ``notifications/resources/list_changed``."""
        ...

    async def send_resource_updated(self, uri: AnyUrl) -> None:
        """Send ``notifications/resources/updated``."""
        ...


class SessionNotifier:
    """
    Best-effort notification sender bound to the most recent server session.

    Sends are scheduled on the running event loop and never awaited by the
    caller; a failed send is logged and otherwise ignored.
    """

    def __init__(self) -> None:
        self._session: NotifyingSession | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def session(self) -> NotifyingSession | None:
        """Currently attached session, if any."""
        return self._session

    def attach(self, session: NotifyingSession | None) -> None:
        """Bind notifications to ``session``; ``None`` leaves the current binding."""
        if session is not None:
            self._session = session

    def resource_list_changed(self) -> None:
        """Announce that the resource list changed."""
        self._dispatch("resources/list_changed", lambda s: s.send_resource_list_changed())

    def resource_updated(self, uri: str) -> None:
        """Announce that the resource at ``uri`` changed."""
        self._dispatch("resources/updated", lambda s: s.send_resource_updated(AnyUrl(uri)))

    def _dispatch(
        self,
        name: str,
        send: Callable[[NotifyingSession], Awaitable[None]],
    ) -> None:
        session = self._session
        if session is None:
            LOG.debug("No session attached; dropping %s notification", name)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOG.debug("No running event loop; dropping %s notification", name)
            return
        try:
            task = loop.create_task(send(session))
        except Exception:
            LOG.warning("Failed to schedule %s notification", name, exc_info=True)
            return
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finished(name, done))

    def _finished(self, name: str, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOG.warning("Failed to send %s notification: %s", name, exc)

    async def drain(self) -> None:
        """Wait for notifications that are still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class ResourceRegistry:
    """
    URI-keyed resource records plus the set of subscribed URIs.

    Every mutation holds one lock over both collections. Reads return
    snapshots. Notifications are sent after the lock is released.

    Parameters
    ----------
    notifier:
        Sender for list-changed and updated notifications.
    """

    def __init__(self, notifier: SessionNotifier | None = None) -> None:
        self.notifier = notifier or SessionNotifier()
        self._resources: dict[str, ResourceRecord] = {}
        self._subscriptions: set[str] = set()
        self._lock = threading.Lock()

    def add(self, record: ResourceRecord) -> None:
        """
        Register a new resource.

        Raises
        ------
        RegistryConflictError
            When a resource with the same URI already exists.
        """
        with self._lock:
            if record.uri in self._resources:
                message = f"Resource with uri {record.uri} already exists."
                raise RegistryConflictError(message)
            self._resources[record.uri] = record
        LOG.info("Registered resource %s", record.uri)
        self.notifier.resource_list_changed()

    def remove(self, uri: str) -> None:
        """
        Remove a registered resource.

        Raises
        ------
        RegistryConflictError
            When no resource has this URI.
        """
        with self._lock:
            if uri not in self._resources:
                message = f"Resource with uri {uri} not found."
                raise RegistryConflictError(message)
            del self._resources[uri]
        LOG.info("Removed resource %s", uri)
        self.notifier.resource_list_changed()

    def update(self, record: ResourceRecord) -> None:
        """
        Overwrite an existing resource, notifying subscribers of that URI.

        Raises
        ------
        RegistryConflictError
            When no resource has this URI.
        """
        with self._lock:
            if record.uri not in self._resources:
                message = f"Resource with uri {record.uri} not found."
                raise RegistryConflictError(message)
            self._resources[record.uri] = record
            subscribed = record.uri in self._subscriptions
        if subscribed:
            self.notifier.resource_updated(record.uri)

    def get(self, uri: str) -> ResourceRecord | None:
        """Return the record for ``uri`` or None."""
        with self._lock:
            return self._resources.get(uri)

    def list(self) -> list[ResourceRecord]:
        """Snapshot of every registered record."""
        with self._lock:
            return list(self._resources.values())

    def subscribe(self, uri: str) -> None:
        """Add ``uri`` to the subscription set; the resource need not exist yet."""
        with self._lock:
            self._subscriptions.add(uri)
        LOG.debug("Subscribed to %s", uri)

    def unsubscribe(self, uri: str) -> None:
        """
        Remove ``uri`` from the subscription set.

        Raises
        ------
        RegistryConflictError
            When ``uri`` is not subscribed.
        """
        with self._lock:
            if uri not in self._subscriptions:
                message = f"Subscription with uri {uri} not found."
                raise RegistryConflictError(message)
            self._subscriptions.remove(uri)
        LOG.debug("Unsubscribed from %s", uri)

    def is_subscribed(self, uri: str) -> bool:
        """Whether ``uri`` is in the subscription set."""
        with self._lock:
            return uri in self._subscriptions


__all__ = [
    "BINARY_MIME_PREFIXES",
    "NotifyingSession",
    "ResourceRecord",
    "ResourceRegistry",
    "SessionNotifier",
    "is_binary_mime",
]
