"""
Real-time progress broadcaster.

Manages live sessions and their subscribers. Publishing never awaits
network I/O: each subscriber owns a bounded asyncio.Queue that its
WebSocket send loop drains, so a slow or dead viewer cannot hold up the
pipeline, and every subscriber sees a session's events in publish order.

Outbound messages are JSON-ready dicts: {"event": <name>, "data": {...}}.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from vidforge.models.schemas import ProgressEvent, SessionInfo

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """No live session with the given id."""


class SessionNotJoinedError(PermissionError):
    """Subscriber tried to act on a session it has not joined."""


class Subscriber:
    """
    Outbound mailbox of one live connection.

    Example:
        subscriber = Subscriber(maxsize=100)
        broadcaster.join(session_id, subscriber)
        message = await subscriber.queue.get()
    """

    def __init__(self, connection_id: str | None = None, maxsize: int = 100):
        self.id = connection_id or uuid.uuid4().hex[:8]
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.sessions: set[str] = set()
        self.dropped = 0

    def deliver(self, message: dict) -> bool:
        """
        Enqueue a message without blocking.

        When the queue is full the oldest pending message is dropped.

        Returns:
            False if a message had to be dropped
        """
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.queue.put_nowait(message)
            self.dropped += 1
            logger.warning(
                f"Subscriber {self.id} is slow, dropped oldest message "
                f"({self.dropped} dropped so far)"
            )
            return False

    def __repr__(self) -> str:
        return f"Subscriber({self.id})"


@dataclass(eq=False)
class Session:
    """Live collaboration context for one pipeline run.

    Subscribers are held weakly: the session never keeps a closed
    connection alive.
    """

    session_id: str
    owner_id: str
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    subscribers: weakref.WeakSet = field(default_factory=weakref.WeakSet)
    active_runs: int = 0
    running: bool = False

    def touch(self) -> None:
        self.last_activity = datetime.now()

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            owner_id=self.owner_id,
            created_at=self.created_at,
            subscribers=len(self.subscribers),
            active_runs=self.active_runs,
        )


def _message(event: str, **data) -> dict:
    return {"event": event, "data": data}


def _session_start(session: Session) -> dict:
    return _message("session-start", sessionId=session.session_id, userId=session.owner_id)


class ProgressBroadcaster:
    """
    Session registry with fire-and-forget fan-out to subscribers.

    Example:
        broadcaster = ProgressBroadcaster()
        session_id = broadcaster.create_session("user-1")
        broadcaster.join(session_id, subscriber)
        broadcaster.publish(session_id, ProgressEvent(session_id=session_id, stage="autoCrop"))
    """

    def __init__(self, subscriber_queue_size: int = 100, session_ttl_seconds: int = 3600):
        self.subscriber_queue_size = subscriber_queue_size
        self.session_ttl = timedelta(seconds=session_ttl_seconds)
        self._sessions: dict[str, Session] = {}

    # ═══════════════════════════════════════════════════════════════════════════
    # Sessions
    # ═══════════════════════════════════════════════════════════════════════════

    def create_session(self, owner_id: str, reserve_run: bool = False) -> str:
        """
        Create a session and return its id.

        Args:
            owner_id: User the session belongs to
            reserve_run: Count a run that has not started yet, so the
                session survives viewers coming and going before it does
        """
        session_id = uuid.uuid4().hex[:12]
        self._sessions[session_id] = Session(
            session_id=session_id,
            owner_id=owner_id,
            active_runs=1 if reserve_run else 0,
        )
        logger.info(f"Session {session_id} created for {owner_id}")
        return session_id

    def get_session(self, session_id: str) -> Session:
        """
        Look up a session by id.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_sessions(self) -> list[SessionInfo]:
        return [session.info() for session in self._sessions.values()]

    def new_subscriber(self, connection_id: str | None = None) -> Subscriber:
        """Create a subscriber with the configured queue bound."""
        return Subscriber(connection_id, maxsize=self.subscriber_queue_size)

    # ═══════════════════════════════════════════════════════════════════════════
    # Subscription
    # ═══════════════════════════════════════════════════════════════════════════

    def subscribe(self, session_id: str, subscriber: Subscriber) -> Session:
        """
        Attach a subscriber to a session.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self.get_session(session_id)
        session.subscribers.add(subscriber)
        subscriber.sessions.add(session_id)
        session.touch()
        logger.debug(f"{subscriber} subscribed to session {session_id}")
        return session

    def join(self, session_id: str, subscriber: Subscriber) -> Session:
        """
        Attach a connection to an existing session and confirm with "joined".

        A connection joining while a run is in progress also receives that
        run's "session-start", so it can tell the run has already begun.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self.subscribe(session_id, subscriber)
        subscriber.deliver(_message("joined", sessionId=session_id))
        if session.running:
            subscriber.deliver(_session_start(session))
        logger.info(
            f"{subscriber} joined session {session_id} "
            f"({len(session.subscribers)} subscribers)"
        )
        return session

    def unsubscribe(self, session_id: str, subscriber: Subscriber) -> None:
        """Detach a subscriber; destroys the session if nothing references it."""
        subscriber.sessions.discard(session_id)
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.subscribers.discard(subscriber)
        logger.debug(f"{subscriber} left session {session_id}")
        self._maybe_destroy(session)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Detach a terminated connection from every session it joined."""
        for session_id in list(subscriber.sessions):
            self.unsubscribe(session_id, subscriber)

    # ═══════════════════════════════════════════════════════════════════════════
    # Publishing
    # ═══════════════════════════════════════════════════════════════════════════

    def publish(self, session_id: str, event: ProgressEvent | dict) -> int:
        """
        Deliver an event to every subscriber of a session.

        Never blocks and never raises for delivery problems.

        Args:
            session_id: Target session
            event: ProgressEvent or a ready {"event", "data"} message

        Returns:
            Number of subscribers the event was queued for
        """
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug(f"Publish to unknown session {session_id} ignored")
            return 0

        message = event.to_message() if isinstance(event, ProgressEvent) else event
        session.touch()

        delivered = 0
        for subscriber in list(session.subscribers):
            subscriber.deliver(message)
            delivered += 1
        return delivered

    def relay_command(self, session_id: str, sender: Subscriber, command: object) -> int:
        """
        Relay an edit command to every other subscriber of the session.

        The payload is passed through uninterpreted.

        Raises:
            SessionNotFoundError: If the session does not exist
            SessionNotJoinedError: If the sender has not joined the session

        Returns:
            Number of subscribers the command was queued for
        """
        session = self.get_session(session_id)
        if sender not in session.subscribers:
            raise SessionNotJoinedError(session_id)

        message = _message("command", sessionId=session_id, command=command, sender=sender.id)
        session.touch()

        delivered = 0
        for subscriber in list(session.subscribers):
            if subscriber is sender:
                continue
            subscriber.deliver(message)
            delivered += 1
        return delivered

    # ═══════════════════════════════════════════════════════════════════════════
    # Pipeline lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    def attach_run(self, session_id: str, reserved: bool = False) -> None:
        """
        Mark a pipeline run as referencing the session and announce it.

        Args:
            session_id: Target session
            reserved: The run was already counted by create_session(reserve_run=True)

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        session = self.get_session(session_id)
        if not reserved:
            session.active_runs += 1
        session.running = True
        self.publish(session_id, _session_start(session))

    def release_run(self, session_id: str, status: str) -> None:
        """Announce the end of a run and drop the reference to the session."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        self.publish(session_id, _message("session-end", sessionId=session_id, status=status))
        session.active_runs = max(0, session.active_runs - 1)
        session.running = session.active_runs > 0
        self._maybe_destroy(session)

    def purge_expired(self, now: datetime | None = None) -> list[str]:
        """
        Destroy idle sessions with no run in progress past the TTL.

        A reservation whose run never started does not keep a session alive.

        Remaining subscribers receive a "session-end" with status "expired".

        Returns:
            Ids of purged sessions
        """
        now = now or datetime.now()
        expired = [
            session for session in self._sessions.values()
            if not session.running and now - session.last_activity > self.session_ttl
        ]
        for session in expired:
            message = _message("session-end", sessionId=session.session_id, status="expired")
            for subscriber in list(session.subscribers):
                subscriber.deliver(message)
                subscriber.sessions.discard(session.session_id)
            del self._sessions[session.session_id]
            logger.info(f"Session {session.session_id} expired")
        return [session.session_id for session in expired]

    def _maybe_destroy(self, session: Session) -> None:
        if len(session.subscribers) == 0 and session.active_runs == 0:
            self._sessions.pop(session.session_id, None)
            logger.info(f"Session {session.session_id} closed")
