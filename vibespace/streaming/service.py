"""Periodic and on-demand streaming of world moments to NATS."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

from ..models import ContextLevel, SharingSettings, Vibe, WorldMoment
from .moment_generator import GeneratorError, MomentGenerator, WorldSource
from .nats_client import (
    DEFAULT_PORT,
    DEFAULT_STREAM_ID,
    ConnectionStatus,
    NATSClient,
    NatsError,
)

logger = logging.getLogger(__name__)

DEFAULT_NATS_HOST = "nonlocal.info"
SYSTEM_CREATOR = "system"


class StreamingError(RuntimeError):
    """Raised when the streaming service cannot do what was asked."""


class _Publisher(Protocol):
    def connect(self) -> None: ...

    def close(self) -> None: ...

    def publish_world_moment(self, moment: WorldMoment, user_id: str) -> None: ...

    def publish_vibe_update(self, world_id: str, vibe: Optional[Vibe]) -> None: ...

    def is_connected(self) -> bool: ...

    def connection_status(self) -> ConnectionStatus: ...


class _Generator(Protocol):
    def generate_moment(self, world_id: str) -> WorldMoment: ...

    def generate_all_moments(self) -> list[WorldMoment]: ...


@dataclass
class StreamingConfig:
    """Settings for the streaming service.

    ``nats_url`` overrides ``nats_host``/``nats_port`` when set;
    ``stream_interval`` is in seconds.
    """

    nats_host: str = ""
    nats_port: int = 0
    nats_url: str = ""
    stream_id: str = ""
    stream_interval: float = 5.0
    auto_start: bool = False


def _is_unset(sharing: SharingSettings) -> bool:
    return (
        not sharing.is_public
        and not sharing.allowed_users
        and sharing.context_level is None
    )


class StreamingService:
    """Connects to NATS and publishes world moments, on a timer or on request."""

    def __init__(
        self,
        repo: WorldSource,
        config: StreamingConfig,
        nats_client: _Publisher,
        moment_generator: Optional[_Generator] = None,
    ) -> None:
        self.repo = repo
        self.config = config
        self.nats_client = nats_client
        self.moment_generator = moment_generator or MomentGenerator(repo)
        self._streaming = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    # Lifecycle

    def _connect(self) -> None:
        try:
            self.nats_client.connect()
        except (NatsError, OSError) as exc:
            raise StreamingError(f"failed to connect to NATS: {exc}") from exc

    def start(self) -> None:
        """Connect to NATS and begin streaming if ``auto_start`` is set."""
        with self._lock:
            self._connect()
            if self.config.auto_start:
                self._start_streaming()

    def stop(self) -> None:
        """Stop streaming and close the NATS connection."""
        with self._lock:
            self._stop_streaming()
            self.nats_client.close()

    def start_streaming(self) -> None:
        """Begin publishing moments for every world at each interval."""
        with self._lock:
            self._start_streaming()

    def stop_streaming(self) -> None:
        """Stop the periodic publishing; a no-op when not streaming."""
        with self._lock:
            self._stop_streaming()

    def is_streaming(self) -> bool:
        with self._lock:
            return self._streaming

    def _start_streaming(self) -> None:
        if self._streaming:
            return
        interval = self.config.stream_interval
        if interval <= 0:
            raise StreamingError(f"stream interval must be positive, got {interval}")
        if not self.nats_client.is_connected():
            self._connect()

        self._stop_event = threading.Event()
        self._streaming = True
        self._thread = threading.Thread(
            target=self._stream_moments,
            args=(interval, self._stop_event, self.moment_generator, self.nats_client),
            daemon=True,
        )
        self._thread.start()

    def _stop_streaming(self) -> None:
        if not self._streaming:
            return
        self._stop_event.set()
        self._streaming = False

    @staticmethod
    def _stream_moments(
        interval: float,
        stop_event: threading.Event,
        generator: _Generator,
        client: _Publisher,
    ) -> None:
        while not stop_event.wait(interval):
            try:
                moments = generator.generate_all_moments()
            except GeneratorError as exc:
                logger.error("Error generating moments: %s", exc)
                continue
            for moment in moments:
                creator_id = moment.creator_id or SYSTEM_CREATOR
                if _is_unset(moment.sharing):
                    # System-generated moments default to public, partial context.
                    moment.sharing = SharingSettings(
                        is_public=True,
                        allowed_users=[],
                        context_level=ContextLevel.PARTIAL,
                    )
                try:
                    client.publish_world_moment(moment, creator_id)
                except (NatsError, OSError) as exc:
                    logger.error(
                        "Error publishing moment for world %s: %s",
                        moment.world_id,
                        exc,
                    )

    # One-off publishing

    def stream_single_world(self, world_id: str, user_id: str) -> None:
        """Publish one moment of ``world_id`` on behalf of ``user_id``."""
        with self._lock:
            if not self.nats_client.is_connected():
                self._connect()

            try:
                moment = self.moment_generator.generate_moment(world_id)
            except LookupError as exc:
                raise StreamingError(f"failed to generate moment: {exc}") from exc

            if not moment.creator_id:
                moment.creator_id = user_id
            if user_id not in moment.viewers:
                moment.viewers.append(user_id)
            if _is_unset(moment.sharing):
                moment.sharing = SharingSettings(
                    is_public=False,
                    allowed_users=[],
                    context_level=ContextLevel.PARTIAL,
                )

            try:
                self.nats_client.publish_world_moment(moment, user_id)
            except (NatsError, OSError) as exc:
                raise StreamingError(f"failed to publish moment: {exc}") from exc

    def publish_vibe_update(self, world_id: str, vibe: Optional[Vibe]) -> None:
        """Publish the vibe now in effect for ``world_id``."""
        with self._lock:
            if not self.nats_client.is_connected():
                raise StreamingError("not connected to NATS")
            try:
                self.nats_client.publish_vibe_update(world_id, vibe)
            except (NatsError, OSError) as exc:
                raise StreamingError(f"failed to publish vibe update: {exc}") from exc


def new_streaming_service(
    repo: WorldSource, config: StreamingConfig
) -> StreamingService:
    """Fill in the config's defaults and build a service with a NATS client."""
    if config.nats_port == 0:
        config.nats_port = DEFAULT_PORT
    if not config.stream_id:
        config.stream_id = DEFAULT_STREAM_ID
    if not config.nats_url:
        host = config.nats_host or DEFAULT_NATS_HOST
        config.nats_url = f"nats://{host}:{config.nats_port}"
    client = NATSClient(config.nats_url, config.stream_id)
    return StreamingService(repo, config, client)