"""Builds world moments from the state held in a repository."""

from __future__ import annotations

import time
from typing import Optional, Protocol

from ..models import ContextLevel, SensorData, SharingSettings, Vibe, World, WorldMoment


class WorldSource(Protocol):
    """The repository operations a moment generator needs."""

    def get_world(self, world_id: str) -> World: ...

    def get_all_worlds(self) -> Optional[list[World]]: ...

    def get_world_vibe(self, world_id: str) -> Vibe: ...


class GeneratorError(RuntimeError):
    """Raised when moments cannot be generated at all."""


def calculate_activity(world: World) -> float:
    """Activity level from occupancy: one hundredth per person, capped at 1."""
    return min(world.occupancy / 100.0, 1.0)


class MomentGenerator:
    """Creates :class:`WorldMoment` snapshots of worlds."""

    def __init__(self, repo: WorldSource) -> None:
        self._repo = repo

    def generate_moment(self, world_id: str) -> WorldMoment:
        """Snapshot one world; lookup errors from the repository propagate."""
        world = self._repo.get_world(world_id)

        try:
            vibe: Optional[Vibe] = self._repo.get_world_vibe(world_id)
        except LookupError:
            vibe = None

        if world.sharing.allowed_users or world.sharing.is_public:
            sharing = SharingSettings(
                is_public=world.sharing.is_public,
                allowed_users=list(world.sharing.allowed_users),
                context_level=world.sharing.context_level,
            )
        else:
            sharing = SharingSettings(
                is_public=False, allowed_users=[], context_level=ContextLevel.PARTIAL
            )

        return WorldMoment(
            world_id=world_id,
            timestamp=time.time_ns() // 1_000_000,
            vibe_id=world.current_vibe,
            vibe=vibe,
            sensor_data=SensorData(),
            occupancy=world.occupancy,
            activity=calculate_activity(world),
            custom_data="",
            creator_id=world.creator_id,
            viewers=[],
            sharing=sharing,
        )

    def generate_all_moments(self) -> list[WorldMoment]:
        """Snapshot every world, skipping any that fail to load."""
        worlds = self._repo.get_all_worlds()
        if worlds is None:
            raise GeneratorError("failed to get worlds: nil slice returned")

        moments = []
        for world in worlds:
            try:
                moments.append(self.generate_moment(world.id))
            except LookupError:
                continue
        return moments