"""Thread-safe in-memory store of vibes and worlds."""

from __future__ import annotations

import copy
import threading

from .models import SensorData, Vibe, World, WorldType


class RepositoryError(LookupError):
    """Base class for repository lookups and consistency failures."""

    default_message = "repository error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class VibeNotFoundError(RepositoryError):
    """No vibe exists with the requested ID."""

    default_message = "vibe not found"


class WorldNotFoundError(RepositoryError):
    """No world exists with the requested ID."""

    default_message = "world not found"


class VibeInUseError(RepositoryError):
    """The vibe is the current vibe of at least one world."""

    default_message = "vibe is currently used by one or more worlds"


def _sample_vibes() -> list[Vibe]:
    return [
        Vibe(
            id="focused-flow",
            name="Focused Flow",
            description="A concentration-enhancing atmosphere for deep work",
            energy=0.7,
            mood="focused",
            colors=["#1A2B3C", "#2C4B6C", "#3C5B7C"],
            sensor_data=SensorData(
                temperature=21.5, humidity=45.0, light=500.0, sound=30.0, movement=0.1
            ),
        ),
        Vibe(
            id="calm-clarity",
            name="Calm Clarity",
            description="A peaceful atmosphere for meditation and mindfulness",
            energy=0.3,
            mood="calm",
            colors=["#8ECAE6", "#219EBC", "#023047"],
            sensor_data=SensorData(
                temperature=23.0, humidity=50.0, light=300.0, sound=20.0, movement=0.05
            ),
        ),
        Vibe(
            id="energetic-spark",
            name="Energetic Spark",
            description="A high-energy atmosphere for creativity and brainstorming",
            energy=0.9,
            mood="energetic",
            colors=["#F94144", "#F8961E", "#F9C74F"],
            sensor_data=SensorData(
                temperature=22.0, humidity=40.0, light=800.0, sound=60.0, movement=0.8
            ),
        ),
    ]


def _sample_worlds() -> list[World]:
    return [
        World(
            id="office-space",
            name="Modern Office",
            description="An open-concept workspace designed for collaboration",
            type=WorldType.PHYSICAL,
            location="Floor 3, Building A",
            current_vibe="focused-flow",
            size="Medium (500 sqm)",
            features=["standing desks", "natural light", "acoustic panels"],
        ),
        World(
            id="virtual-garden",
            name="Zen Garden",
            description="A virtual peaceful garden for mental relaxation",
            type=WorldType.VIRTUAL,
            location="https://garden.vibespace.io",
            current_vibe="calm-clarity",
            features=["water sounds", "interactive plants", "meditation spots"],
        ),
        World(
            id="hybrid-studio",
            name="Creative Studio",
            description=(
                "A hybrid space for both physical and virtual creative collaboration"
            ),
            type=WorldType.HYBRID,
            location="Floor 5, Innovation Center + VR instance",
            current_vibe="energetic-spark",
            size="Large (1000 sqm physical + unlimited virtual)",
            features=["AR overlays", "digital whiteboard", "spatial audio"],
        ),
    ]


class Repository:
    """Stores vibes and worlds, keeping world-to-vibe references consistent.

    Values are copied on the way in and out, so callers never share state
    with the store.
    """

    def __init__(self, include_sample_data: bool = True) -> None:
        self._vibes: dict[str, Vibe] = {}
        self._worlds: dict[str, World] = {}
        self._lock = threading.RLock()
        if include_sample_data:
            for vibe in _sample_vibes():
                self._vibes[vibe.id] = vibe
            for world in _sample_worlds():
                self._worlds[world.id] = world

    # Vibes

    def get_vibe(self, vibe_id: str) -> Vibe:
        with self._lock:
            try:
                return copy.deepcopy(self._vibes[vibe_id])
            except KeyError:
                raise VibeNotFoundError() from None

    def get_all_vibes(self) -> list[Vibe]:
        with self._lock:
            return [copy.deepcopy(v) for v in self._vibes.values()]

    def add_vibe(self, vibe: Vibe) -> None:
        with self._lock:
            self._vibes[vibe.id] = copy.deepcopy(vibe)

    def update_vibe(self, vibe: Vibe) -> None:
        with self._lock:
            if vibe.id not in self._vibes:
                raise VibeNotFoundError()
            self._vibes[vibe.id] = copy.deepcopy(vibe)

    def delete_vibe(self, vibe_id: str) -> None:
        with self._lock:
            if vibe_id not in self._vibes:
                raise VibeNotFoundError()
            if any(w.current_vibe == vibe_id for w in self._worlds.values()):
                raise VibeInUseError()
            del self._vibes[vibe_id]

    # Worlds

    def get_world(self, world_id: str) -> World:
        with self._lock:
            try:
                return copy.deepcopy(self._worlds[world_id])
            except KeyError:
                raise WorldNotFoundError() from None

    def get_all_worlds(self) -> list[World]:
        with self._lock:
            return [copy.deepcopy(w) for w in self._worlds.values()]

    def add_world(self, world: World) -> None:
        with self._lock:
            self._check_vibe_reference(world)
            self._worlds[world.id] = copy.deepcopy(world)

    def update_world(self, world: World) -> None:
        with self._lock:
            if world.id not in self._worlds:
                raise WorldNotFoundError()
            self._check_vibe_reference(world)
            self._worlds[world.id] = copy.deepcopy(world)

    def delete_world(self, world_id: str) -> None:
        with self._lock:
            if world_id not in self._worlds:
                raise WorldNotFoundError()
            del self._worlds[world_id]

    # Relations

    def set_world_vibe(self, world_id: str, vibe_id: str) -> None:
        with self._lock:
            world = self._worlds.get(world_id)
            if world is None:
                raise WorldNotFoundError()
            if vibe_id not in self._vibes:
                raise VibeNotFoundError()
            world.current_vibe = vibe_id

    def get_world_vibe(self, world_id: str) -> Vibe:
        with self._lock:
            world = self._worlds.get(world_id)
            if world is None:
                raise WorldNotFoundError()
            vibe = self._vibes.get(world.current_vibe) if world.current_vibe else None
            if vibe is None:
                raise VibeNotFoundError()
            return copy.deepcopy(vibe)

    def _check_vibe_reference(self, world: World) -> None:
        if world.current_vibe and world.current_vibe not in self._vibes:
            raise VibeNotFoundError()