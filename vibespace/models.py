"""Data model for vibes, worlds and the moments streamed from them."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Type, TypeVar, Union

ENERGY_MIN = 0.0
ENERGY_MAX = 1.0
MOVEMENT_MIN = 0.0
MOVEMENT_MAX = 1.0

MOOD_CALM = "calm"
MOOD_FOCUSED = "focused"
MOOD_RELAXED = "relaxed"
MOOD_ENERGETIC = "energetic"
MOOD_CREATIVE = "creative"
MOOD_CONTEMPLATIVE = "contemplative"
MOOD_PRODUCTIVE = "productive"
MOOD_NEUTRAL = "neutral"

VIBE_SCHEME = "vibe://"
WORLD_SCHEME = "world://"
VIBE_LIST_URI = "vibe://list"
WORLD_LIST_URI = "world://list"
WORLD_VIBE_SUB_URI = "/vibe"

_E = TypeVar("_E", bound=Enum)


def _parse_enum(enum_cls: Type[_E], value: Any) -> Optional[_E]:
    """Parse an enum value, treating a missing or empty value as unset."""
    if value is None or value == "":
        return None
    return enum_cls(value)


def _enum_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    return str(value)


class ContextLevel(str, Enum):
    """How much context is shared with viewers."""

    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class WorldType(str, Enum):
    """The kind of space a world describes."""

    PHYSICAL = "PHYSICAL"
    VIRTUAL = "VIRTUAL"
    HYBRID = "HYBRID"


class DataEncoding(str, Enum):
    """Encoding of a binary payload."""

    BINARY = "binary"
    BASE64 = "base64"
    BALANCED_TERNARY = "balanced-ternary"
    HEX = "hex"
    JSON = "json"


def _parse_encoding(value: Any) -> Union[DataEncoding, str]:
    if value is None:
        return ""
    try:
        return DataEncoding(value)
    except ValueError:
        return str(value)


class BinaryDataError(ValueError):
    """Raised when binary data cannot be attached or decoded."""


_SENSOR_FIELDS = ("temperature", "humidity", "light", "sound", "movement")


@dataclass
class SensorData:
    """Environmental readings; every value is optional."""

    temperature: Optional[float] = None  # Celsius
    humidity: Optional[float] = None  # percent
    light: Optional[float] = None  # lux
    sound: Optional[float] = None  # dB
    movement: Optional[float] = None  # 0-1

    def to_dict(self) -> dict[str, float]:
        return {
            name: getattr(self, name)
            for name in _SENSOR_FIELDS
            if getattr(self, name) is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> SensorData:
        data = data or {}
        return cls(
            **{
                name: float(data[name])
                for name in _SENSOR_FIELDS
                if data.get(name) is not None
            }
        )


@dataclass
class SharingSettings:
    """Who may see a world, vibe or moment, and how much of it."""

    is_public: bool = False
    allowed_users: list[str] = field(default_factory=list)
    context_level: Optional[ContextLevel] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"isPublic": self.is_public}
        if self.allowed_users:
            result["allowedUsers"] = list(self.allowed_users)
        result["contextLevel"] = _enum_value(self.context_level)
        return result

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> SharingSettings:
        data = data or {}
        return cls(
            is_public=bool(data.get("isPublic", False)),
            allowed_users=list(data.get("allowedUsers") or []),
            context_level=_parse_enum(ContextLevel, data.get("contextLevel")),
        )


@dataclass
class Vibe:
    """The emotional atmosphere of a space."""

    id: str = ""
    name: str = ""
    description: str = ""
    energy: float = 0.0
    mood: str = ""
    colors: list[str] = field(default_factory=list)
    sensor_data: SensorData = field(default_factory=SensorData)
    creator_id: str = ""
    sharing: SharingSettings = field(default_factory=SharingSettings)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "energy": self.energy,
            "mood": self.mood,
            "colors": list(self.colors),
            "sensorData": self.sensor_data.to_dict(),
        }
        if self.creator_id:
            result["creatorId"] = self.creator_id
        result["sharing"] = self.sharing.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Vibe:
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            energy=float(data.get("energy", 0.0)),
            mood=data.get("mood", ""),
            colors=list(data.get("colors") or []),
            sensor_data=SensorData.from_dict(data.get("sensorData")),
            creator_id=data.get("creatorId", ""),
            sharing=SharingSettings.from_dict(data.get("sharing")),
        )


@dataclass
class World:
    """A physical, virtual or hybrid space."""

    id: str = ""
    name: str = ""
    description: str = ""
    type: Optional[WorldType] = None
    location: str = ""
    current_vibe: str = ""
    size: str = ""
    features: list[str] = field(default_factory=list)
    creator_id: str = ""
    sharing: SharingSettings = field(default_factory=SharingSettings)
    occupancy: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": _enum_value(self.type),
        }
        if self.location:
            result["location"] = self.location
        if self.current_vibe:
            result["currentVibe"] = self.current_vibe
        if self.size:
            result["size"] = self.size
        if self.features:
            result["features"] = list(self.features)
        if self.creator_id:
            result["creatorId"] = self.creator_id
        result["sharing"] = self.sharing.to_dict()
        if self.occupancy:
            result["occupancy"] = self.occupancy
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> World:
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            type=_parse_enum(WorldType, data.get("type")),
            location=data.get("location", ""),
            current_vibe=data.get("currentVibe", ""),
            size=data.get("size", ""),
            features=list(data.get("features") or []),
            creator_id=data.get("creatorId", ""),
            sharing=SharingSettings.from_dict(data.get("sharing")),
            occupancy=int(data.get("occupancy", 0)),
        )


@dataclass
class BinaryData:
    """A binary payload together with its encoding and format."""

    data: bytes = b""
    encoding: Union[DataEncoding, str] = ""
    format: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"data": base64.b64encode(self.data).decode("ascii")}
        encoding = _enum_value(self.encoding)
        if encoding:
            result["encoding"] = encoding
        if self.format:
            result["format"] = self.format
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BinaryData:
        raw = data.get("data") or ""
        try:
            payload = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise BinaryDataError(f"invalid base64 payload: {exc}") from exc
        return cls(
            data=payload,
            encoding=_parse_encoding(data.get("encoding")),
            format=data.get("format", ""),
        )


class BalancedTernaryData(tuple):
    """Balanced ternary digits, most significant first: -1, 0 or 1 each."""

    __slots__ = ()

    _SYMBOLS = {-1: "T", 0: "0", 1: "1"}

    def __new__(cls, digits: Iterable[int] = ()) -> BalancedTernaryData:
        return super().__new__(cls, (int(d) for d in digits))

    def __str__(self) -> str:
        return "".join(self._SYMBOLS.get(d, "0") for d in self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"

    def to_decimal(self) -> int:
        """Return the integer these digits represent."""
        result = 0
        for digit in self:
            result = result * 3 + digit
        return result


def balanced_ternary_from_string(s: str) -> BalancedTernaryData:
    """Parse 'T', 't' or '-' as -1, '1' as 1; anything else becomes 0."""
    values = {"T": -1, "t": -1, "-": -1, "1": 1}
    return BalancedTernaryData(values.get(c, 0) for c in s)


def from_decimal(n: int) -> BalancedTernaryData:
    """Convert an integer to balanced ternary."""
    if n == 0:
        return BalancedTernaryData((0,))
    digits = []
    remaining = abs(n)
    while remaining:
        remaining, rem = divmod(remaining, 3)
        if rem == 2:
            digits.append(-1)
            remaining += 1
        else:
            digits.append(rem)
    sign = -1 if n < 0 else 1
    return BalancedTernaryData(sign * d for d in reversed(digits))


@dataclass
class WorldMoment:
    """The state of a world at one point in time."""

    world_id: str = ""
    timestamp: int = 0  # Unix milliseconds
    vibe_id: str = ""
    vibe: Optional[Vibe] = None
    sensor_data: SensorData = field(default_factory=SensorData)
    occupancy: int = 0
    activity: float = 0.0
    custom_data: str = ""
    binary_data: Optional[BinaryData] = None
    balanced_ternary_data: Optional[BalancedTernaryData] = None
    creator_id: str = ""
    viewers: list[str] = field(default_factory=list)
    sharing: SharingSettings = field(default_factory=SharingSettings)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"worldId": self.world_id, "timestamp": self.timestamp}
        if self.vibe_id:
            result["vibeId"] = self.vibe_id
        if self.vibe is not None:
            result["vibe"] = self.vibe.to_dict()
        result["sensorData"] = self.sensor_data.to_dict()
        if self.occupancy:
            result["occupancy"] = self.occupancy
        if self.activity:
            result["activity"] = self.activity
        if self.custom_data:
            result["customData"] = self.custom_data
        if self.binary_data is not None:
            result["binaryData"] = self.binary_data.to_dict()
        if self.balanced_ternary_data is not None:
            result["balancedTernaryData"] = list(self.balanced_ternary_data)
        if self.creator_id:
            result["creatorId"] = self.creator_id
        if self.viewers:
            result["viewers"] = list(self.viewers)
        result["sharing"] = self.sharing.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorldMoment:
        vibe = data.get("vibe")
        binary = data.get("binaryData")
        ternary = data.get("balancedTernaryData")
        return cls(
            world_id=data.get("worldId", ""),
            timestamp=int(data.get("timestamp", 0)),
            vibe_id=data.get("vibeId", ""),
            vibe=Vibe.from_dict(vibe) if vibe is not None else None,
            sensor_data=SensorData.from_dict(data.get("sensorData")),
            occupancy=int(data.get("occupancy", 0)),
            activity=float(data.get("activity", 0.0)),
            custom_data=data.get("customData", ""),
            binary_data=BinaryData.from_dict(binary) if binary is not None else None,
            balanced_ternary_data=(
                BalancedTernaryData(ternary) if ternary is not None else None
            ),
            creator_id=data.get("creatorId", ""),
            viewers=list(data.get("viewers") or []),
            sharing=SharingSettings.from_dict(data.get("sharing")),
        )

    def to_json(self) -> bytes:
        """Serialise the moment as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    def attach_binary_data(
        self, data: bytes, encoding: Union[DataEncoding, str], format: str
    ) -> None:
        """Store ``data`` encoded as ``encoding``."""
        try:
            kind = DataEncoding(encoding)
        except ValueError:
            raise BinaryDataError(
                f"unsupported encoding format: {_enum_value(encoding)}"
            ) from None
        raw = bytes(data)
        if kind is DataEncoding.BINARY:
            stored = raw
        elif kind is DataEncoding.BASE64:
            stored = base64.b64encode(raw)
        elif kind is DataEncoding.HEX:
            stored = binascii.hexlify(raw)
        else:
            raise BinaryDataError(f"unsupported encoding format: {kind.value}")
        self.binary_data = BinaryData(data=stored, encoding=kind, format=format)

    def get_binary_data(self) -> bytes:
        """Return the attached payload decoded from its encoding."""
        if self.binary_data is None:
            raise BinaryDataError("no binary data attached")
        encoding = self.binary_data.encoding
        payload = self.binary_data.data
        if encoding == DataEncoding.BINARY:
            return payload
        if encoding == DataEncoding.BASE64:
            try:
                return base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise BinaryDataError(f"failed to decode base64: {exc}") from exc
        if encoding == DataEncoding.HEX:
            try:
                return binascii.unhexlify(payload)
            except (binascii.Error, ValueError) as exc:
                raise BinaryDataError(f"failed to decode hex: {exc}") from exc
        raise BinaryDataError(f"unsupported encoding format: {_enum_value(encoding)}")

    def attach_balanced_ternary_data(self, data: Iterable[int]) -> None:
        self.balanced_ternary_data = BalancedTernaryData(data)

    def attach_balanced_ternary_from_string(self, ternary_str: str) -> None:
        self.balanced_ternary_data = balanced_ternary_from_string(ternary_str)

    def attach_balanced_ternary_from_decimal(self, decimal: int) -> None:
        self.balanced_ternary_data = from_decimal(decimal)