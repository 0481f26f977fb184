"""Per-user visibility rules for world moments."""

from __future__ import annotations

import dataclasses
from typing import Optional

from ..models import ContextLevel, SensorData, WorldMoment

_OPAQUE_FORMATS = frozenset({"application/octet-stream", "application/binary"})


def can_access_world(user_id: str, moment: WorldMoment) -> bool:
    """Return whether ``user_id`` may see ``moment``."""
    sharing = moment.sharing
    if not sharing.is_public and not sharing.allowed_users:
        return user_id == moment.creator_id
    if sharing.is_public or user_id == moment.creator_id:
        return True
    return user_id in sharing.allowed_users


def get_accessible_content(
    user_id: str, moment: WorldMoment
) -> Optional[WorldMoment]:
    """Return the part of ``moment`` that ``user_id`` may see, or None.

    The creator receives the moment itself; anyone else gets a filtered copy
    and the original is left untouched.
    """
    if not can_access_world(user_id, moment):
        return None
    if user_id == moment.creator_id:
        return moment

    result = dataclasses.replace(moment)
    level = moment.sharing.context_level

    if level == ContextLevel.NONE:
        result.custom_data = ""
        result.sensor_data = SensorData()
        result.binary_data = None
        result.balanced_ternary_data = None
        if result.vibe is not None:
            result.vibe = dataclasses.replace(result.vibe, sensor_data=SensorData())
    elif level == ContextLevel.PARTIAL:
        result.custom_data = ""
        if (
            result.binary_data is not None
            and result.binary_data.format in _OPAQUE_FORMATS
        ):
            result.binary_data = None

    return result