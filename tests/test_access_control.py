import pytest

from vibespace.models import (
    BinaryData,
    ContextLevel,
    DataEncoding,
    SensorData,
    SharingSettings,
    Vibe,
    WorldMoment,
)
from vibespace.streaming.access_control import can_access_world, get_accessible_content

CREATOR = "creator123"
ALLOWED = "user456"
STRANGER = "stranger789"

CUSTOM_DATA = '{"secretKey": "12345", "privateInfo": "Confidential data"}'


def _vibe_sensor():
    return SensorData(temperature=22.5, light=0.8, movement=0.9)


def _world_sensor():
    return SensorData(temperature=25.5, humidity=0.7)


def _test_vibe():
    return Vibe(id="vibe1", name="Test Vibe", sensor_data=_vibe_sensor())


@pytest.mark.parametrize(
    "user_id, moment, expected",
    [
        (
            CREATOR,
            WorldMoment(
                world_id="world1",
                creator_id=CREATOR,
                sharing=SharingSettings(is_public=False, allowed_users=[]),
            ),
            True,
        ),
        (
            ALLOWED,
            WorldMoment(
                world_id="world2",
                creator_id=CREATOR,
                sharing=SharingSettings(
                    is_public=False, allowed_users=[ALLOWED, "otheruser"]
                ),
            ),
            True,
        ),
        (
            STRANGER,
            WorldMoment(
                world_id="world3",
                creator_id=CREATOR,
                sharing=SharingSettings(is_public=True, allowed_users=[]),
            ),
            True,
        ),
        (
            STRANGER,
            WorldMoment(
                world_id="world4",
                creator_id=CREATOR,
                sharing=SharingSettings(is_public=False, allowed_users=[]),
            ),
            False,
        ),
        (
            STRANGER,
            WorldMoment(
                world_id="world5",
                creator_id=CREATOR,
                sharing=SharingSettings(is_public=False, allowed_users=[ALLOWED]),
            ),
            False,
        ),
        (
            STRANGER,
            WorldMoment(world_id="world6", creator_id=CREATOR, sharing=SharingSettings()),
            False,
        ),
    ],
    ids=[
        "creator-private",
        "allowed-shared",
        "anyone-public",
        "stranger-private",
        "stranger-not-allowed",
        "default-private",
    ],
)
def test_can_access_world(user_id, moment, expected):
    assert can_access_world(user_id, moment) is expected


def _moment(world_id, *, is_public, allowed, level):
    return WorldMoment(
        world_id=world_id,
        creator_id=CREATOR,
        custom_data=CUSTOM_DATA,
        sensor_data=_world_sensor(),
        vibe=_test_vibe(),
        sharing=SharingSettings(
            is_public=is_public, allowed_users=list(allowed), context_level=level
        ),
    )


@pytest.mark.parametrize(
    "user_id, moment, expect_custom, expect_vibe_data",
    [
        (CREATOR, _moment("world1", is_public=False, allowed=[], level=ContextLevel.FULL), True, True),
        (ALLOWED, _moment("world3", is_public=False, allowed=[ALLOWED], level=ContextLevel.FULL), True, True),
        (ALLOWED, _moment("world4", is_public=False, allowed=[ALLOWED], level=ContextLevel.PARTIAL), False, True),
        (ALLOWED, _moment("world5", is_public=False, allowed=[ALLOWED], level=ContextLevel.NONE), False, False),
        (STRANGER, _moment("world6", is_public=True, allowed=[], level=ContextLevel.NONE), False, False),
    ],
    ids=["creator-full", "full", "partial", "none", "public-none"],
)
def test_get_accessible_content(user_id, moment, expect_custom, expect_vibe_data):
    result = get_accessible_content(user_id, moment)

    assert result is not None
    assert result.world_id == moment.world_id
    assert result.creator_id == moment.creator_id

    if expect_custom:
        assert result.custom_data == moment.custom_data
    else:
        assert result.custom_data == ""

    if moment.sharing.context_level == ContextLevel.NONE:
        assert result.sensor_data == SensorData()
    else:
        assert result.sensor_data == moment.sensor_data

    assert result.vibe is not None
    if expect_vibe_data:
        assert result.vibe.sensor_data == moment.vibe.sensor_data
    else:
        assert result.vibe.sensor_data == SensorData()


def test_no_access_returns_none():
    moment = WorldMoment(
        world_id="world2",
        creator_id=CREATOR,
        sharing=SharingSettings(is_public=False, context_level=ContextLevel.FULL),
    )
    assert get_accessible_content(STRANGER, moment) is None


def test_creator_receives_original_object():
    moment = _moment("w", is_public=True, allowed=[], level=ContextLevel.NONE)
    assert get_accessible_content(CREATOR, moment) is moment


def test_filtering_leaves_original_untouched():
    moment = _moment("w", is_public=True, allowed=[], level=ContextLevel.NONE)
    moment.attach_balanced_ternary_from_string("10T")
    get_accessible_content(STRANGER, moment)
    assert moment.custom_data == CUSTOM_DATA
    assert moment.sensor_data == _world_sensor()
    assert moment.vibe.sensor_data == _vibe_sensor()
    assert str(moment.balanced_ternary_data) == "10T"


def test_none_level_drops_binary_and_ternary():
    moment = _moment("w", is_public=True, allowed=[], level=ContextLevel.NONE)
    moment.attach_binary_data(b"\x01\x02", DataEncoding.BINARY, "image/png")
    moment.attach_balanced_ternary_from_decimal(4)
    result = get_accessible_content(STRANGER, moment)
    assert result.binary_data is None
    assert result.balanced_ternary_data is None


@pytest.mark.parametrize(
    "fmt, kept",
    [
        ("application/octet-stream", False),
        ("application/binary", False),
        ("image/png", True),
    ],
)
def test_partial_level_binary_formats(fmt, kept):
    moment = _moment("w", is_public=True, allowed=[], level=ContextLevel.PARTIAL)
    moment.binary_data = BinaryData(data=b"\x01", encoding=DataEncoding.BINARY, format=fmt)
    moment.attach_balanced_ternary_from_string("1T")
    result = get_accessible_content(STRANGER, moment)
    assert (result.binary_data is not None) is kept
    assert str(result.balanced_ternary_data) == "1T"