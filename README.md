# vibespace

Vibes, worlds and the moments that stream out of them.

`vibespace` models the atmosphere of physical, virtual and hybrid spaces and
publishes snapshots of them to a NATS server. It has no runtime dependencies
beyond the standard library.

## What is in the package

- `vibespace.models` – the dataclasses `Vibe`, `World`, `WorldMoment`,
  `SensorData`, `SharingSettings` and `BinaryData`, the enums `ContextLevel`,
  `WorldType` and `DataEncoding`, and `BalancedTernaryData`. Each dataclass
  has `to_dict()` and `from_dict()` for JSON-ready dictionaries with
  camelCase keys; `WorldMoment.to_json()` gives compact JSON bytes.
- `vibespace.repository` – `Repository`, a thread-safe in-memory store of
  vibes and worlds that copies values in and out and keeps world-to-vibe
  references consistent.
- `vibespace.streaming.access_control` – `can_access_world` and
  `get_accessible_content`.
- `vibespace.streaming.moment_generator` – `MomentGenerator`, which builds
  `WorldMoment` snapshots from a repository, and `calculate_activity`.
- `vibespace.streaming.nats_client` – `NATSClient`, a publish-only
  `SocketNatsConnection`, a token-bucket `RateLimiter` and
  `ConnectionStatus`.
- `vibespace.streaming.service` – `StreamingService`, `StreamingConfig` and
  `new_streaming_service`, for publishing moments on a timer or on demand.
- `vibespace.rpc.methods` and `vibespace.rpc.server_wrapper` – a registry of
  the supported JSON-RPC methods, request builders, fuzzy method lookup, and
  a wrapper that normalises method-name variants.

## Balanced ternary

Digits are −1, 0 and 1, written `T`, `0` and `1`, most significant first.

```python
from vibespace.models import balanced_ternary_from_string, from_decimal

digits = balanced_ternary_from_string("10T")
str(digits)                    # "10T"
digits.to_decimal()            # 8

from_decimal(40).to_decimal()  # 40
```

`T`, `t` and `-` are read as −1, `1` as 1 and every other character as 0.

## Binary payloads on a moment

```python
from vibespace.models import DataEncoding, WorldMoment

moment = WorldMoment(world_id="test-world", timestamp=1234567890)
moment.attach_binary_data(b"\x01\x02\x03", DataEncoding.BASE64, "application/octet-stream")
moment.get_binary_data()       # b"\x01\x02\x03"
```

`binary`, `base64` and `hex` are supported. An unsupported encoding, asking
for data when none is attached, or stored data that does not decode in its
declared encoding raises `BinaryDataError` (a `ValueError`).

Ternary data is attached with `attach_balanced_ternary_data`,
`attach_balanced_ternary_from_string` or `attach_balanced_ternary_from_decimal`.

## The repository

```python
from vibespace.models import Vibe, World, WorldType
from vibespace.repository import Repository

repo = Repository(include_sample_data=False)
repo.add_vibe(Vibe(id="calm", name="Calm", energy=0.3, mood="calm"))
repo.add_world(World(id="lounge", name="Lounge", type=WorldType.PHYSICAL, current_vibe="calm"))
repo.get_world_vibe("lounge").name   # "Calm"
```

`Repository()` starts with three sample vibes and three sample worlds. Missing
items raise `VibeNotFoundError` or `WorldNotFoundError`; deleting a vibe that
a world still uses raises `VibeInUseError`. All three derive from
`RepositoryError`, a `LookupError`. Adding or updating a world whose
`current_vibe` names no stored vibe raises `VibeNotFoundError`.

## Who sees what

```python
from vibespace.models import ContextLevel, SharingSettings, WorldMoment
from vibespace.streaming.access_control import can_access_world, get_accessible_content

moment = WorldMoment(
    world_id="world1",
    creator_id="creator123",
    custom_data='{"note": "private"}',
    sharing=SharingSettings(allowed_users=["user456"], context_level=ContextLevel.PARTIAL),
)
can_access_world("user456", moment)                    # True
get_accessible_content("user456", moment).custom_data  # ""
get_accessible_content("stranger789", moment)          # None
```

The creator always gets the moment itself. A moment that is neither public
nor shared with anyone is visible to its creator alone; a public moment is
visible to everyone; otherwise a user must be in `allowed_users`. Others get
a filtered copy:

- `none` – custom data, sensor readings, binary and ternary payloads, and the
  vibe's sensor readings are removed;
- `partial` – custom data is removed, and binary data whose format is
  `application/octet-stream` or `application/binary` is dropped;
- `full` – nothing is removed.

## Generating and publishing moments

```python
from vibespace.repository import Repository
from vibespace.streaming.moment_generator import MomentGenerator
from vibespace.streaming.service import StreamingConfig, new_streaming_service

repo = Repository()
moments = MomentGenerator(repo).generate_all_moments()

service = new_streaming_service(
    repo, StreamingConfig(nats_url="nats://localhost:4222", stream_id="demo", stream_interval=5.0)
)
service.start()                                   # connects; streams if auto_start is set
service.start_streaming()                         # publish every world each interval
service.stream_single_world("office-space", "user-1")
service.stop()
```

A moment's activity is its world's occupancy divided by 100, capped at 1.
`new_streaming_service` fills in port 4222, stream ID `ies` and host
`nonlocal.info` when they are not given; `stream_interval` is in seconds.

`NATSClient` publishes each moment to `<stream>.world.moment.<world>` when it
is public, to `<stream>.world.moment.<world>.user.<creator>`, and to
`<stream>.world.moment.<world>.user.<user>` for every allowed user, each with
the content that user may see. Vibe updates go to `<stream>.world.vibe.<world>`.
Publishing is rate limited to a burst of 100 messages, then 10 per second.
Failures raise `NatsError` from the client and `StreamingError` from the
service.

## JSON-RPC method helpers

```python
from vibespace.rpc.methods import format_resource_request, get_method_suggestions
from vibespace.rpc.server_wrapper import normalize_method_name, wrap_mcp_server

format_resource_request("world://list", "request-1")
normalize_method_name("resource/read")     # "method.resource.read"
get_method_suggestions("completely.wrong")
```

`wrap_mcp_server` takes any object with a `handle_message(message)` method.
`MCPMethodWrapper.handle_message` rewrites common method-name variants to
`method.resource.read` or `method.tool.call` before forwarding, and appends
suggestions to the message of a result whose error code is -32601.

## What the package does not do

- It has no HTTP server and no command-line program; it registers no tools or
  resources with a JSON-RPC server. `MCPMethodWrapper` only sits in front of
  a handler you supply.
- Storage is in memory only; nothing is written to disk.
- The NATS connection only publishes. It does not subscribe, use TLS or
  reconnect by itself; calling `NATSClient.connect()` again opens a new
  connection.

## Running the tests

Install the `test` extra and run `pytest` from the project root.