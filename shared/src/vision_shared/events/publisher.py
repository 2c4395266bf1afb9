"""Redis Streams publisher and consumer helpers."""
from __future__ import annotations

from redis.asyncio import Redis

from vision_shared.events.schemas import _FrozenModel

# Consumer group names
GROUP_PERCEPTION = "perception-workers"
GROUP_CONTROL = "perception-control"


def frames_stream(camera_id: str) -> str:
    return f"frames:{camera_id}"


def detections_stream(camera_id: str) -> str:
    return f"detections:{camera_id}"


def controls_stream(camera_id: str) -> str:
    return f"controls:{camera_id}"


def control_replies_stream(camera_id: str) -> str:
    return f"control_replies:{camera_id}"


async def publish(
    redis: Redis,
    stream: str,
    event: _FrozenModel,
    maxlen: int = 1000,
) -> str:
    """Serialize a Pydantic event and XADD it to a Redis Stream.

    Fields are written under their wire aliases and unset optionals
    (e.g. ``trackingId`` with tracking disabled) are dropped.

    Args:
        redis: Async Redis client.
        stream: Stream name.
        event: A frozen Pydantic model instance.
        maxlen: Approximate max stream length (MAXLEN ~).

    Returns:
        The Redis message ID of the newly added entry.
    """
    payload = {"data": event.model_dump_json(by_alias=True, exclude_none=True)}
    msg_id = await redis.xadd(stream, payload, maxlen=maxlen, approximate=True)
    return msg_id.decode() if isinstance(msg_id, bytes) else msg_id


async def ensure_consumer_group(
    redis: Redis,
    stream: str,
    group: str,
) -> None:
    """Create a consumer group if it does not exist, creating the stream too."""
    try:
        await redis.xgroup_create(stream, group, id="0", mkstream=True)
    except Exception as exc:
        # BUSYGROUP: the group already exists
        if "BUSYGROUP" not in str(exc):
            raise


async def read_group(
    redis: Redis,
    stream: str,
    group: str,
    consumer: str,
    count: int = 10,
    block_ms: int = 1000,
) -> list[tuple[str, dict]]:
    """Read new messages for ``consumer`` from a consumer group.

    Returns a list of (message_id, data_dict) tuples with keys and values
    decoded to str.
    """
    results = await redis.xreadgroup(
        groupname=group,
        consumername=consumer,
        streams={stream: ">"},
        count=count,
        block=block_ms,
    )
    if not results:
        return []
    messages = []
    for _stream, entries in results:
        for msg_id, fields in entries:
            msg_id_str = msg_id.decode() if isinstance(msg_id, bytes) else msg_id
            decoded = {
                k.decode() if isinstance(k, bytes) else k: (
                    v.decode() if isinstance(v, bytes) else v
                )
                for k, v in fields.items()
            }
            messages.append((msg_id_str, decoded))
    return messages


async def ack(redis: Redis, stream: str, group: str, *msg_ids: str) -> None:
    """Acknowledge processed messages."""
    await redis.xack(stream, group, *msg_ids)
