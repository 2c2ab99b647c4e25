# asset_agent/bus/message_bus.py
"""
New-generation (JSON) message bus on top of the mailbox/stream broker.

A message is framed as ``__METADATA_START``, key/value pairs,
``__METADATA_END`` followed by the user data strings. Requests are mailbox
messages addressed to the ``to`` agent with the queue name as subject;
publications go to a stream named after the topic.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from asset_agent.bus.broker import Broker, BusMessage, MlmClient, frame_str
from asset_agent.core.errors import BusError

METADATA_START = "__METADATA_START"
METADATA_END = "__METADATA_END"

# Queues / topics of the asset agent
ASSET_QUERY_QUEUE = "FTY.Q.ASSET.QUERY"
TOPIC_CREATED = "FTY.T.ASSET.CREATED"
TOPIC_UPDATED = "FTY.T.ASSET.UPDATED"
TOPIC_DELETED = "FTY.T.ASSET.DELETED"

SUBJECT_CREATED = "CREATED"
SUBJECT_UPDATED = "UPDATED"
SUBJECT_DELETED = "DELETED"
SUBJECT_GET = "GET"


class MessageStatus(str, Enum):
    OK = "ok"
    ERROR = "ko"


@dataclass
class MessageMeta:
    reply_to: str = ""
    from_: str = ""
    to: str = ""
    subject: str = ""
    status: MessageStatus = MessageStatus.OK
    timeout: str = ""
    correlation_id: str = ""

    _KEYS = (
        ("reply_to", "REPLY_TO"),
        ("from_", "FROM"),
        ("to", "TO"),
        ("subject", "SUBJECT"),
        ("status", "STATUS"),
        ("timeout", "TIMEOUT"),
        ("correlation_id", "CORRELATION_ID"),
    )

    def to_dict(self) -> Dict[str, str]:
        result = {}
        for attr, key in self._KEYS:
            value = getattr(self, attr)
            result[key] = value.value if isinstance(value, MessageStatus) else value
        return result

    @classmethod
    def from_dict(cls, values: Dict[str, str]) -> "MessageMeta":
        meta = cls()
        for attr, key in cls._KEYS:
            if key in values:
                setattr(meta, attr, values[key])
        meta.status = MessageStatus.ERROR if values.get("STATUS") == MessageStatus.ERROR.value else MessageStatus.OK
        return meta


@dataclass
class Message:
    meta: MessageMeta = field(default_factory=MessageMeta)
    user_data: List[str] = field(default_factory=list)

    def set_data(self, data) -> None:
        self.user_data = [data] if isinstance(data, str) else list(data)

    def to_frames(self) -> List[str]:
        frames = [METADATA_START]
        for key, value in self.meta.to_dict().items():
            frames.extend([key, value])
        frames.append(METADATA_END)
        frames.extend(self.user_data)
        return frames

    @classmethod
    def from_frames(cls, frames: List[str]) -> "Message":
        if not frames or frames[0] != METADATA_START:
            return cls(user_data=list(frames))
        try:
            end = frames.index(METADATA_END)
        except ValueError:
            raise BusError("malformed message: metadata is not terminated")
        pairs = frames[1:end]
        values = {pairs[index]: pairs[index + 1] for index in range(0, len(pairs) - 1, 2)}
        return cls(meta=MessageMeta.from_dict(values), user_data=list(frames[end + 1:]))


class MessageBus:
    """JSON message bus client bound to one actor name."""

    def __init__(self, broker: Broker, actor_name: str) -> None:
        self.actor_name = actor_name
        self._client = MlmClient(broker, actor_name)

    def connect(self) -> None:
        self._client.connect()

    def close(self) -> None:
        self._client.close()

    @property
    def client(self) -> MlmClient:
        return self._client

    def publish(self, topic: str, message: Message) -> None:
        message.meta.from_ = self.actor_name
        self._client.set_producer(topic)
        self._client.send(topic, message.to_frames())

    def subscribe(self, topic: str) -> None:
        self._client.set_consumer(topic, ".*")

    def reply(self, queue: str, request: Message, answer: Message) -> None:
        answer.meta.correlation_id = request.meta.correlation_id
        answer.meta.to = request.meta.reply_to or request.meta.from_
        answer.meta.from_ = self.actor_name
        if not answer.meta.subject:
            answer.meta.subject = request.meta.subject
        self._client.sendto(answer.meta.to, queue, answer.to_frames(), tracker=answer.meta.correlation_id)

    async def request(self, queue: str, message: Message, timeout: float = 10.0) -> Message:
        """Sends a request to ``message.meta.to`` and waits for the matching reply."""
        if not message.meta.correlation_id:
            message.meta.correlation_id = str(uuid.uuid4())
        message.meta.from_ = self.actor_name
        message.meta.reply_to = self.actor_name
        self._client.sendto(message.meta.to, queue, message.to_frames(), tracker=message.meta.correlation_id)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise BusError(f"request on {queue} timed out")
            reply = Message.from_frames((await self._client.recv(remaining)).strings())
            if reply.meta.correlation_id != message.meta.correlation_id:
                continue
            if reply.meta.status == MessageStatus.ERROR:
                raise BusError(reply.user_data[0] if reply.user_data else "unknown error")
            return reply

    async def receive(self, timeout: Optional[float] = None) -> BusMessage:
        return await self._client.recv(timeout)


def decode_bus_message(message: BusMessage) -> Message:
    return Message.from_frames([frame_str(frame) for frame in message.frames])
