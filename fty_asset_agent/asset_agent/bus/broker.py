# asset_agent/bus/broker.py
"""
In-process message broker with malamute semantics.

* Streams: a producer publishes (subject, frames) on a stream; every
  consumer whose subject pattern matches receives the message, in publish
  order.
* Mailboxes: a client sends (subject, frames) to another client's name. The
  message is queued even when the addressee is not connected yet.

Brokers are shared per endpoint inside the process; ``get_broker()`` returns
the broker for an endpoint and creates it on first use.
"""
import asyncio
import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from asset_agent.core.errors import BusError

Frame = Union[bytes, str]


def to_frame(value: Frame) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, bytearray):
        return bytes(value)
    return str(value).encode("utf-8")


def frame_str(frame: bytes) -> str:
    return frame.decode("utf-8", errors="replace")


@dataclass
class BusMessage:
    sender: str
    subject: str
    frames: List[bytes] = field(default_factory=list)
    address: str = ""
    stream: str = ""
    tracker: str = ""

    @property
    def is_mailbox(self) -> bool:
        return not self.stream

    def strings(self) -> List[str]:
        return [frame_str(frame) for frame in self.frames]


class Broker:
    def __init__(self, endpoint: str = "") -> None:
        self.endpoint = endpoint
        self._mailboxes: Dict[str, asyncio.Queue] = {}
        self._consumers: Dict[str, List[Tuple["re.Pattern", str]]] = {}
        self._clients: Dict[str, "MlmClient"] = {}

    def _mailbox(self, address: str) -> asyncio.Queue:
        queue = self._mailboxes.get(address)
        if queue is None:
            queue = asyncio.Queue()
            self._mailboxes[address] = queue
        return queue

    def attach(self, client: "MlmClient") -> asyncio.Queue:
        if client.name in self._clients:
            raise BusError(f"client name '{client.name}' is already connected")
        self._clients[client.name] = client
        return self._mailbox(client.name)

    def detach(self, client: "MlmClient") -> None:
        if self._clients.get(client.name) is client:
            del self._clients[client.name]
        for stream, consumers in self._consumers.items():
            self._consumers[stream] = [item for item in consumers if item[1] != client.name]
        self._mailboxes.pop(client.name, None)

    def subscribe(self, client: "MlmClient", stream: str, pattern: str) -> None:
        self._consumers.setdefault(stream, []).append((re.compile(pattern), client.name))

    def publish(self, stream: str, message: BusMessage) -> None:
        delivered = set()
        for regex, name in self._consumers.get(stream, []):
            if name in delivered or not regex.match(message.subject):
                continue
            client = self._clients.get(name)
            if client is None:
                continue
            delivered.add(name)
            self._mailbox(name).put_nowait(message)

    def deliver(self, address: str, message: BusMessage) -> None:
        self._mailbox(address).put_nowait(message)


_brokers: Dict[str, Broker] = {}


def get_broker(endpoint: str) -> Broker:
    broker = _brokers.get(endpoint)
    if broker is None:
        broker = Broker(endpoint)
        _brokers[endpoint] = broker
    return broker


def reset_brokers() -> None:
    _brokers.clear()


class MlmClient:
    """
    One bus connection. A client receives its mailbox messages and the
    stream messages it subscribed to through the same inbox, like a
    malamute client does.
    """

    def __init__(self, broker: Broker, name: str) -> None:
        self.broker = broker
        self.name = name
        self._producer: Optional[str] = None
        self._inbox: Optional[asyncio.Queue] = None

    @property
    def connected(self) -> bool:
        return self._inbox is not None

    def connect(self) -> "MlmClient":
        self._inbox = self.broker.attach(self)
        return self

    def close(self) -> None:
        if self._inbox is not None:
            self.broker.detach(self)
            self._inbox = None

    def _require_connection(self) -> asyncio.Queue:
        if self._inbox is None:
            raise BusError(f"client '{self.name}' is not connected")
        return self._inbox

    def set_producer(self, stream: str) -> None:
        self._require_connection()
        self._producer = stream

    def set_consumer(self, stream: str, pattern: str = ".*") -> None:
        self._require_connection()
        self.broker.subscribe(self, stream, pattern)

    def send(self, subject: str, frames: Sequence[Frame]) -> None:
        """Publish on the producer stream."""
        self._require_connection()
        if not self._producer:
            raise BusError(f"client '{self.name}' is not a producer")
        self.broker.publish(
            self._producer,
            BusMessage(
                sender=self.name,
                subject=subject,
                frames=[to_frame(item) for item in frames],
                stream=self._producer,
            ),
        )

    def sendto(
        self,
        address: str,
        subject: str,
        frames: Sequence[Frame],
        tracker: str = "",
    ) -> None:
        self._require_connection()
        self.broker.deliver(
            address,
            BusMessage(
                sender=self.name,
                subject=subject,
                frames=[to_frame(item) for item in frames],
                address=address,
                tracker=tracker,
            ),
        )

    async def recv(self, timeout: Optional[float] = None) -> BusMessage:
        inbox = self._require_connection()
        if timeout is None:
            return await inbox.get()
        try:
            return await asyncio.wait_for(inbox.get(), timeout)
        except asyncio.TimeoutError:
            raise BusError(f"client '{self.name}': no message received within {timeout}s")

    def pending(self) -> int:
        return self._inbox.qsize() if self._inbox is not None else 0


async def sync_request(
    broker: Broker,
    address: str,
    subject: str,
    frames: Sequence[Frame],
    timeout: float,
    client_prefix: str = "sync-client",
) -> BusMessage:
    """
    Request/reply over a throw-away client: the first message arriving in
    its mailbox is the reply.
    """
    client = MlmClient(broker, f"{client_prefix}.{uuid.uuid4().hex[:12]}").connect()
    try:
        client.sendto(address, subject, frames, tracker=uuid.uuid4().hex)
        return await client.recv(timeout)
    finally:
        client.close()
