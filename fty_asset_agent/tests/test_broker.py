import asyncio

import pytest

from asset_agent.bus.broker import Broker, MlmClient, get_broker, reset_brokers, sync_request
from asset_agent.bus.message_bus import (
    METADATA_END,
    METADATA_START,
    Message,
    MessageBus,
    MessageMeta,
    MessageStatus,
)
from asset_agent.core.errors import BusError


# -------------------------------------------------------
# Streams
# -------------------------------------------------------
def test_stream_delivers_to_matching_consumers_in_order():
    async def scenario():
        broker = Broker()
        producer = MlmClient(broker, "producer").connect()
        producer.set_producer("ASSETS")
        devices = MlmClient(broker, "devices").connect()
        devices.set_consumer("ASSETS", "device.*")
        everything = MlmClient(broker, "everything").connect()
        everything.set_consumer("ASSETS", ".*")

        producer.send("datacenter.unknown@datacenter", ["a"])
        producer.send("device.ups@ups-1", ["b"])
        producer.send("device.epdu@epdu-1", ["c"])

        got_devices = [(await devices.recv(1)).subject for _ in range(2)]
        got_everything = [(await everything.recv(1)).strings()[0] for _ in range(3)]
        return got_devices, got_everything, devices.pending()

    got_devices, got_everything, left = asyncio.run(scenario())

    assert got_devices == ["device.ups@ups-1", "device.epdu@epdu-1"]
    assert got_everything == ["a", "b", "c"]
    assert left == 0


def test_stream_message_delivered_once_per_consumer():
    async def scenario():
        broker = Broker()
        producer = MlmClient(broker, "producer").connect()
        producer.set_producer("ASSETS")
        consumer = MlmClient(broker, "consumer").connect()
        consumer.set_consumer("ASSETS", ".*")
        consumer.set_consumer("ASSETS", "device.*")

        producer.send("device.ups@ups-1", [])
        message = await consumer.recv(1)
        return message, consumer.pending()

    message, left = asyncio.run(scenario())

    assert message.stream == "ASSETS"
    assert message.sender == "producer"
    assert not message.is_mailbox
    assert left == 0


def test_send_requires_producer():
    async def scenario():
        client = MlmClient(Broker(), "client").connect()
        client.send("subject", [])

    with pytest.raises(BusError):
        asyncio.run(scenario())


# -------------------------------------------------------
# Mailboxes
# -------------------------------------------------------
def test_mailbox_queued_before_addressee_connects():
    async def scenario():
        broker = Broker()
        sender = MlmClient(broker, "sender").connect()
        sender.sendto("late", "ASSETS", ["GET", "uuid-1"])

        late = MlmClient(broker, "late").connect()
        return await late.recv(1)

    message = asyncio.run(scenario())

    assert message.is_mailbox
    assert message.subject == "ASSETS"
    assert message.strings() == ["GET", "uuid-1"]


def test_duplicate_client_name_is_rejected():
    async def scenario():
        broker = Broker()
        MlmClient(broker, "asset-agent").connect()
        MlmClient(broker, "asset-agent").connect()

    with pytest.raises(BusError):
        asyncio.run(scenario())


def test_recv_timeout():
    async def scenario():
        client = MlmClient(Broker(), "idle").connect()
        await client.recv(0.05)

    with pytest.raises(BusError):
        asyncio.run(scenario())


def test_closed_client_can_reconnect():
    async def scenario():
        broker = Broker()
        client = MlmClient(broker, "agent").connect()
        client.close()
        again = MlmClient(broker, "agent").connect()
        return client.connected, again.connected

    assert asyncio.run(scenario()) == (False, True)


def test_sync_request_returns_reply():
    async def scenario():
        broker = Broker()
        server = MlmClient(broker, "server").connect()

        async def answer():
            request = await server.recv(1)
            server.sendto(request.sender, request.subject, ["OK"] + request.strings())

        responder = asyncio.create_task(answer())
        reply = await sync_request(broker, "server", "PING", ["hello"], 1, client_prefix="test")
        await responder
        return reply

    reply = asyncio.run(scenario())

    assert reply.sender == "server"
    assert reply.strings() == ["OK", "hello"]


def test_get_broker_is_shared_per_endpoint():
    reset_brokers()
    try:
        assert get_broker("ipc://@/malamute") is get_broker("ipc://@/malamute")
        assert get_broker("ipc://@/malamute") is not get_broker("ipc://@/other")
    finally:
        reset_brokers()


# -------------------------------------------------------
# JSON message bus
# -------------------------------------------------------
def test_message_frames():
    message = Message(meta=MessageMeta(to="asset-agent-ng", subject="GET", correlation_id="c-1"))
    message.set_data("ups-1")

    frames = message.to_frames()
    parsed = Message.from_frames(frames)

    assert frames[0] == METADATA_START
    assert frames[-2] == METADATA_END
    assert frames[-1] == "ups-1"
    assert parsed.meta.to == "asset-agent-ng"
    assert parsed.meta.correlation_id == "c-1"
    assert parsed.meta.status == MessageStatus.OK
    assert parsed.user_data == ["ups-1"]


def test_message_without_metadata():
    assert Message.from_frames(["a", "b"]).user_data == ["a", "b"]


def test_message_bus_request_reply():
    async def scenario():
        broker = Broker()
        server = MessageBus(broker, "server-ng")
        server.connect()
        client = MessageBus(broker, "client-ng")
        client.connect()

        async def answer():
            request = Message.from_frames((await server.receive(1)).strings())
            reply = Message()
            reply.set_data(request.user_data[0].upper())
            server.reply("QUEUE", request, reply)

        responder = asyncio.create_task(answer())
        request = Message(meta=MessageMeta(to="server-ng", subject="GET"))
        request.set_data("ups-1")
        reply = await client.request("QUEUE", request, timeout=1)
        await responder
        return request, reply

    request, reply = asyncio.run(scenario())

    assert reply.user_data == ["UPS-1"]
    assert reply.meta.correlation_id == request.meta.correlation_id
    assert reply.meta.from_ == "server-ng"
    assert reply.meta.subject == "GET"


def test_message_bus_error_reply_raises():
    async def scenario():
        broker = Broker()
        server = MessageBus(broker, "server-ng")
        server.connect()
        client = MessageBus(broker, "client-ng")
        client.connect()

        async def answer():
            request = Message.from_frames((await server.receive(1)).strings())
            reply = Message(meta=MessageMeta(status=MessageStatus.ERROR))
            reply.set_data("Asset not found")
            server.reply("QUEUE", request, reply)

        responder = asyncio.create_task(answer())
        try:
            await client.request("QUEUE", Message(meta=MessageMeta(to="server-ng", subject="GET")), timeout=1)
        finally:
            await responder

    with pytest.raises(BusError) as exc_info:
        asyncio.run(scenario())

    assert "Asset not found" in str(exc_info.value)
