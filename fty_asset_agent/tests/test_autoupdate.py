import asyncio

from asset_agent.actors.actor_base import TERM
from asset_agent.actors.asset_server import AssetServer
from asset_agent.actors.autoupdate_server import WAKEUP, AutoUpdateServer, asset_ips
from asset_agent.bus.broker import Broker, MlmClient
from asset_agent.bus.proto import ASSET, FtyProto
from asset_agent.core.config import reset_settings
from asset_agent.helpers.dns_helper import InterfaceInfo, local_addresses

from conftest import add_asset

ETH0 = InterfaceInfo(name="eth0", ipv4="10.0.0.2", mac="aa:bb:cc:dd:ee:ff")
HOSTNAMES = {"10.0.0.2": ("rc0", "rc0.example.com"), "10.0.0.7": ("rc7", "rc7.example.com")}


async def fake_resolver(ip):
    return HOSTNAMES.get(ip, ("", ""))


async def fake_interfaces():
    return [ETH0]


async def broken_interfaces():
    raise OSError("no /sys/class/net")


def autoupdate_for(broker, interfaces_provider=fake_interfaces):
    return AutoUpdateServer(
        broker,
        name="asset-autoupdate",
        asset_agent_name="asset-agent",
        resolver=fake_resolver,
        interfaces_provider=interfaces_provider,
    )


def test_asset_ips_ordered_by_index():
    message = FtyProto(id=ASSET, name="rc", ext={"ip.2": "10.0.0.3", "ip.1": "10.0.0.2", "ip.x": "1", "mac.1": "aa", "ip.3": ""})

    assert asset_ips(message) == ["10.0.0.2", "10.0.0.3"]


def test_local_addresses():
    assert local_addresses([ETH0, InterfaceInfo(name="wlan0", mac="11:22")]) == {"10.0.0.2"}


def test_inventory_ext_for_local_controller():
    server = autoupdate_for(Broker())
    message = FtyProto(id=ASSET, name="rackcontroller-0", ext={})

    ext = asyncio.run(server.inventory_ext(message, [ETH0], {"10.0.0.2"}))

    assert ext == {
        "ip.1": "10.0.0.2",
        "mac.1": "aa:bb:cc:dd:ee:ff",
        "hostname.1": "rc0",
        "fqdn.1": "rc0.example.com",
    }


def test_inventory_ext_for_remote_controller():
    server = autoupdate_for(Broker())
    message = FtyProto(id=ASSET, name="rackcontroller-7", ext={"ip.1": "10.0.0.99", "ip.2": "10.0.0.7"})

    ext = asyncio.run(server.inventory_ext(message, [ETH0], {"10.0.0.2"}))

    assert ext == {"hostname.1": "rc7", "fqdn.1": "rc7.example.com"}


def test_inventory_ext_unresolvable():
    server = autoupdate_for(Broker())
    message = FtyProto(id=ASSET, name="rackcontroller-9", ext={"ip.1": "10.0.0.99"})

    assert asyncio.run(server.inventory_ext(message, [ETH0], {"10.0.0.2"})) == {}


def test_wakeup_publishes_inventory_of_active_controllers(db, seeded, session_factory):
    rack = seeded["rack"]
    add_asset(db, "rackcontroller-0", "device", "rackcontroller", parent=rack, ext={"name": "RC 0"})
    add_asset(db, "rackcontroller-7", "device", "rackcontroller", parent=rack, ext={"name": "RC 7", "ip.1": "10.0.0.7"})
    add_asset(
        db,
        "rackcontroller-8",
        "device",
        "rackcontroller",
        parent=rack,
        status="nonactive",
        ext={"name": "RC 8", "ip.1": "10.0.0.2"},
    )
    add_asset(db, "rackcontroller-9", "device", "rackcontroller", parent=rack, ext={"name": "RC 9", "ip.1": "10.0.0.99"})

    async def scenario():
        broker = Broker()
        agent = AssetServer(broker, name="asset-agent", session_factory=session_factory, activation_enabled=False, query_licensing=False)
        autoupdate = autoupdate_for(broker)
        watcher = MlmClient(broker, "watcher").connect()
        watcher.set_consumer("ASSETS", "^inventory@")
        agent.start()
        autoupdate.start()
        tasks = [asyncio.create_task(agent.run()), asyncio.create_task(autoupdate.run())]
        try:
            published = await autoupdate.execute(WAKEUP)
            messages = [await watcher.recv(2) for _ in range(published)]
            return published, messages, watcher.pending()
        finally:
            agent.send(TERM)
            autoupdate.send(TERM)
            await asyncio.gather(*tasks)

    published, messages, left = asyncio.run(scenario())

    assert published == 2
    assert left == 0
    by_subject = {message.subject: FtyProto.decode(message.frames[0]) for message in messages}
    local = by_subject["inventory@rackcontroller-0"]
    assert local.operation == "inventory"
    assert local.ext == {
        "ip.1": "10.0.0.2",
        "mac.1": "aa:bb:cc:dd:ee:ff",
        "hostname.1": "rc0",
        "fqdn.1": "rc0.example.com",
    }
    assert by_subject["inventory@rackcontroller-7"].ext == {"hostname.1": "rc7", "fqdn.1": "rc7.example.com"}


def test_wakeup_survives_interface_errors(db, seeded, session_factory):
    add_asset(db, "rackcontroller-7", "device", "rackcontroller", parent=seeded["rack"], ext={"name": "RC 7", "ip.1": "10.0.0.7"})

    async def scenario():
        broker = Broker()
        agent = AssetServer(broker, name="asset-agent", session_factory=session_factory, activation_enabled=False, query_licensing=False)
        autoupdate = autoupdate_for(broker, interfaces_provider=broken_interfaces)
        agent.start()
        autoupdate.start()
        tasks = [asyncio.create_task(agent.run()), asyncio.create_task(autoupdate.run())]
        try:
            return await autoupdate.execute(WAKEUP)
        finally:
            agent.send(TERM)
            autoupdate.send(TERM)
            await asyncio.gather(*tasks)

    assert asyncio.run(scenario()) == 1


def test_wakeup_without_asset_agent(monkeypatch):
    monkeypatch.setenv("MAILBOX_TIMEOUT_SECONDS", "0.05")
    reset_settings()

    async def scenario():
        autoupdate = autoupdate_for(Broker())
        autoupdate.start()
        task = asyncio.create_task(autoupdate.run())
        try:
            return await autoupdate.execute(WAKEUP)
        finally:
            autoupdate.send(TERM)
            await task

    assert asyncio.run(scenario()) == 0
