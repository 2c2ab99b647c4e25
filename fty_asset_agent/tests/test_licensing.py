import asyncio
import json

import pytest

from asset_agent.bus.broker import Broker, MlmClient
from asset_agent.bus.proto import FtyProto, encode_asset, encode_metric
from asset_agent.core.errors import ActivationError, BusError, LicensingError
from asset_agent.helpers.activation import ActivationClient
from asset_agent.helpers.licensing import LicensingState, atoi, query_limitations


def metric(name, metric_type, value):
    return FtyProto.decode(encode_metric(name, metric_type, value))


@pytest.mark.parametrize("value, expected", [("3", 3), (" -1", -1), ("12abc", 12), ("abc", 0), ("", 0)])
def test_atoi(value, expected):
    assert atoi(value) == expected


# -------------------------------------------------------
# Licensing state
# -------------------------------------------------------
def test_default_state_is_permissive():
    state = LicensingState()

    assert state.configurable
    assert state.allows_another_active(1000)


def test_apply_metric():
    state = LicensingState()

    assert state.apply_metric(metric("rackcontroller-0", "power_nodes.max_active", "2"))
    assert state.apply_metric(metric("rackcontroller-0", "configurability.global", "0"))

    assert state.max_active_power_devices == 2
    assert not state.configurable
    assert state.allows_another_active(1)
    assert not state.allows_another_active(2)


def test_apply_metric_ignores_other_messages():
    state = LicensingState()

    assert not state.apply_metric(metric("ups-1", "configurability.global", "0"))
    assert not state.apply_metric(metric("rackcontroller-0", "temperature", "21"))
    assert not state.apply_metric(FtyProto.decode(encode_asset("rackcontroller-0", "update")))
    assert state.configurable


# -------------------------------------------------------
# Limitation query
# -------------------------------------------------------
async def answer_once(client, frames):
    request = await client.recv(2)
    client.sendto(request.sender, request.subject, frames)
    return request


def test_query_limitations():
    async def scenario():
        broker = Broker()
        licensing = MlmClient(broker, "etn-licensing").connect()
        responder = asyncio.create_task(
            answer_once(
                licensing,
                [
                    "REPLY",
                    "OK",
                    encode_metric("rackcontroller-0", "power_nodes.max_active", "5"),
                    encode_metric("rackcontroller-0", "configurability.global", "1"),
                    b"garbage",
                ],
            )
        )
        limitations = await query_limitations(broker, "etn-licensing", 2, client_prefix="asset-agent")
        request = await responder
        return limitations, request

    limitations, request = asyncio.run(scenario())

    assert limitations.max_active_power_devices == 5
    assert limitations.global_configurability == 1
    assert request.subject == "LIMITATION_QUERY"
    assert request.sender.startswith("asset-agent.licensing.")


def test_query_limitations_error_reply():
    async def scenario():
        broker = Broker()
        licensing = MlmClient(broker, "etn-licensing").connect()
        responder = asyncio.create_task(answer_once(licensing, ["REPLY", "ERROR", "license expired"]))
        try:
            await query_limitations(broker, "etn-licensing", 2)
        finally:
            await responder

    with pytest.raises(LicensingError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.message == "Licensing query failed: license expired"


def test_query_limitations_timeout():
    with pytest.raises(BusError):
        asyncio.run(query_limitations(Broker(), "etn-licensing", 0.05))


# -------------------------------------------------------
# Activation oracle
# -------------------------------------------------------
def test_activation_client():
    asset_json = json.dumps({"name": "ups-1", "type": "device"})

    async def scenario():
        broker = Broker()
        oracle = MlmClient(broker, "etn-licensing-credits").connect()
        client = ActivationClient(broker, "asset-agent", "etn-licensing-credits", 2)

        responder = asyncio.create_task(answer_once(oracle, ["true"]))
        activable = await client.is_activable(asset_json)
        request = await responder

        responder = asyncio.create_task(answer_once(oracle, ["OK"]))
        await client.activate(asset_json)
        await responder

        responder = asyncio.create_task(answer_once(oracle, ["ERROR", "not enough credits"]))
        try:
            await client.deactivate(asset_json)
        except ActivationError as e:
            error = e
        await responder
        return activable, request, error

    activable, request, error = asyncio.run(scenario())

    assert activable is True
    assert request.strings() == ["GET_IS_ASSET_ACTIVABLE", asset_json]
    assert error.message == "not enough credits"


def test_activation_client_without_oracle():
    client = ActivationClient(Broker(), "asset-agent", "etn-licensing-credits", 0.05)

    with pytest.raises(ActivationError):
        asyncio.run(client.is_activable("{}"))
