# asset_agent/helpers/activation.py
"""
Client of the activation oracle (licensing credits agent).

Request frames: command, asset JSON
Reply frames:   OK|<value>... or ERROR, reason
"""
from typing import List

from asset_agent.bus.broker import Broker, sync_request
from asset_agent.core.errors import ActivationError, BusError
from asset_agent.core.logger import app_logger

COMMAND_IS_ASSET_ACTIVABLE = "GET_IS_ASSET_ACTIVABLE"
COMMAND_ACTIVATE_ASSET = "ACTIVATE_ASSET"
COMMAND_DEACTIVATE_ASSET = "DEACTIVATE_ASSET"

_TRUE_VALUES = ("true", "1", "yes")


class ActivationClient:
    def __init__(self, broker: Broker, agent_name: str, oracle_name: str, timeout: float) -> None:
        self._broker = broker
        self._agent_name = agent_name
        self._oracle_name = oracle_name
        self._timeout = timeout

    async def _request(self, command: str, asset_json: str) -> List[str]:
        app_logger.debug("Sending activation request", extra={"command": command, "oracle": self._oracle_name})
        try:
            reply = await sync_request(
                self._broker,
                self._oracle_name,
                command,
                [command, asset_json],
                self._timeout,
                client_prefix=f"{self._agent_name}.activation",
            )
        except BusError as e:
            raise ActivationError(str(e))

        frames = reply.strings()
        if not frames:
            raise ActivationError("Empty reply from activation agent")
        if frames[0] == "ERROR":
            raise ActivationError(frames[1] if len(frames) > 1 else "Missing data for error")
        return frames

    async def is_activable(self, asset_json: str) -> bool:
        frames = await self._request(COMMAND_IS_ASSET_ACTIVABLE, asset_json)
        app_logger.debug("Asset activability", extra={"activable": frames[0]})
        return frames[0].strip().lower() in _TRUE_VALUES

    async def activate(self, asset_json: str) -> None:
        await self._request(COMMAND_ACTIVATE_ASSET, asset_json)

    async def deactivate(self, asset_json: str) -> None:
        await self._request(COMMAND_DEACTIVATE_ASSET, asset_json)
