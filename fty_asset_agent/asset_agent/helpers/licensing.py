# asset_agent/helpers/licensing.py
"""
Licensing limitations: the configurability flag and the maximum number of
active power devices, announced as fty-proto metrics about
``rackcontroller-0``.
"""
import re
import uuid
from dataclasses import dataclass

from asset_agent.bus.broker import Broker, sync_request
from asset_agent.bus.proto import METRIC, FtyProto, ProtoError
from asset_agent.core.errors import LicensingError
from asset_agent.core.logger import app_logger

LICENSING_ASSET = "rackcontroller-0"
METRIC_MAX_ACTIVE = "power_nodes.max_active"
METRIC_CONFIGURABILITY = "configurability.global"

_LEADING_INT_RE = re.compile(r"^\s*([-+]?\d+)")


def atoi(value: str) -> int:
    """C atoi(): leading integer of the string, 0 when there is none."""
    match = _LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else 0


@dataclass
class LicensingLimitations:
    max_active_power_devices: int = -1
    global_configurability: int = 0


@dataclass
class LicensingState:
    """Limitations as last seen by the agent. Unlimited and configurable until told otherwise."""

    global_configurability: int = 1
    max_active_power_devices: int = -1

    def apply_metric(self, metric: FtyProto) -> bool:
        if metric.id != METRIC or metric.name != LICENSING_ASSET:
            return False
        if metric.type == METRIC_CONFIGURABILITY:
            self.global_configurability = atoi(metric.value)
        elif metric.type == METRIC_MAX_ACTIVE:
            self.max_active_power_devices = atoi(metric.value)
        else:
            return False
        app_logger.info(
            "Licensing limitation updated",
            extra={"metric_type": metric.type, "metric_value": metric.value},
        )
        return True

    def apply_limitations(self, limitations: LicensingLimitations) -> None:
        self.global_configurability = limitations.global_configurability
        self.max_active_power_devices = limitations.max_active_power_devices

    @property
    def configurable(self) -> bool:
        return self.global_configurability != 0

    def allows_another_active(self, active_count: int) -> bool:
        if self.max_active_power_devices < 0:
            return True
        return active_count < self.max_active_power_devices


async def query_limitations(
    broker: Broker,
    licensing_agent: str,
    timeout: float,
    client_prefix: str = "asset-agent",
) -> LicensingLimitations:
    """
    Asks the licensing agent for the current limitations.

    Request: LIMITATION_QUERY, uuid, "*", "*"
    Reply:   REPLY, OK, <metric>...
    """
    request_id = uuid.uuid4().hex
    reply = await sync_request(
        broker,
        licensing_agent,
        "LIMITATION_QUERY",
        ["LIMITATION_QUERY", request_id, "*", "*"],
        timeout,
        client_prefix=f"{client_prefix}.licensing",
    )
    strings = reply.strings()
    if len(strings) < 2 or strings[0] != "REPLY" or strings[1] != "OK":
        reason = strings[2] if len(strings) > 2 else "unexpected reply"
        raise LicensingError(f"Licensing query failed: {reason}")

    limitations = LicensingLimitations()
    for frame in reply.frames[2:]:
        try:
            metric = FtyProto.decode(frame)
        except ProtoError:
            app_logger.warning("Ignoring malformed licensing metric")
            continue
        if metric.id != METRIC or metric.name != LICENSING_ASSET:
            continue
        if metric.type == METRIC_MAX_ACTIVE:
            limitations.max_active_power_devices = atoi(metric.value)
        elif metric.type == METRIC_CONFIGURABILITY:
            limitations.global_configurability = atoi(metric.value)
    return limitations

