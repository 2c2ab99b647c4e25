# asset_agent/helpers/dns_helper.py
"""
Host name resolution and local network interface enumeration used by the
auto-update actor. Blocking calls are meant to run in a worker thread
(``asyncio.to_thread``).
"""
import asyncio
import fcntl
import socket
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Tuple

from asset_agent.core.logger import app_logger

SYS_CLASS_NET = Path("/sys/class/net")
SIOCGIFADDR = 0x8915
NULL_MAC = "00:00:00:00:00:00"


@dataclass
class InterfaceInfo:
    name: str
    ipv4: str = ""
    mac: str = ""


def resolve_hostname(ip: str) -> Tuple[str, str]:
    """
    Reverse lookup of an address.

    Returns:
        (hostname, fqdn); both empty when the address does not resolve
    """
    try:
        fqdn, _, _ = socket.gethostbyaddr(ip)
    except (socket.herror, socket.gaierror, OSError) as e:
        app_logger.debug("Reverse DNS lookup failed", extra={"ip": ip, "error": str(e)})
        return "", ""
    return fqdn.split(".")[0], fqdn


async def resolve_hostname_async(ip: str) -> Tuple[str, str]:
    return await asyncio.to_thread(resolve_hostname, ip)


def _interface_ipv4(name: str) -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            packed = fcntl.ioctl(sock.fileno(), SIOCGIFADDR, struct.pack("256s", name[:15].encode("utf-8")))
        except OSError:
            return ""
    return socket.inet_ntoa(packed[20:24])


def _interface_mac(name: str, sys_class_net: Path) -> str:
    try:
        mac = (sys_class_net / name / "address").read_text().strip()
    except OSError:
        return ""
    return "" if mac == NULL_MAC else mac


def local_interfaces(sys_class_net: Optional[Path] = None) -> List[InterfaceInfo]:
    """IPv4 address and MAC of every local interface except loopback."""
    sys_class_net = sys_class_net or SYS_CLASS_NET
    interfaces = []
    for _, name in socket.if_nameindex():
        if name == "lo":
            continue
        info = InterfaceInfo(name=name, ipv4=_interface_ipv4(name), mac=_interface_mac(name, sys_class_net))
        if info.ipv4 or info.mac:
            interfaces.append(info)
    return interfaces


async def local_interfaces_async() -> List[InterfaceInfo]:
    return await asyncio.to_thread(local_interfaces)


def local_addresses(interfaces: List[InterfaceInfo]) -> Set[str]:
    return {info.ipv4 for info in interfaces if info.ipv4}
