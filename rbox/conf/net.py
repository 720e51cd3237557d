"""Network configuration records: dhcpcd profiles and wpa_supplicant config."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum
from ipaddress import IPv4Address, IPv4Interface, IPv6Address, IPv6Interface

__all__ = [
    "DHCPClientConf",
    "NetProfile",
    "ProfileMode",
    "WPASupplicantConfig",
    "WifiMode",
    "WifiNetwork",
]

IPAddress = IPv4Address | IPv6Address
IPInterface = IPv4Interface | IPv6Interface


class ProfileMode(IntEnum):
    DHCP = 0
    STATIC = 1


@dataclass(eq=False)
class NetProfile:
    """One ``interface``/``profile`` block of dhcpcd.conf.

    DHCP and static profiles share this record; :attr:`mode` decides which
    group of fields is rendered.
    """

    name: str = ""
    interface: str = ""
    mode: ProfileMode = ProfileMode.DHCP

    # DHCP mode
    lease_seconds: int = 0
    client_id: bool = False
    present_hostname: bool = False
    hostname: str = ""
    persistent: bool = False
    rapid_commit: bool = False
    setup_dns: bool = False
    request_ntp: bool = False

    # Static mode
    network: IPInterface | None = None
    broadcast: IPAddress | None = None
    ipv6: IPAddress | None = None
    routers: list[IPAddress] = field(default_factory=list)
    dns: list[str] = field(default_factory=list)

    def render(self) -> str:
        out = []
        if self.name:
            out.append(f"profile {self.name}\n")
        elif self.interface:
            out.append(f"interface {self.interface}\n")

        if self.mode is ProfileMode.DHCP:
            if self.present_hostname:
                out.append(f"hostname {self.hostname}\n" if self.hostname else "hostname\n")
            if self.client_id:
                out.append("clientid\n")
            if self.persistent:
                out.append("persistent\n")
            if self.rapid_commit:
                out.append("option rapid_commit\n")
            if self.setup_dns:
                out.append("option domain_name_servers, domain_name, domain_search\n")
            if self.request_ntp:
                out.append("option ntp_servers\n")
            if self.lease_seconds > 0:
                out.append(f"leasetime {self.lease_seconds}\n")
        else:
            if self.network is not None:
                out.append(f"static ip_address={self.network}\n")
            if self.broadcast is not None:
                out.append(f"static broadcast_address={self.broadcast}\n")
            if self.ipv6 is not None:
                out.append(f"static ip6_address={self.ipv6}\n")
            if self.routers:
                out.append(f"static routers={' '.join(str(r) for r in self.routers)}\n")
            if self.dns:
                out.append(f"static domain_name_servers={' '.join(self.dns)}\n")
        return "".join(out)


@dataclass(eq=False)
class DHCPClientConf:
    """A complete dhcpcd.conf."""

    control_group: str = ""
    profiles: list[NetProfile] = field(default_factory=list)

    def render(self) -> str:
        out = []
        if self.control_group:
            out.append(f"controlgroup {self.control_group}\n")
        out.append("\n".join(p.render() for p in self.profiles))
        return "".join(out)


class WifiMode(IntEnum):
    CLIENT = 0
    ADHOC = 1
    AP = 2


@dataclass(eq=False)
class WifiNetwork:
    mode: WifiMode = WifiMode.CLIENT
    disabled: bool = False
    ssid: str = ""
    psk: str = ""

    def render(self) -> str:
        return (
            "network={\n"
            f"\tmode={int(self.mode)}\n"
            f"\tdisabled={int(self.disabled)}\n"
            f"\tssid={json.dumps(self.ssid, ensure_ascii=False)}\n"
            f"\tpsk={json.dumps(self.psk, ensure_ascii=False)}\n"
            "}\n"
        )


@dataclass(eq=False)
class WPASupplicantConfig:
    """A complete wpa_supplicant.conf."""

    control_interface: str = ""
    control_interface_group: str = ""
    allow_update_config: bool = False
    country_code: str = ""
    device_name: str = ""
    networks: list[WifiNetwork] = field(default_factory=list)

    def render(self) -> str:
        out = []
        if self.control_interface:
            if self.control_interface_group:
                out.append(
                    f"ctrl_interface=DIR={self.control_interface} "
                    f"GROUP={self.control_interface_group}\n"
                )
            else:
                out.append(f"ctrl_interface={self.control_interface}\n")
        out.append(f"update_config={int(self.allow_update_config)}\n")
        if self.country_code:
            out.append(f"country={self.country_code}\n")
        if self.device_name:
            out.append(f"device_name={self.device_name}\n")
        out.append("\n".join(n.render() for n in self.networks))
        return "".join(out)
