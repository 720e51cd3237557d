"""Proxies and builtins for the ``net`` namespace."""

from __future__ import annotations

from ipaddress import ip_address, ip_interface
from typing import Any

from rbox.conf.net import (
    DHCPClientConf,
    NetProfile,
    ProfileMode,
    WifiMode,
    WifiNetwork,
    WPASupplicantConfig,
)
from rbox.exceptions import ArgumentError
from rbox.interpreter.proxy import Proxy, populate
from rbox.interpreter.values import (
    Builtin,
    Struct,
    expect_bool,
    expect_int,
    expect_list_of,
    expect_str,
    expect_str_list,
    expect_uint,
)

__all__ = [
    "DHCPClientProxy",
    "ProfileProxy",
    "WifiConfigProxy",
    "WifiNetworkProxy",
    "net_namespace",
]


def _parse_address(value: str, what: str):
    try:
        return ip_address(value)
    except ValueError:
        raise ArgumentError(f"{what}: invalid IP address {value!r}") from None


class ProfileProxy(Proxy):
    """A dhcpcd profile.

    The record's mode is the kind tag: ``net.DHCPProfile`` proxies treat
    ``dns`` as a bool (request DNS options from the server), while
    ``net.StaticProfile`` proxies treat it as the list of name servers.
    """

    __slots__ = ()

    READABLE = (
        "name",
        "interface",
        "hostname",
        "client_id",
        "persistent",
        "rapid_commit",
        "dns",
        "ntp",
        "lease_seconds",
        "network",
        "broadcast",
        "routers",
        "ipv6",
    )
    ASSIGNABLE = frozenset(READABLE)

    native: NetProfile

    @property
    def kind(self) -> str:
        return "DHCP" if self.native.mode is ProfileMode.DHCP else "Static"

    @property
    def type_name(self) -> str:
        return f"net.{self.kind}Profile"

    def get_field(self, name: str) -> Any:
        p = self.native
        match name:
            case "name" | "interface" | "hostname" | "lease_seconds":
                return getattr(p, name)
            case "client_id" | "persistent" | "rapid_commit":
                return getattr(p, name)
            case "ntp":
                return p.request_ntp
            case "dns":
                if p.mode is ProfileMode.DHCP:
                    return p.setup_dns
                return list(p.dns)
            case "network":
                return "" if p.network is None else str(p.network)
            case "broadcast" | "ipv6":
                value = getattr(p, name)
                return "" if value is None else str(value)
            case "routers":
                return [str(r) for r in p.routers]
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        p = self.native
        what = f"{self.type_name}.{name}"
        match name:
            case "name" | "interface":
                setattr(p, name, expect_str(value, what))
            case "hostname":
                p.hostname = expect_str(value, what)
                p.present_hostname = p.hostname != ""
            case "lease_seconds":
                p.lease_seconds = expect_int(value, what)
            case "client_id" | "persistent" | "rapid_commit":
                setattr(p, name, expect_bool(value, what))
            case "ntp":
                p.request_ntp = expect_bool(value, what)
            case "dns":
                if p.mode is ProfileMode.DHCP:
                    p.setup_dns = expect_bool(value, what)
                else:
                    p.dns = expect_str_list(value, what)
            case "network":
                text = expect_str(value, what)
                try:
                    p.network = ip_interface(text) if text else None
                except ValueError:
                    raise ArgumentError(f"{what}: invalid CIDR {text!r}") from None
            case "broadcast" | "ipv6":
                text = expect_str(value, what)
                setattr(p, name, _parse_address(text, what) if text else None)
            case "routers":
                texts = expect_str_list(value, what)
                p.routers = [_parse_address(t, f"{what}[{i}]") for i, t in enumerate(texts)]
            case _:
                super().set_field(name, value)


class DHCPClientProxy(Proxy):
    __slots__ = ()

    type_name = "net.DHCPClient"
    READABLE = ("control_group", "profiles")
    ASSIGNABLE = frozenset(READABLE)

    native: DHCPClientConf

    def get_field(self, name: str) -> Any:
        match name:
            case "control_group":
                return self.native.control_group
            case "profiles":
                return [self.child(p, ProfileProxy) for p in self.native.profiles]
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        what = f"{self.type_name}.{name}"
        match name:
            case "control_group":
                self.native.control_group = expect_str(value, what)
            case "profiles":
                proxies = expect_list_of(value, ProfileProxy, what, "net.DHCPProfile or net.StaticProfile")
                self.native.profiles = [p.native for p in proxies]
                self.forget_children(self.native.profiles)
                for p in proxies:
                    self.adopt(p)
            case _:
                super().set_field(name, value)


class WifiNetworkProxy(Proxy):
    __slots__ = ()

    type_name = "net.wifi.Network"
    READABLE = ("mode", "ssid", "psk", "disabled")
    ASSIGNABLE = frozenset(READABLE)

    native: WifiNetwork

    def get_field(self, name: str) -> Any:
        match name:
            case "mode":
                return int(self.native.mode)
            case "ssid" | "psk" | "disabled":
                return getattr(self.native, name)
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        what = f"{self.type_name}.{name}"
        match name:
            case "mode":
                self.native.mode = WifiMode(expect_uint(value, what, max(WifiMode)))
            case "ssid" | "psk":
                setattr(self.native, name, expect_str(value, what))
            case "disabled":
                self.native.disabled = expect_bool(value, what)
            case _:
                super().set_field(name, value)


class WifiConfigProxy(Proxy):
    __slots__ = ()

    type_name = "net.wifi.SupplicantConfig"
    READABLE = (
        "control_interface",
        "control_interface_group",
        "allow_update_config",
        "country_code",
        "device_name",
        "networks",
    )
    ASSIGNABLE = frozenset(READABLE)

    native: WPASupplicantConfig

    def get_field(self, name: str) -> Any:
        match name:
            case "control_interface" | "control_interface_group" | "country_code" | "device_name":
                return getattr(self.native, name)
            case "allow_update_config":
                return self.native.allow_update_config
            case "networks":
                return [self.child(n, WifiNetworkProxy) for n in self.native.networks]
        return super().get_field(name)

    def set_field(self, name: str, value: Any) -> None:
        what = f"{self.type_name}.{name}"
        match name:
            case "control_interface" | "control_interface_group" | "country_code" | "device_name":
                setattr(self.native, name, expect_str(value, what))
            case "allow_update_config":
                self.native.allow_update_config = expect_bool(value, what)
            case "networks":
                proxies = expect_list_of(value, WifiNetworkProxy, what, "net.wifi.Network")
                self.native.networks = [n.native for n in proxies]
                self.forget_children(self.native.networks)
                for n in proxies:
                    self.adopt(n)
            case _:
                super().set_field(name, value)


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------

_DHCP_PARAMS = (
    "name",
    "interface",
    "hostname",
    "client_id",
    "persistent",
    "rapid_commit",
    "dns",
    "request_ntp",
    "lease_seconds",
)
_STATIC_PARAMS = ("name", "interface", "network", "broadcast", "ipv6", "routers", "dns")


def net_namespace() -> Struct:
    def dhcp_profile(*args: Any, **kwargs: Any) -> ProfileProxy:
        proxy = ProfileProxy(NetProfile(mode=ProfileMode.DHCP))
        return populate(proxy, "net.DHCPProfile", _DHCP_PARAMS, args, kwargs, {"request_ntp": "ntp"})

    def static_profile(*args: Any, **kwargs: Any) -> ProfileProxy:
        proxy = ProfileProxy(NetProfile(mode=ProfileMode.STATIC))
        return populate(proxy, "net.StaticProfile", _STATIC_PARAMS, args, kwargs)

    def dhcp_client(*args: Any, **kwargs: Any) -> DHCPClientProxy:
        return populate(DHCPClientProxy(DHCPClientConf()), "net.DHCPClient", DHCPClientProxy.READABLE, args, kwargs)

    def wifi_network(*args: Any, **kwargs: Any) -> WifiNetworkProxy:
        return populate(
            WifiNetworkProxy(WifiNetwork()), "net.wifi.Network", WifiNetworkProxy.READABLE, args, kwargs
        )

    def supplicant_config(*args: Any, **kwargs: Any) -> WifiConfigProxy:
        return populate(
            WifiConfigProxy(WPASupplicantConfig()),
            "net.wifi.SupplicantConfig",
            WifiConfigProxy.READABLE,
            args,
            kwargs,
        )

    wifi = Struct(
        {
            "mode_client": int(WifiMode.CLIENT),
            "mode_adhoc": int(WifiMode.ADHOC),
            "mode_ap": int(WifiMode.AP),
            "Network": Builtin("Network", wifi_network),
            "SupplicantConfig": Builtin("SupplicantConfig", supplicant_config),
        },
        "net.wifi",
    )
    return Struct(
        {
            "DHCPClient": Builtin("DHCPClient", dhcp_client),
            "DHCPProfile": Builtin("DHCPProfile", dhcp_profile),
            "StaticProfile": Builtin("StaticProfile", static_profile),
            "wifi": wifi,
        },
        "net",
    )
