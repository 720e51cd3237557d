"""Native configuration records rendered into files on the target image."""

from rbox.conf.net import (
    DHCPClientConf,
    NetProfile,
    ProfileMode,
    WifiMode,
    WifiNetwork,
    WPASupplicantConfig,
)
from rbox.conf.sysd import (
    Condition,
    ConditionKind,
    KillMode,
    Mount,
    NotifyAccess,
    OutputSink,
    RestartMode,
    Service,
    ServiceType,
    Unit,
    format_duration,
    parse_duration,
)

__all__ = [
    "Condition",
    "ConditionKind",
    "DHCPClientConf",
    "KillMode",
    "Mount",
    "NetProfile",
    "NotifyAccess",
    "OutputSink",
    "ProfileMode",
    "RestartMode",
    "Service",
    "ServiceType",
    "Unit",
    "WPASupplicantConfig",
    "WifiMode",
    "WifiNetwork",
    "format_duration",
    "parse_duration",
]
