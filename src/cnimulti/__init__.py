"""CNI meta-plugin that fans one request out to several delegate plugins."""

from importlib.metadata import PackageNotFoundError, version

from cnimulti.protocol import (
    CNI_VERSION,
    CniResult,
    Command,
    DnsConfig,
    Interface,
    IpResult,
    NetworkConfig,
    NetworkRequest,
    Route,
)

try:
    __version__ = version("cni-multi")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "CNI_VERSION",
    "CniResult",
    "Command",
    "DnsConfig",
    "Interface",
    "IpResult",
    "NetworkConfig",
    "NetworkRequest",
    "Route",
]
