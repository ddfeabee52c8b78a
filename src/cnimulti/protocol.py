from __future__ import annotations

import ipaddress
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

JSONScalar = bool | int | float | str | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

# version stamped on the aggregated result, whatever the delegates report
CNI_VERSION = "0.4.0"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class Command(str, Enum):
    ADD = "ADD"
    DEL = "DEL"
    CHECK = "CHECK"
    VERSION = "VERSION"

    @property
    def is_teardown(self) -> bool:
        return self is Command.DEL


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(val) for key, val in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(val) for val in value)
    return value


def thaw(value: Any) -> Any:
    """Turn a frozen configuration value back into plain JSON-ready dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(val) for val in value]
    return value


@dataclass(frozen=True)
class DnsConfig:
    nameservers: tuple[str, ...] = ()
    domain: str | None = None
    search: tuple[str, ...] = ()
    options: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ("nameservers", "search", "options"):
            object.__setattr__(self, name, tuple(getattr(self, name)))


@dataclass(frozen=True)
class NetworkConfig:
    """The multi-plugin network configuration read from stdin.

    Immutable: `plugins` and every fragment in it are read-only mappings (nested
    lists become tuples) and `filter` is a tuple. Use `thaw` for plain copies.

    Attributes:
        cni_version: CNI version of the configuration, passed on to every delegate.
        type: The plugin type of this meta-plugin itself.
        name: Network name, passed on to every delegate.
        filter: Plugin names whose `ips` are left out of the aggregated result.
        plugins: Delegate configuration fragments keyed by the interface name the
            delegate should create. Each fragment needs a string `type` naming the
            delegate executable; everything else is opaque.
        dns: Optional DNS settings.
    """

    cni_version: str
    type: str
    name: str
    plugins: Mapping[str, Mapping[str, JSONValue]]
    filter: tuple[str, ...] = ()
    dns: DnsConfig | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "plugins", _freeze(self.plugins))
        object.__setattr__(self, "filter", tuple(self.filter))

    def sorted_plugins(self) -> Iterator[tuple[str, Mapping[str, JSONValue]]]:
        """Yield (plugin name, fragment) pairs in lexicographic name order."""
        for name in sorted(self.plugins):
            yield name, self.plugins[name]


@dataclass(frozen=True)
class NetworkRequest:
    command: Command
    container_id: str
    netns: str
    ifname: str
    path: str
    config: NetworkConfig
    args: str | None = None


@dataclass
class Interface:
    name: str
    mac: str
    sandbox: str | None = None


@dataclass
class IpResult:
    version: str
    address: str
    gateway: str | None = None
    interface: int | None = None


@dataclass
class Route:
    dst: str
    gw: str | None = None


@dataclass
class CniResult:
    """Result shape shared by each delegate and by the aggregate."""

    cni_version: str
    interfaces: list[Interface] = field(default_factory=list)
    ips: list[IpResult] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)


def env_flag(
    var_name: str, default: bool = False, environ: Mapping[str, str] | None = None
) -> bool:
    """Interpret boolean env vars consistently."""
    env = os.environ if environ is None else environ
    raw = env.get(var_name)
    if raw is None:
        return default
    norm = raw.strip().lower()
    if norm in _TRUTHY:
        return True
    if norm in _FALSY:
        return False
    return default


def _require_str(data: Mapping[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{where} missing string field '{key}'")
    return value


def _optional_str(data: Mapping[str, Any], key: str, where: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{where} field '{key}' must be a string")
    return value


def _str_list(data: Mapping[str, Any], key: str, where: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where} field '{key}' must be a list of strings")
    return list(value)


def _object_list(data: Mapping[str, Any], key: str, where: str) -> list[dict]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValueError(f"{where} field '{key}' must be a list of objects")
    return value


def _check_inet(value: str, where: str) -> str:
    try:
        ipaddress.IPv4Interface(value)
    except ValueError as exc:
        raise ValueError(f"{where}: {exc}") from exc
    return value


def _check_cidr(value: str, where: str) -> str:
    try:
        ipaddress.IPv4Network(value)
    except ValueError as exc:
        raise ValueError(f"{where}: {exc}") from exc
    return value


def dns_from_payload(data: Any) -> DnsConfig:
    if not isinstance(data, dict):
        raise ValueError("dns must be an object")
    nameservers = _str_list(data, "nameservers", "dns")
    for ns in nameservers:
        _check_inet(ns, "dns nameserver")
    return DnsConfig(
        nameservers=nameservers,
        domain=_optional_str(data, "domain", "dns"),
        search=_str_list(data, "search", "dns"),
        options=_str_list(data, "options", "dns"),
    )


def dns_to_payload(dns: DnsConfig) -> dict[str, JSONValue]:
    payload: dict[str, JSONValue] = {"nameservers": list(dns.nameservers)}
    if dns.domain is not None:
        payload["domain"] = dns.domain
    payload["search"] = list(dns.search)
    payload["options"] = list(dns.options)
    return payload


def config_from_payload(data: Any) -> NetworkConfig:
    """Deserialize the stdin JSON document into a NetworkConfig.

    Raises:
        ValueError: If the document does not have the NetworkConfig shape.
    """
    if not isinstance(data, dict):
        raise ValueError("network configuration must be a JSON object")
    plugins = data.get("plugins")
    if not isinstance(plugins, dict):
        raise ValueError("network configuration missing object field 'plugins'")
    for name, fragment in plugins.items():
        if not isinstance(fragment, dict):
            raise ValueError(f"configuration for plugin '{name}' must be an object")
    dns = data.get("dns")
    return NetworkConfig(
        cni_version=_require_str(data, "cniVersion", "network configuration"),
        type=_require_str(data, "type", "network configuration"),
        name=_require_str(data, "name", "network configuration"),
        plugins=plugins,
        filter=_str_list(data, "filter", "network configuration"),
        dns=dns_from_payload(dns) if dns is not None else None,
    )


def config_to_payload(config: NetworkConfig) -> dict[str, JSONValue]:
    payload: dict[str, JSONValue] = {
        "cniVersion": config.cni_version,
        "type": config.type,
        "name": config.name,
        "filter": list(config.filter),
        "plugins": thaw(config.plugins),
    }
    if config.dns is not None:
        payload["dns"] = dns_to_payload(config.dns)
    return payload


def _interface_from_payload(data: dict[str, Any]) -> Interface:
    return Interface(
        name=_require_str(data, "name", "interface"),
        mac=_require_str(data, "mac", "interface"),
        sandbox=_optional_str(data, "sandbox", "interface"),
    )


def _ip_from_payload(data: dict[str, Any]) -> IpResult:
    address = _check_inet(_require_str(data, "address", "ip"), "ip address")
    gateway = _optional_str(data, "gateway", "ip")
    if gateway is not None:
        _check_inet(gateway, "ip gateway")
    interface = data.get("interface")
    if interface is not None and (
        isinstance(interface, bool) or not isinstance(interface, int) or interface < 0
    ):
        raise ValueError("ip field 'interface' must be a non-negative integer")
    return IpResult(
        version=_require_str(data, "version", "ip"),
        address=address,
        gateway=gateway,
        interface=interface,
    )


def _route_from_payload(data: dict[str, Any]) -> Route:
    dst = _check_cidr(_require_str(data, "dst", "route"), "route dst")
    gw = _optional_str(data, "gw", "route")
    if gw is not None:
        _check_inet(gw, "route gw")
    return Route(dst=dst, gw=gw)


def result_from_payload(data: Any) -> CniResult:
    """Deserialize a delegate's stdout document into a CniResult.

    Missing `interfaces`, `ips` or `routes` lists are treated as empty and keys
    outside the result shape (such as `dns`) are ignored. Addresses are validated
    as IPv4 but kept verbatim.

    Raises:
        ValueError: If the document does not have the result shape.
    """
    if not isinstance(data, dict):
        raise ValueError("result must be a JSON object")
    return CniResult(
        cni_version=_require_str(data, "cniVersion", "result"),
        interfaces=[
            _interface_from_payload(i) for i in _object_list(data, "interfaces", "result")
        ],
        ips=[_ip_from_payload(i) for i in _object_list(data, "ips", "result")],
        routes=[_route_from_payload(r) for r in _object_list(data, "routes", "result")],
    )


def result_to_payload(result: CniResult) -> dict[str, JSONValue]:
    interfaces: list[JSONValue] = []
    for iface in result.interfaces:
        entry: dict[str, JSONValue] = {"name": iface.name, "mac": iface.mac}
        if iface.sandbox is not None:
            entry["sandbox"] = iface.sandbox
        interfaces.append(entry)

    ips: list[JSONValue] = []
    for ip in result.ips:
        entry = {"version": ip.version, "address": ip.address}
        if ip.gateway is not None:
            entry["gateway"] = ip.gateway
        if ip.interface is not None:
            entry["interface"] = ip.interface
        ips.append(entry)

    routes: list[JSONValue] = []
    for route in result.routes:
        entry = {"dst": route.dst}
        if route.gw is not None:
            entry["gw"] = route.gw
        routes.append(entry)

    return {
        "cniVersion": result.cni_version,
        "interfaces": interfaces,
        "ips": ips,
        "routes": routes,
    }


def error_to_payload(
    code: int, msg: str, details: str | None = None
) -> dict[str, JSONValue]:
    """Build the CNI error document written to stdout when a run fails."""
    payload: dict[str, JSONValue] = {"cniVersion": CNI_VERSION, "code": code, "msg": msg}
    if details:
        payload["details"] = details
    return payload
