from __future__ import annotations

from typing import Callable, Mapping

from cnimulti import delegate
from cnimulti.log import log
from cnimulti.protocol import CNI_VERSION, CniResult, JSONValue, NetworkRequest

Invoker = Callable[[str, Mapping[str, JSONValue], NetworkRequest], CniResult | None]


def aggregate(request: NetworkRequest, invoke: Invoker | None = None) -> CniResult:
    """Run every configured delegate in plugin-name order and merge the results.

    Interfaces and routes from every delegate are kept. Addresses are kept unless
    the plugin name is listed in the configuration's `filter`. The first failing
    delegate aborts the run; delegates that already ran are not undone.
    """
    if invoke is None:
        invoke = delegate.invoke

    merged = CniResult(cni_version=CNI_VERSION)
    filtered = set(request.config.filter)
    for plugin, fragment in request.config.sorted_plugins():
        result = invoke(plugin, fragment, request)
        if result is None:
            continue
        merged.interfaces.extend(result.interfaces)
        if plugin in filtered:
            log.debug("[delegate:%s] dropping %d ips", plugin, len(result.ips))
        else:
            merged.ips.extend(result.ips)
        merged.routes.extend(result.routes)
    return merged
