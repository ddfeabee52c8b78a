from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Mapping

from cnimulti.errors import DelegateFailed, MalformedDelegateResponse, UnresolvedPluginType
from cnimulti.log import log
from cnimulti.protocol import (
    CniResult,
    JSONValue,
    NetworkConfig,
    NetworkRequest,
    result_from_payload,
    thaw,
)


def resolve_plugin_path(
    search_path: str, fragment: Mapping[str, Any], plugin: str = "?"
) -> Path:
    """Return the delegate executable for a plugin configuration fragment.

    The fragment's `type` is looked up under the first directory of the
    `os.pathsep`-separated `search_path` (`CNI_PATH`). Nothing on disk is
    inspected: a missing executable shows up when it is spawned.

    Raises:
        UnresolvedPluginType: If `type` is absent, not a string, empty, or not a
            bare file name.
    """
    if "type" not in fragment:
        raise UnresolvedPluginType(plugin, "no plugin type")
    plugin_type = fragment["type"]
    if not isinstance(plugin_type, str):
        raise UnresolvedPluginType(plugin, "plugin type was not a string")
    if not plugin_type or plugin_type in (".", ".."):
        raise UnresolvedPluginType(plugin, f"invalid plugin type {plugin_type!r}")
    if "/" in plugin_type or (os.altsep and os.altsep in plugin_type):
        raise UnresolvedPluginType(
            plugin, f"plugin type {plugin_type!r} must be a bare executable name"
        )
    root = search_path.split(os.pathsep)[0]
    return Path(root) / plugin_type


def build_sub_request(
    fragment: Mapping[str, JSONValue], config: NetworkConfig
) -> dict[str, JSONValue]:
    """The delegate's stdin document: its own fragment plus the shared `name` and
    `cniVersion` of the network."""
    sub_request = thaw(fragment)
    sub_request["name"] = config.name
    sub_request["cniVersion"] = config.cni_version
    return sub_request


def build_delegate_env(
    plugin: str, environ: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Prepare the environment for a delegate: the parent's, with `CNI_IFNAME`
    set to the plugin name."""
    env = dict(os.environ if environ is None else environ)
    env["CNI_IFNAME"] = plugin
    return env


def _run_delegate_process(
    cmd_path: Path, sub_request: bytes, env: dict[str, str], plugin: str
) -> tuple[int, bytes]:
    try:
        proc = subprocess.Popen(  # noqa: S603
            [str(cmd_path)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            env=env,
        )
    except OSError as exc:
        raise DelegateFailed(plugin, reason=f"could not execute {cmd_path}: {exc}") from exc

    # communicate() writes stdin, closes it and drains stdout before waiting;
    # the context manager closes the pipes even if that raises
    with proc:
        stdout, _ = proc.communicate(input=sub_request)
    return proc.returncode, stdout or b""


def invoke(
    plugin: str, fragment: Mapping[str, JSONValue], request: NetworkRequest
) -> CniResult | None:
    """Run one delegate plugin and return its result.

    Returns None for DEL: the delegate's output and exit status are not used, and a
    failure is only logged. For any other command a non-zero exit echoes the
    delegate's stdout to our stdout and raises.

    Raises:
        UnresolvedPluginType: The fragment does not name a usable plugin type.
        DelegateFailed: The delegate could not be started, or exited non-zero.
        MalformedDelegateResponse: The delegate's stdout is not a CNI result.
    """
    plugin_log = log.getChild(f"delegate.{plugin}")
    cmd_path = resolve_plugin_path(request.path, fragment, plugin)
    sub_request = json.dumps(build_sub_request(fragment, request.config))

    plugin_log.info("Executing command: %s", cmd_path)
    plugin_log.debug("Sending sub request: %s", sub_request)

    returncode, raw_output = _run_delegate_process(
        cmd_path, sub_request.encode("utf-8"), build_delegate_env(plugin), plugin
    )

    if request.command.is_teardown:
        if returncode != 0:
            plugin_log.warning(
                "%s exited %d during %s; ignoring: %s",
                cmd_path,
                returncode,
                request.command.value,
                raw_output.decode("utf-8", errors="replace").strip(),
            )
        return None

    if returncode != 0:
        output = raw_output.decode("utf-8", errors="replace")
        print(output, file=sys.stdout, flush=True)
        raise DelegateFailed(plugin, returncode=returncode, output=output)

    plugin_log.debug("Got raw output: %r", raw_output)
    try:
        result = result_from_payload(json.loads(raw_output.decode("utf-8")))
    except ValueError as exc:
        # UnicodeDecodeError and json.JSONDecodeError are ValueErrors too
        raise MalformedDelegateResponse(plugin, str(exc)) from exc
    plugin_log.info("Got output: %s", result)
    return result
