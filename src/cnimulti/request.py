from __future__ import annotations

import json
import os
import sys
from typing import Mapping, TextIO

from cnimulti.errors import (
    CODE_DECODE_FAILURE,
    InvalidCommand,
    MalformedConfig,
    MissingEnvironment,
)
from cnimulti.log import log
from cnimulti.protocol import Command, NetworkConfig, NetworkRequest, config_from_payload


def _require_env(env: Mapping[str, str], var: str) -> str:
    value = env.get(var)
    if value is None:
        raise MissingEnvironment(var)
    return value


def parse_command(raw: str) -> Command:
    try:
        return Command(raw.strip().upper())
    except ValueError:
        raise InvalidCommand(raw) from None


def load_config(stdin: TextIO) -> NetworkConfig:
    """Read and validate the network configuration document from `stdin`."""
    raw = stdin.read()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedConfig(str(exc), code=CODE_DECODE_FAILURE) from exc
    try:
        return config_from_payload(data)
    except ValueError as exc:
        raise MalformedConfig(str(exc)) from exc


def get_request(
    environ: Mapping[str, str] | None = None, stdin: TextIO | None = None
) -> NetworkRequest:
    """Build the NetworkRequest for this invocation.

    The CNI protocol variables come from `environ` (default: the process
    environment) and the network configuration from `stdin` (default:
    `sys.stdin`). Required variables are checked before stdin is read.

    Raises:
        MissingEnvironment: A required `CNI_*` variable is unset.
        InvalidCommand: `CNI_COMMAND` is not a known command.
        MalformedConfig: The configuration is not valid JSON or has the wrong shape.
    """
    env = os.environ if environ is None else environ
    command = parse_command(_require_env(env, "CNI_COMMAND"))
    container_id = _require_env(env, "CNI_CONTAINERID")
    netns = _require_env(env, "CNI_NETNS")
    ifname = _require_env(env, "CNI_IFNAME")
    path = _require_env(env, "CNI_PATH")

    config = load_config(sys.stdin if stdin is None else stdin)
    log.info("CNI config: %s", config)

    request = NetworkRequest(
        command=command,
        container_id=container_id,
        netns=netns,
        ifname=ifname,
        path=path,
        config=config,
        args=env.get("CNI_ARGS"),
    )
    log.debug("Handling request: %s", request)
    return request
