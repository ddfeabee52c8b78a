"""Fake delegate plugins for exercising the invoker end to end.

Each fake is a small shell script under `<tmp>/bin` that records the stdin it was
given, its environment and the order it ran in under `<tmp>/calls`, then prints a
canned response and exits with a chosen status.
"""

import json
import logging
import stat
from pathlib import Path

import pytest

from cnimulti.log import log

_SCRIPT = """#!/bin/sh
cat > "{calls}/$CNI_IFNAME.stdin"
env > "{calls}/$CNI_IFNAME.env"
echo "$CNI_IFNAME" >> "{calls}/order"
cat "{out}"
exit {code}
"""


class FakeDelegates:
    def __init__(self, root: Path) -> None:
        self.bin_dir = root / "bin"
        self.calls_dir = root / "calls"
        self.bin_dir.mkdir()
        self.calls_dir.mkdir()

    def add(self, plugin_type: str, output="", exit_code: int = 0) -> Path:
        if isinstance(output, str):
            output = output.encode("utf-8")
        elif not isinstance(output, bytes):
            output = json.dumps(output).encode("utf-8")
        out_path = self.bin_dir / f"{plugin_type}.out"
        out_path.write_bytes(output)
        script = self.bin_dir / plugin_type
        script.write_text(
            _SCRIPT.format(calls=self.calls_dir, out=out_path, code=exit_code),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    def order(self) -> list[str]:
        path = self.calls_dir / "order"
        if not path.exists():
            return []
        return path.read_text(encoding="utf-8").split()

    def stdin_of(self, ifname: str) -> dict:
        return json.loads((self.calls_dir / f"{ifname}.stdin").read_text("utf-8"))

    def env_of(self, ifname: str) -> dict[str, str]:
        env: dict[str, str] = {}
        for line in (self.calls_dir / f"{ifname}.env").read_text("utf-8").splitlines():
            key, sep, value = line.partition("=")
            if sep:
                env[key] = value
        return env


@pytest.fixture(autouse=True)
def reset_logger():
    """Undo init_logging() so caplog keeps seeing records in later tests."""
    yield
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()
    log.setLevel(logging.NOTSET)
    log.propagate = True


@pytest.fixture
def delegates(tmp_path) -> FakeDelegates:
    return FakeDelegates(tmp_path)


@pytest.fixture
def cni_env(monkeypatch, delegates):
    """Set the CNI_* variables for an ADD; returns a setter for the command."""
    monkeypatch.setenv("CNI_COMMAND", "ADD")
    monkeypatch.setenv("CNI_CONTAINERID", "c0ffee")
    monkeypatch.setenv("CNI_NETNS", "/var/run/netns/test")
    monkeypatch.setenv("CNI_IFNAME", "eth0")
    monkeypatch.setenv("CNI_PATH", str(delegates.bin_dir))
    monkeypatch.delenv("CNI_ARGS", raising=False)

    def set_command(command: str) -> None:
        monkeypatch.setenv("CNI_COMMAND", command)

    return set_command


def delegate_result(
    ifname: str, mac: str, address: str | None = None, dst: str | None = None
) -> dict:
    result: dict = {
        "cniVersion": "0.4.0",
        "interfaces": [{"name": ifname, "mac": mac, "sandbox": "/var/run/netns/test"}],
        "ips": [],
        "routes": [],
    }
    if address is not None:
        result["ips"].append({"version": "4", "address": address, "interface": 0})
    if dst is not None:
        result["routes"].append({"dst": dst})
    return result
