"""Errors that terminate a cni-multi run.

Each carries the CNI well-known error code reported back to the orchestrator.
"""

from __future__ import annotations

# CNI well-known error codes
CODE_INVALID_ENV = 4
CODE_IO_FAILURE = 5
CODE_DECODE_FAILURE = 6
CODE_INVALID_CONFIG = 7


class CniError(RuntimeError):
    """Base error for a failed CNI request."""

    code = CODE_INVALID_CONFIG

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class MissingEnvironment(CniError):
    code = CODE_INVALID_ENV

    def __init__(self, var: str) -> None:
        super().__init__(f"No value for required variable {var}. Is {var} set?")
        self.var = var


class InvalidCommand(CniError):
    code = CODE_INVALID_ENV

    def __init__(self, value: str) -> None:
        super().__init__(f"Unsupported CNI_COMMAND: {value!r}")
        self.value = value


class MalformedConfig(CniError):
    """Network configuration on stdin is not valid JSON or has the wrong shape."""

    def __init__(self, message: str, code: int = CODE_INVALID_CONFIG) -> None:
        super().__init__(f"Invalid network configuration: {message}")
        self.code = code


class UnresolvedPluginType(CniError):
    def __init__(self, plugin: str, reason: str) -> None:
        super().__init__(f"[delegate:{plugin}] cannot resolve plugin type: {reason}")
        self.plugin = plugin


class DelegateFailed(CniError):
    """A delegate exited non-zero, or could not be started at all."""

    code = CODE_IO_FAILURE

    def __init__(
        self,
        plugin: str,
        returncode: int | None = None,
        output: str = "",
        reason: str | None = None,
    ) -> None:
        if reason is None:
            reason = f"exit {returncode}"
        super().__init__(f"[delegate:{plugin}] plugin error: {reason}")
        self.plugin = plugin
        self.returncode = returncode
        self.output = output


class MalformedDelegateResponse(CniError):
    code = CODE_DECODE_FAILURE

    def __init__(self, plugin: str, reason: str) -> None:
        super().__init__(f"[delegate:{plugin}] invalid plugin response: {reason}")
        self.plugin = plugin
