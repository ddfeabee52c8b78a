from __future__ import annotations

import argparse
import json
import sys
from typing import Mapping, TextIO

import cnimulti
from cnimulti.aggregate import aggregate
from cnimulti.errors import CniError, DelegateFailed
from cnimulti.log import init_logging, log, set_verbosity
from cnimulti.protocol import error_to_payload, result_to_payload
from cnimulti.request import get_request


def run(environ: Mapping[str, str] | None = None, stdin: TextIO | None = None) -> int:
    """Handle one CNI invocation and return the process exit code.

    On success the aggregated result is written to stdout as a single JSON line,
    except for DEL which writes nothing. A failing delegate has already echoed its
    own output; any other error is reported as a CNI error document.
    """
    try:
        request = get_request(environ=environ, stdin=stdin)
        result = aggregate(request)
    except DelegateFailed as exc:
        log.error("%s", exc)
        return 1
    except CniError as exc:
        log.error("%s", exc)
        print(json.dumps(error_to_payload(exc.code, exc.message, exc.details)))
        return 1

    if request.command.is_teardown:
        log.info("Not sending response to %s", request.command.value)
        return 0

    payload = result_to_payload(result)
    log.info("Sending response: %s", payload)
    print(json.dumps(payload), flush=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="cni-multi",
        description=(
            "CNI meta-plugin: runs each delegate plugin configured under `plugins` "
            "and merges their results. Parameters come from the CNI_* environment "
            "variables and the network configuration on stdin."
        ),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {cnimulti.__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug output to stderr."
    )
    args = parser.parse_args(argv)

    init_logging()
    if args.verbose:
        set_verbosity(True)
    log.info("Running CNI multi plugin")
    return run()


if __name__ == "__main__":
    sys.exit(main())
