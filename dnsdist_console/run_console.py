import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from . import crypto
from .errors import ConsoleError, DecodeError, KeyFormatError, TransportError
from .session import DEFAULT_CONNECT_TIMEOUT, execute_command

"""
run_console.py: one-shot command line client for a dnsdist console.

What you can do here:
- Run a command:  dnsdist-console --key <b64> showServers()
- Make a key:     dnsdist-console --make-key   (prints setKey("...") material)

Configuration comes from flags first, then the environment:
- DNSDIST_CONSOLE_KEY   base64 key, as printed by dnsdist's makeKey()
- DNSDIST_CONSOLE_HOST  console address (IP literal)
- DNSDIST_CONSOLE_PORT  console port
"""

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5199

ENV_KEY = "DNSDIST_CONSOLE_KEY"
ENV_HOST = "DNSDIST_CONSOLE_HOST"
ENV_PORT = "DNSDIST_CONSOLE_PORT"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Flags for a single command run."""
    p = argparse.ArgumentParser(
        prog="dnsdist-console",
        description="Run one command on a dnsdist console over its encrypted channel.",
    )
    p.add_argument("--host", default=os.environ.get(ENV_HOST, DEFAULT_HOST))
    p.add_argument("--port", type=int, default=os.environ.get(ENV_PORT, DEFAULT_PORT))
    p.add_argument("--key", default=os.environ.get(ENV_KEY), help=f"base64 console key (or set {ENV_KEY})")
    p.add_argument("--timeout", type=float, default=DEFAULT_CONNECT_TIMEOUT, help="connect timeout in seconds")
    p.add_argument("--make-key", action="store_true", help="print a new random key and exit")
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("command", nargs="*", help="console command; quote it if it contains spaces or dashes")
    return p.parse_args(argv)


async def run(args: argparse.Namespace) -> str:
    """Decode the key, connect, run the command and hand back the reply."""
    if not args.key:
        raise SystemExit(f"No key given. Use --key or set {ENV_KEY}.")
    key = crypto.b64_decode_key(args.key)

    command = " ".join(args.command or [])
    if not command:
        raise SystemExit("No command given.")

    # Commands can carry secrets (setKey), so only their size is logged.
    logger.debug("running a %d-byte command on %s:%d", len(command), args.host, args.port)
    return await execute_command(args.host, args.port, key, command, timeout=args.timeout)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point; keep top-level code very small."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.make_key:
        print(crypto.b64_encode_key(crypto.generate_key()))
        return

    try:
        output = asyncio.run(run(args))
    except KeyFormatError as exc:
        raise SystemExit(f"Unable to decode key: {exc}")
    except TransportError as exc:
        raise SystemExit(f"Connection error: {exc}")
    except DecodeError as exc:
        raise SystemExit(f"Could not decode response: {exc}")
    except ConsoleError as exc:
        raise SystemExit(str(exc))
    except ValueError as exc:
        # Oversized command; nothing was sent.
        raise SystemExit(f"Invalid command: {exc}")

    sys.stdout.write(output)
    if output and not output.endswith("\n"):
        sys.stdout.write("\n")


if __name__ == "__main__":
    main()
