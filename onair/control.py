"""
Control client for a running OnAir server.

Sends operator commands ("start", "stop", or an effect name) to the
POST /controller endpoint. Usable as a library or from the shell:

    python3 -m onair.control start
    python3 -m onair.control applause
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ControlClient:
    """
    Client for OnAir's HTTP control API.

    Stateless and transport-only: it sends whatever command it is given.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 3000, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.base_url = f"http://{host}:{port}"
        self.timeout = timeout

        # Suppress httpx INFO level logging
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def send(self, command: str) -> Dict[str, Any]:
        """
        Send one command.

        Returns:
            Response JSON from the server

        Raises:
            httpx.HTTPStatusError: If the server rejected the command
            httpx.HTTPError: On transport failures
        """
        url = f"{self.base_url}/controller"
        response = httpx.post(url, json={"command": command}, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def status(self) -> Optional[Dict[str, Any]]:
        """Playback snapshot, or None if the server is unreachable."""
        try:
            response = httpx.get(f"{self.base_url}/status", timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to get status: {e}")
            return None


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Send a command to an OnAir server")
    parser.add_argument("command", help='"start", "stop", "status" or an effect name')
    parser.add_argument("--host", default=os.getenv("ONAIR_CONTROL_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("ONAIR_PORT", "3000")))
    args = parser.parse_args(argv)

    client = ControlClient(args.host, args.port)

    if args.command == "status":
        state = client.status()
        if state is None:
            return 1
        print(json.dumps(state, indent=2))
        return 0

    try:
        result = client.send(args.command)
    except httpx.HTTPStatusError as e:
        print(f"Rejected ({e.response.status_code}): {e.response.text}", file=sys.stderr)
        return 1
    except httpx.HTTPError as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
