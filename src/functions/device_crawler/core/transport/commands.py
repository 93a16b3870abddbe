"""Remote command templates for the instrument web interface."""

from __future__ import annotations

import shlex

LISTING_PATH = "/cgi/list.cgi?lang=1"
DETAIL_PREFIX = "/cgi"


def _base_url(device_address: str) -> str:
    address = device_address.strip().rstrip("/")
    if "://" in address:
        return address
    return f"http://{address}"


def listing_url(device_address: str) -> str:
    return f"{_base_url(device_address)}{LISTING_PATH}"


def detail_url(device_address: str, relative_path: str) -> str:
    """Build the detail URL from a normalised listing path such as ``/detail.cgi?id=3``."""

    return f"{_base_url(device_address)}{DETAIL_PREFIX}{relative_path}"


def build_fetch_command(fetch_command: str, url: str) -> str:
    """Return the shell command that prints *url* to stdout on the remote host."""

    return f"{fetch_command.strip()} {shlex.quote(url)}"


def listing_command(fetch_command: str, device_address: str) -> str:
    return build_fetch_command(fetch_command, listing_url(device_address))


def detail_command(fetch_command: str, device_address: str, relative_path: str) -> str:
    return build_fetch_command(fetch_command, detail_url(device_address, relative_path))
