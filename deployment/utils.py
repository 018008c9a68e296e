import json
import os
import time
from pathlib import Path
from typing import Callable, List, Optional

import click
import requests
import yaml

from deployment.constants import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    MNEMONIC_ENVVAR,
    PYTH_PRICE_FEED_IDS_PATH,
)


class MissingCredential(RuntimeError):
    """Raised when a required mnemonic is not present in the environment."""


class RetryExhausted(RuntimeError):
    """Raised when a polled condition never held within the allowed attempts."""


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def get_mnemonic(envvar: str = MNEMONIC_ENVVAR) -> str:
    """Returns the mnemonic stored in the given environment variable."""
    mnemonic = os.environ.get(envvar, "").strip()
    if not mnemonic:
        raise MissingCredential(f"{envvar} is not set; export it before running this script.")
    return mnemonic


def get_wasm_filepath(wasm_dir: Path, filename: str) -> Path:
    """Returns the filepath of a compiled contract artifact."""
    filepath = Path(wasm_dir) / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Contract artifact {filepath} does not exist.")
    return filepath


def read_wasm(wasm_dir: Path, filename: str) -> bytes:
    with open(get_wasm_filepath(wasm_dir, filename), "rb") as file:
        return file.read()


def wait_until(
    predicate: Callable[[], bool],
    description: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Polls ``predicate`` until it returns True, doubling the delay between
    attempts. Returns the number of attempts used.

    Raises RetryExhausted once ``max_attempts`` checks have failed.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        if predicate():
            return attempt
        if attempt == max_attempts:
            break
        click.echo(
            f"(i) Waiting for {description} ({attempt}/{max_attempts}), retrying in {delay:g}s"
        )
        sleep(delay)
        delay *= 2

    raise RetryExhausted(f"Gave up waiting for {description} after {max_attempts} attempts.")


def _normalize_feed_id(feed_id: str) -> str:
    feed_id = feed_id.lower()
    if feed_id.startswith("0x"):
        feed_id = feed_id[2:]
    return feed_id


def get_pyth_feed_ids(endpoint: str, timeout: Optional[float] = 10) -> List[str]:
    """Returns the price feed ids listed by a Pyth Hermes endpoint."""
    url = endpoint.rstrip("/") + PYTH_PRICE_FEED_IDS_PATH
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return [_normalize_feed_id(feed_id) for feed_id in response.json()]


def is_pyth_feed_available(endpoint: str, feed_id: str) -> bool:
    return _normalize_feed_id(feed_id) in get_pyth_feed_ids(endpoint)


def wait_for_pyth_feed(
    endpoint: str,
    feed_id: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Blocks until the Hermes index lists ``feed_id``."""
    return wait_until(
        predicate=lambda: is_pyth_feed_available(endpoint, feed_id),
        description=f"pyth feed {feed_id}",
        max_attempts=max_attempts,
        base_delay=base_delay,
        sleep=sleep,
    )
