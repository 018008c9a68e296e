import pytest
import requests

from deployment import utils
from deployment.utils import (
    MissingCredential,
    RetryExhausted,
    get_mnemonic,
    get_pyth_feed_ids,
    read_wasm,
    wait_for_pyth_feed,
    wait_until,
)

FEED_ID = "b00b60f88b03a6a625a8d1c048c3f66653edf217439983d037e7222c4e612819"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_wait_until_returns_attempts():
    answers = iter([False, False, False, True])
    delays = list()
    attempts = wait_until(lambda: next(answers), "condition", sleep=delays.append)
    assert attempts == 4
    assert delays == [1.0, 2.0, 4.0]


def test_wait_until_succeeds_immediately():
    delays = list()
    assert wait_until(lambda: True, "condition", sleep=delays.append) == 1
    assert delays == []


def test_wait_until_exhausts():
    calls = list()
    delays = list()

    def _never():
        calls.append(1)
        return False

    with pytest.raises(RetryExhausted, match="condition"):
        wait_until(_never, "condition", max_attempts=4, base_delay=0.5, sleep=delays.append)
    assert len(calls) == 4
    assert delays == [0.5, 1.0, 2.0]


def test_wait_until_rejects_zero_attempts():
    with pytest.raises(ValueError):
        wait_until(lambda: True, "condition", max_attempts=0)


def test_get_mnemonic(monkeypatch):
    monkeypatch.setenv("MNEMONIC", "  word word word  ")
    assert get_mnemonic() == "word word word"


@pytest.mark.parametrize("value", [None, "", "   "])
def test_missing_mnemonic(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("NEW_OWNER_MNEMONIC", raising=False)
    else:
        monkeypatch.setenv("NEW_OWNER_MNEMONIC", value)
    with pytest.raises(MissingCredential, match="NEW_OWNER_MNEMONIC"):
        get_mnemonic("NEW_OWNER_MNEMONIC")


def test_read_wasm(tmp_path):
    (tmp_path / "mars_oracle.wasm").write_bytes(b"\x00asm")
    assert read_wasm(tmp_path, "mars_oracle.wasm") == b"\x00asm"
    with pytest.raises(FileNotFoundError):
        read_wasm(tmp_path, "mars_red_bank.wasm")


def test_get_pyth_feed_ids(monkeypatch):
    requested = list()

    def _get(url, timeout):
        requested.append(url)
        return FakeResponse([f"0x{FEED_ID.upper()}", "abcd"])

    monkeypatch.setattr(utils.requests, "get", _get)
    assert get_pyth_feed_ids("https://hermes.example/") == [FEED_ID, "abcd"]
    assert requested == ["https://hermes.example/api/price_feed_ids"]


def test_get_pyth_feed_ids_http_error(monkeypatch):
    monkeypatch.setattr(utils.requests, "get", lambda url, timeout: FakeResponse([], 503))
    with pytest.raises(requests.HTTPError):
        get_pyth_feed_ids("https://hermes.example")


def test_wait_for_pyth_feed(monkeypatch):
    listings = iter([["abcd"], ["abcd"], ["abcd", FEED_ID]])
    monkeypatch.setattr(
        utils.requests, "get", lambda url, timeout: FakeResponse(next(listings))
    )
    delays = list()
    attempts = wait_for_pyth_feed("https://hermes.example", f"0x{FEED_ID}", sleep=delays.append)
    assert attempts == 3
    assert delays == [1.0, 2.0]


def test_wait_for_missing_pyth_feed(monkeypatch):
    monkeypatch.setattr(utils.requests, "get", lambda url, timeout: FakeResponse(["abcd"]))
    with pytest.raises(RetryExhausted):
        wait_for_pyth_feed("https://hermes.example", FEED_ID, max_attempts=2, sleep=lambda _: None)
