#!/usr/bin/env python3
import json

import base58
import pytest

from airdrop_merkle.merkle_tree import MerkleLeaf

RECIPIENTS = [
    "8miSWoL8uhTZjA51YjJs6ddbi1oZYtNKwwgdpG2FmXp8",
    "9KGLQ4gqdCr5GfiHRNyNE3qwZD6N8AphE96dyxKKfURi",
    "EfjHTQfMTofQXkQpjndCFdnV8tpSfPTLJuo8tDAxWr9f",
    "FL7fsXqH4BvcCVWNXyujmpVbDjSu1StY2yWmUnVgSJSv",
]
TRAILING_RECIPIENT = "11111111111111111111111111111114"


def make_address(seed: int) -> str:
    return base58.b58encode((seed + 1).to_bytes(32, "big")).decode()


def make_leaves(count: int, amount: int = 500):
    return [MerkleLeaf(index=i, recipient=make_address(i), amount=amount + i) for i in range(count)]


@pytest.fixture
def four_leaves():
    return [
        MerkleLeaf(index=i, recipient=recipient, amount=100000000)
        for i, recipient in enumerate(RECIPIENTS)
    ]


@pytest.fixture
def five_leaves(four_leaves):
    return four_leaves + [
        MerkleLeaf(index=4, recipient=TRAILING_RECIPIENT, amount=500)
    ]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


@pytest.fixture
def pinata_env(monkeypatch):
    monkeypatch.setenv("PINATA_API_KEY", "test-key")
    monkeypatch.setenv("PINATA_SECRET_API_KEY", "test-secret")
    monkeypatch.setenv("PINATA_API_SERVER", "http://pinata.test")
    monkeypatch.setenv("IPFS_GATEWAY", "http://gateway.test/ipfs")
    monkeypatch.setenv("PINATA_ACCESS_TOKEN", "gateway-token")
    monkeypatch.delenv("PINATA_JWT", raising=False)
