#!/usr/bin/env python3
import json

import pytest
import requests

from airdrop_merkle.errors import PublicationError
from airdrop_merkle.ipfs_client import IPFSClient, parse_node_response, parse_pinata_response
from conftest import FakeResponse

PINATA_OK = {"IpfsHash": "test_hash", "PinSize": 123, "Timestamp": "2021-01-01T00:00:00Z"}


@pytest.fixture
def captured(monkeypatch):
    calls = []

    def install(method, response):
        def fake(url, **kwargs):
            calls.append((url, kwargs))
            return response

        monkeypatch.setattr(requests, method, fake)
        return calls

    return install


def test_parse_pinata_response():
    assert parse_pinata_response(json.dumps(PINATA_OK)) == "test_hash"
    with pytest.raises(PublicationError):
        parse_pinata_response("Error message")
    with pytest.raises(PublicationError):
        parse_pinata_response('{"code": "500"}')


def test_pinata_mode_requires_credentials(monkeypatch):
    for name in ("PINATA_JWT", "PINATA_API_KEY", "PINATA_SECRET_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(ValueError):
        IPFSClient(mode="pinata")
    with pytest.raises(ValueError):
        IPFSClient(mode="s3")


def test_upload_json_to_pinata(pinata_env, captured):
    calls = captured("post", FakeResponse(200, PINATA_OK))
    client = IPFSClient()

    result = client.upload_json({"root": "abc"}, "data.json")

    assert result.cid == "test_hash"
    assert result.size == 123
    assert result.uri == "ipfs://test_hash"
    assert result.service == "pinata"
    url, kwargs = calls[0]
    assert url == "http://pinata.test/pinning/pinFileToIPFS"
    assert kwargs["headers"] == {
        "pinata_api_key": "test-key",
        "pinata_secret_api_key": "test-secret",
    }
    name, payload, content_type = kwargs["files"]["file"]
    assert name == "data.json"
    assert json.loads(payload) == {"root": "abc"}
    assert content_type == "application/json"


def test_upload_uses_jwt_when_configured(pinata_env, captured):
    calls = captured("post", FakeResponse(200, PINATA_OK))
    client = IPFSClient(pinata_jwt="jwt-token")

    client.upload_bytes(b"payload", "blob.bin")

    assert calls[0][1]["headers"] == {"Authorization": "Bearer jwt-token"}


def test_upload_error_raises(pinata_env, captured):
    captured("post", FakeResponse(500, {"code": "500", "message": "Internal server error"}))
    client = IPFSClient()

    with pytest.raises(PublicationError, match="500"):
        client.upload_json({"root": "abc"})


def test_upload_via_local_node(captured):
    calls = captured("post", FakeResponse(200, {"Hash": "local_hash"}))
    client = IPFSClient(mode="local", ipfs_api_url="http://node.test/api/v0/add")

    result = client.upload_bytes(b"12345", "data.json")

    assert result.cid == "local_hash"
    assert result.size == 5
    assert result.service == "local"
    assert calls[0][0] == "http://node.test/api/v0/add"
    assert calls[0][1]["params"] == {"cid-version": "1", "pin": "true"}


def test_parse_node_response():
    assert parse_node_response(json.dumps({"Name": "data.json", "Hash": "local_hash"})) == "local_hash"
    with pytest.raises(PublicationError):
        parse_node_response("Error message")
    with pytest.raises(PublicationError):
        parse_node_response(json.dumps({"Message": "oops"}))


@pytest.mark.parametrize(
    "response",
    [FakeResponse(200, {"Message": "oops"}), FakeResponse(200, text="<html>")],
)
def test_local_node_unexpected_body_raises(captured, response):
    captured("post", response)
    client = IPFSClient(mode="local")

    with pytest.raises(PublicationError):
        client.upload_bytes(b"payload", "data.json")


def test_download_json(pinata_env, captured):
    calls = captured("get", FakeResponse(200, {"root": "abc"}))
    client = IPFSClient()

    assert client.download_json("bafy") == {"root": "abc"}
    url, kwargs = calls[0]
    assert url == "http://gateway.test/ipfs/bafy"
    assert kwargs["params"] == {"pinataGatewayToken": "gateway-token"}


def test_download_errors(pinata_env, captured):
    captured("get", FakeResponse(404, text="not found"))
    client = IPFSClient()
    with pytest.raises(PublicationError, match="404"):
        client.download_json("bafy")


def test_download_non_json(pinata_env, captured):
    captured("get", FakeResponse(200, text="<html>"))
    client = IPFSClient()
    with pytest.raises(PublicationError):
        client.download_json("bafy")
