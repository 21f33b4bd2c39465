from __future__ import annotations

import dataclasses
import json
import logging
import os
from typing import Any, Optional

import requests

from .errors import PublicationError


logger = logging.getLogger(__name__)

PINATA_BASE_URL = "https://api.pinata.cloud"
PINATA_UPLOAD_PATH = "/pinning/pinFileToIPFS"
PINATA_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs"
LOCAL_IPFS_API = "http://127.0.0.1:5001/api/v0/add"


@dataclasses.dataclass(slots=True)
class UploadResult:
    """Capture information returned after uploading a file to IPFS."""

    cid: str
    name: str
    size: int
    uri: str
    service: str


def _extract_cid(body: str, field: str, service: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise PublicationError(f"Unexpected {service} response: {body!r}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get(field), str):
        raise PublicationError(f"Unexpected {service} response: {body!r}")
    return payload[field]


def parse_pinata_response(body: str) -> str:
    """Extract the CID from the text body of a Pinata pin response."""
    return _extract_cid(body, "IpfsHash", "Pinata")


def parse_node_response(body: str) -> str:
    """Extract the CID from the text body of an IPFS node `add` response."""
    return _extract_cid(body, "Hash", "IPFS node")


class IPFSClient:
    """Publish campaign documents to Pinata or a local IPFS node and read them back."""

    def __init__(
        self,
        *,
        mode: str = "pinata",
        pinata_jwt: Optional[str] = None,
        pinata_api_key: Optional[str] = None,
        pinata_secret_api_key: Optional[str] = None,
        pinata_api_server: Optional[str] = None,
        ipfs_api_url: str = LOCAL_IPFS_API,
        gateway_url: Optional[str] = None,
        gateway_token: Optional[str] = None,
        cid_version: int = 1,
        timeout: int = 120,
    ) -> None:
        if mode not in {"pinata", "local"}:
            raise ValueError("mode must be 'pinata' or 'local'")
        self.mode = mode
        self.pinata_jwt = pinata_jwt or os.getenv("PINATA_JWT")
        self.pinata_api_key = pinata_api_key or os.getenv("PINATA_API_KEY")
        self.pinata_secret_api_key = (
            pinata_secret_api_key or os.getenv("PINATA_SECRET_API_KEY")
        )
        self.pinata_api_server = (
            pinata_api_server or os.getenv("PINATA_API_SERVER") or PINATA_BASE_URL
        ).rstrip("/")
        self.ipfs_api_url = ipfs_api_url
        self.gateway_url = (
            gateway_url or os.getenv("IPFS_GATEWAY") or PINATA_GATEWAY_URL
        ).rstrip("/")
        self.gateway_token = gateway_token or os.getenv("PINATA_ACCESS_TOKEN")
        self.cid_version = cid_version
        self.timeout = timeout
        if self.mode == "pinata" and not self._has_pinata_credentials:
            raise ValueError(
                "Pinata mode selected but no credentials provided."
                " Set PINATA_JWT or both PINATA_API_KEY and PINATA_SECRET_API_KEY."
            )

    @property
    def _has_pinata_credentials(self) -> bool:
        if self.pinata_jwt:
            return True
        return bool(self.pinata_api_key and self.pinata_secret_api_key)

    @property
    def pinata_upload_endpoint(self) -> str:
        return f"{self.pinata_api_server}{PINATA_UPLOAD_PATH}"

    def upload_bytes(self, payload: bytes, name: str, content_type: str = "application/octet-stream") -> UploadResult:
        if self.mode == "pinata":
            return self._upload_via_pinata(name, payload, content_type)
        return self._upload_via_local_node(name, payload, content_type)

    def upload_json(self, document: Any, name: str = "data.json") -> UploadResult:
        payload = json.dumps(document).encode("utf-8")
        return self.upload_bytes(payload, name, "application/json")

    def download_json(self, cid: str) -> Any:
        url = f"{self.gateway_url}/{cid}"
        params = {"pinataGatewayToken": self.gateway_token} if self.gateway_token else None
        logger.info("Downloading %s from %s", cid, self.gateway_url)
        response = requests.get(url, params=params, timeout=self.timeout)
        if response.status_code != 200:
            raise PublicationError(
                f"IPFS download failed for {cid}: {response.status_code} {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PublicationError(f"IPFS content for {cid} is not valid JSON") from exc

    def _upload_via_pinata(self, name: str, payload: bytes, content_type: str) -> UploadResult:
        headers = {}
        if self.pinata_jwt:
            headers["Authorization"] = f"Bearer {self.pinata_jwt}"
        else:
            headers["pinata_api_key"] = self.pinata_api_key  # type: ignore[assignment]
            headers["pinata_secret_api_key"] = (
                self.pinata_secret_api_key  # type: ignore[assignment]
            )
        metadata = json.dumps({"name": name})
        options = json.dumps({"cidVersion": self.cid_version})
        response = requests.post(
            self.pinata_upload_endpoint,
            files={"file": (name, payload, content_type)},
            data={"pinataMetadata": metadata, "pinataOptions": options},
            headers=headers,
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.error("Pinata upload of %s failed with status %s", name, response.status_code)
            raise PublicationError(
                f"Pinata upload failed for {name}: {response.status_code} {response.text}"
            )
        cid = parse_pinata_response(response.text)
        size = int(response.json().get("PinSize", len(payload)))
        logger.info("Pinned %s to IPFS as %s", name, cid)
        return UploadResult(
            cid=cid,
            name=name,
            size=size,
            uri=f"ipfs://{cid}",
            service="pinata",
        )

    def _upload_via_local_node(self, name: str, payload: bytes, content_type: str) -> UploadResult:
        params = {"cid-version": str(self.cid_version), "pin": "true"}
        response = requests.post(
            self.ipfs_api_url,
            params=params,
            files={"file": (name, payload, content_type)},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.error("Local IPFS upload of %s failed with status %s", name, response.status_code)
            raise PublicationError(
                f"Local IPFS upload failed for {name}: {response.status_code} {response.text}"
            )
        cid = parse_node_response(response.text)
        logger.info("Added %s to local IPFS node as %s", name, cid)
        return UploadResult(
            cid=cid,
            name=name,
            size=len(payload),
            uri=f"ipfs://{cid}",
            service="local",
        )


