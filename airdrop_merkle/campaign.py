"""Airdrop campaign creation and eligibility lookups.

A campaign is published as one JSON document holding the recipient list, the
Merkle root and the serialized tree. Creating a campaign validates a recipients
CSV, builds the tree and pins the document to IPFS; checking eligibility reads
the document back, finds the recipient and returns the inclusion proof the
claim needs.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from .cli import (
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
    EXIT_VERIFICATION_FAILED,
    load_environment,
    setup_logging,
)
from .csv_validator import CampaignCsvParsed, parse_campaign_csv
from .errors import AirdropError, CsvValidationError, InvalidInputError, NotEligibleError
from .ipfs_client import LOCAL_IPFS_API, IPFSClient
from .merkle_tree import MerkleLeaf, MerkleTree, verify_proof


logger = logging.getLogger(__name__)

CAMPAIGN_DOCUMENT_NAME = "data.json"


@dataclass(frozen=True)
class Recipient:
    address: str
    amount: str


@dataclass(frozen=True)
class Campaign:
    total_amount: str
    number_of_recipients: int
    merkle_tree: str
    root: str
    recipients: List[Recipient]

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Campaign":
        try:
            recipients = [
                Recipient(address=str(entry["address"]), amount=str(entry["amount"]))
                for entry in payload["recipients"]
            ]
            return cls(
                total_amount=str(payload["total_amount"]),
                number_of_recipients=int(payload["number_of_recipients"]),
                merkle_tree=str(payload["merkle_tree"]),
                root=str(payload["root"]),
                recipients=recipients,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"Malformed campaign document: {exc}") from exc

    @classmethod
    def from_json(cls, data: str) -> "Campaign":
        try:
            payload = json.loads(data)
        except ValueError as exc:
            raise InvalidInputError(f"Campaign document is not valid JSON: {exc}") from exc
        return cls.from_dict(payload)

    def load_tree(self) -> MerkleTree:
        tree = MerkleTree.load(self.merkle_tree)
        if tree.root_hex() != self.root.lower():
            raise InvalidInputError("Campaign root does not match its merkle tree")
        if len(tree.leaves) != len(self.recipients):
            raise InvalidInputError("Campaign recipients do not match its merkle tree")
        return tree

    def find_recipient(self, address: str) -> Optional[int]:
        wanted = address.lower()
        for index, recipient in enumerate(self.recipients):
            if recipient.address.lower() == wanted:
                return index
        return None


@dataclass(frozen=True)
class CampaignUpload:
    status: str
    total: str
    recipients: str
    root: str
    cid: str


@dataclass(frozen=True)
class Eligibility:
    index: int
    proof: List[str]
    address: str
    amount: str

    def to_leaf(self) -> MerkleLeaf:
        try:
            amount = int(self.amount)
        except ValueError as exc:
            raise InvalidInputError(f"Claim amount is not an integer: {self.amount!r}") from exc
        return MerkleLeaf(index=self.index, recipient=self.address, amount=amount)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Eligibility":
        try:
            return cls(
                index=int(payload["index"]),
                proof=list(payload["proof"]),
                address=str(payload["address"]),
                amount=str(payload["amount"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidInputError(f"Malformed eligibility claim: {exc}") from exc


def build_campaign(parsed: CampaignCsvParsed) -> Campaign:
    if not parsed.is_valid:
        raise CsvValidationError(parsed.validation_errors)
    tree = MerkleTree.build(parsed.to_leaves())
    return Campaign(
        total_amount=str(parsed.total_amount),
        number_of_recipients=parsed.number_of_recipients,
        merkle_tree=tree.dump(),
        root=tree.root_hex(),
        recipients=[
            Recipient(address=record.address, amount=str(record.amount))
            for record in parsed.records
        ],
    )


def publish_campaign(campaign: Campaign, client: IPFSClient) -> CampaignUpload:
    result = client.upload_json(campaign.to_dict(), CAMPAIGN_DOCUMENT_NAME)
    return CampaignUpload(
        status="Upload successful",
        total=campaign.total_amount,
        recipients=str(campaign.number_of_recipients),
        root=campaign.root,
        cid=result.cid,
    )


def create_campaign(csv_text: str, decimals: int, client: IPFSClient) -> CampaignUpload:
    campaign = build_campaign(parse_campaign_csv(csv_text, decimals))
    logger.info(
        "Built campaign with %d recipients and root %s",
        campaign.number_of_recipients,
        campaign.root,
    )
    return publish_campaign(campaign, client)


def check_eligibility(campaign: Campaign, address: str) -> Eligibility:
    index = campaign.find_recipient(address)
    if index is None:
        raise NotEligibleError("The provided address is not eligible for this campaign")
    proof = campaign.load_tree().get_proof(index)
    if proof is None:
        raise InvalidInputError(f"Campaign tree has no leaf for recipient {index}")
    recipient = campaign.recipients[index]
    return Eligibility(index=index, proof=proof, address=recipient.address, amount=recipient.amount)


def fetch_campaign(cid: str, client: IPFSClient) -> Campaign:
    return Campaign.from_dict(client.download_json(cid))


def fetch_eligibility(cid: str, address: str, client: IPFSClient) -> Eligibility:
    return check_eligibility(fetch_campaign(cid, client), address)


def verify_claim(eligibility: Eligibility, root: str) -> bool:
    return verify_proof(eligibility.to_leaf(), root, eligibility.proof)


def _client_from_args(args: argparse.Namespace) -> IPFSClient:
    return IPFSClient(mode=args.mode, ipfs_api_url=args.ipfs_api_url)


def _cmd_create(args: argparse.Namespace) -> int:
    parsed = parse_campaign_csv(args.csv.read_text(), args.decimals)
    if not parsed.is_valid:
        print(json.dumps({
            "status": "Invalid csv file.",
            "errors": [dataclasses.asdict(error) for error in parsed.validation_errors],
        }, indent=2))
        return EXIT_RUNTIME_ERROR
    campaign = build_campaign(parsed)
    if args.out:
        args.out.write_text(json.dumps(campaign.to_dict(), indent=2))
        print(f"Campaign written to {args.out}")
    if args.no_upload:
        print(f"Merkle root: {campaign.root}")
        return EXIT_SUCCESS
    upload = publish_campaign(campaign, _client_from_args(args))
    print(json.dumps(dataclasses.asdict(upload), indent=2))
    return EXIT_SUCCESS


def _cmd_publish(args: argparse.Namespace) -> int:
    campaign = Campaign.from_json(args.campaign.read_text())
    campaign.load_tree()
    upload = publish_campaign(campaign, _client_from_args(args))
    print(json.dumps(dataclasses.asdict(upload), indent=2))
    return EXIT_SUCCESS


def _cmd_eligibility(args: argparse.Namespace) -> int:
    if args.campaign:
        campaign = Campaign.from_json(args.campaign.read_text())
    else:
        campaign = fetch_campaign(args.cid, _client_from_args(args))
    try:
        eligibility = check_eligibility(campaign, args.address)
    except NotEligibleError as exc:
        print(str(exc))
        return EXIT_VERIFICATION_FAILED
    print(json.dumps(dataclasses.asdict(eligibility), indent=2))
    return EXIT_SUCCESS


def _cmd_verify(args: argparse.Namespace) -> int:
    claim = Eligibility.from_dict(json.loads(args.claim.read_text()))
    if verify_claim(claim, args.root):
        print("Proof is valid")
        return EXIT_SUCCESS
    print("Proof is invalid")
    return EXIT_VERIFICATION_FAILED


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="airdrop-campaign",
        description="Create airdrop campaigns and look up recipient eligibility proofs",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("AIRDROP_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--mode",
        choices=["pinata", "local"],
        default=os.getenv("IPFS_MODE", "pinata"),
        help="IPFS backend (default: pinata)",
    )
    parser.add_argument(
        "--ipfs-api-url",
        default=os.getenv("IPFS_API_URL", LOCAL_IPFS_API),
        help="HTTP API endpoint when using a local IPFS node",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Validate a CSV, build the tree and publish it")
    create.add_argument("csv", type=Path, help="CSV file with `address,amount` columns")
    create.add_argument(
        "--decimals",
        type=int,
        default=os.getenv("AIRDROP_DECIMALS"),
        required=os.getenv("AIRDROP_DECIMALS") is None,
        help="Token decimals used to convert amounts to base units",
    )
    create.add_argument("--out", type=Path, default=None, help="Also write the campaign document here")
    create.add_argument("--no-upload", action="store_true", help="Skip publishing to IPFS")
    create.set_defaults(handler=_cmd_create)

    publish = subparsers.add_parser("publish", help="Publish a campaign document written by `create --out`")
    publish.add_argument("campaign", type=Path, help="Local campaign document")
    publish.set_defaults(handler=_cmd_publish)

    eligibility = subparsers.add_parser("eligibility", help="Produce the proof for one recipient")
    source = eligibility.add_mutually_exclusive_group(required=True)
    source.add_argument("--cid", help="CID of a published campaign")
    source.add_argument("--campaign", type=Path, help="Local campaign document")
    eligibility.add_argument("address", help="Recipient address")
    eligibility.set_defaults(handler=_cmd_eligibility)

    verify = subparsers.add_parser("verify", help="Check an eligibility claim against a root")
    verify.add_argument("--root", required=True, help="Hex encoded merkle root")
    verify.add_argument("--claim", type=Path, required=True, help="JSON file produced by `eligibility`")
    verify.set_defaults(handler=_cmd_verify)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_environment()
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        return args.handler(args)
    except (AirdropError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        return EXIT_RUNTIME_ERROR


def _run_cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    _run_cli()
