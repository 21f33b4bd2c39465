"""Merkle commitments, inclusion proofs and IPFS publication for airdrop campaigns."""

from .campaign import (
    Campaign,
    CampaignUpload,
    Eligibility,
    Recipient,
    build_campaign,
    check_eligibility,
    create_campaign,
    fetch_eligibility,
    verify_claim,
)
from .csv_validator import AddressKind, CampaignCsvParsed, ValidationError, parse_campaign_csv
from .errors import (
    AirdropError,
    CsvValidationError,
    EmptyTreeError,
    InvalidInputError,
    NotEligibleError,
    PublicationError,
)
from .ipfs_client import IPFSClient, UploadResult
from .merkle_tree import MerkleLeaf, MerkleProof, MerkleTree, commit, verify_proof

__all__ = [
    "AddressKind",
    "AirdropError",
    "Campaign",
    "CampaignCsvParsed",
    "CampaignUpload",
    "CsvValidationError",
    "Eligibility",
    "EmptyTreeError",
    "IPFSClient",
    "InvalidInputError",
    "MerkleLeaf",
    "MerkleProof",
    "MerkleTree",
    "NotEligibleError",
    "PublicationError",
    "Recipient",
    "UploadResult",
    "ValidationError",
    "build_campaign",
    "check_eligibility",
    "commit",
    "create_campaign",
    "fetch_eligibility",
    "parse_campaign_csv",
    "verify_claim",
    "verify_proof",
]
