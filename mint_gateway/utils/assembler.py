"""
Record Assembler

Turns an allocation into an unsigned record that an external signer can
finalize without further calls to the gateway. Pure transformation: never
touches the store or the counter.
"""

import base64
import hashlib
import json

from mint_gateway.config import GatewayConfig
from mint_gateway.models.inventory import InventoryItem
from mint_gateway.models.responses import PaymentTerms, UnsignedRecord
from mint_gateway.utils.allocation import AllocationClaim


class RecordAssembler:
    def __init__(self, config: GatewayConfig):
        self.config = config

    def assemble(self, claim: AllocationClaim, item: InventoryItem, identity: str) -> UnsignedRecord:
        """
        Build the record for ``claim``.

        ``identity`` is both the owner and the party paying finalization
        costs, and the only required signer.

        Raises:
            ValueError: claim, item and identity do not refer to the same allocation
        """
        if claim.index != item.index:
            raise ValueError(f"Claim index {claim.index} does not match item {item.index}")
        if claim.identity != identity:
            raise ValueError("Claim belongs to a different identity")

        body = {
            "recordVersion": 1,
            "collection": self.config.COLLECTION_NAME,
            "symbol": self.config.COLLECTION_SYMBOL,
            "collectionAddress": self.config.COLLECTION_ADDRESS,
            "ledgerAddress": self.config.LEDGER_ADDRESS,
            "index": item.index,
            "name": item.name,
            "contentUri": item.content_uri,
            "owner": identity,
            "feePayer": identity,
            "requiredSigners": [identity],
            "payment": {
                "amount": self.config.MINT_PRICE,
                "destination": self.config.PAYMENT_DESTINATION,
            },
            "royaltyBasisPoints": self.config.ROYALTY_BASIS_POINTS,
            "claimedAt": claim.claimed_at.isoformat(),
        }
        canonical = json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

        return UnsignedRecord(
            record_version=body["recordVersion"],
            collection=body["collection"],
            symbol=body["symbol"],
            collection_address=body["collectionAddress"],
            ledger_address=body["ledgerAddress"],
            index=item.index,
            name=item.name,
            content_uri=item.content_uri,
            owner=identity,
            fee_payer=identity,
            required_signers=[identity],
            payment=PaymentTerms(**body["payment"]),
            royalty_basis_points=body["royaltyBasisPoints"],
            claimed_at=body["claimedAt"],
            message=base64.b64encode(canonical).decode("ascii"),
            message_digest=hashlib.sha256(canonical).hexdigest(),
        )
