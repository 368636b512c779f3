"""Wire models for the signing request queue.

Pending requests arrive as a tagged union: a transaction to submit or a
message to sign. Parsing normalises the loosely typed wire payload once, so
the executor never probes raw dicts.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from walletbridge.chains import parse_chain_id, read_pending_chain_id
from walletbridge.errors import InvalidResponseError


def read_addr(obj: Mapping[str, Any], *keys: str) -> Optional[str]:
    """First address found under ``keys``.

    Accepts a 0x-prefixed 20 byte hex string, or ``{"Call": address}``.
    """
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.startswith("0x") and len(value) == 42:
            return value
        if isinstance(value, Mapping) and isinstance(value.get("Call"), str):
            return value["Call"]
    return None


def read_hex(obj: Mapping[str, Any], *keys: str) -> Optional[str]:
    """First quantity found under ``keys``, as a 0x hex string."""
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.startswith("0x"):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return hex(value)
    return None


class SignType(str, Enum):
    """Message signing methods."""

    PERSONAL_SIGN = "PersonalSign"
    SIGN_TYPED_DATA_V4 = "SignTypedDataV4"


class ConnectionStatus(BaseModel):
    """The queue's view of which account/chain is attached."""

    connected: bool = False
    account: Optional[str] = None
    chain_id: Optional[int] = None

    @classmethod
    def from_wire(cls, data: Any) -> "ConnectionStatus":
        """Parse ``null``, ``[account, chainId]`` or ``{connected, account, chainId}``."""
        if data is None:
            return cls()

        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise InvalidResponseError(f"Malformed connection state: {data!r}")
            account, chain_id = data
            return cls(connected=True, account=account, chain_id=parse_chain_id(chain_id))

        if isinstance(data, Mapping):
            account = data.get("account")
            chain_id = parse_chain_id(data.get("chainId", data.get("chain_id")))
            connected = data.get("connected")
            if connected is None:
                connected = bool(account)
            return cls(connected=bool(connected), account=account, chain_id=chain_id)

        raise InvalidResponseError(f"Malformed connection state: {data!r}")

    def matches(self, account: Optional[str], chain_id: Optional[int]) -> bool:
        """Whether the queue reports this account (case-insensitive) and chain."""
        if not self.connected or not self.account or not account:
            return False
        return self.account.lower() == account.lower() and self.chain_id == chain_id


class TransactionFields(BaseModel):
    """Normalised transaction request. Quantities are 0x hex strings."""

    model_config = ConfigDict(populate_by_name=True)

    sender: Optional[str] = Field(None, alias="from", description="Declared sender")
    to: Optional[str] = Field(None, description="Recipient or contract (None = create)")
    value: Optional[str] = None
    data: Optional[str] = None
    gas: Optional[str] = None
    gas_price: Optional[str] = None
    max_fee_per_gas: Optional[str] = None
    max_priority_fee_per_gas: Optional[str] = None
    nonce: Optional[str] = None
    chain_id: Optional[int] = None

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any]) -> "TransactionFields":
        return cls(
            sender=read_addr(raw, "from"),
            to=read_addr(raw, "to"),
            value=read_hex(raw, "value"),
            data=read_hex(raw, "data", "input"),
            gas=read_hex(raw, "gas", "gasLimit"),
            gas_price=read_hex(raw, "gasPrice"),
            max_fee_per_gas=read_hex(raw, "maxFeePerGas"),
            max_priority_fee_per_gas=read_hex(raw, "maxPriorityFeePerGas"),
            nonce=read_hex(raw, "nonce"),
            chain_id=parse_chain_id(raw.get("chainId")),
        )

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None or self.max_priority_fee_per_gas is not None

    def to_rpc_params(self, sender: Optional[str] = None, chain_id: Optional[int] = None) -> dict:
        """Build eth_sendTransaction parameters.

        EIP-1559 fees win over ``gasPrice``; the two fee styles are never
        mixed. Unspecified fields are omitted.
        """
        params: dict[str, Any] = {}
        if sender or self.sender:
            params["from"] = sender or self.sender
        if self.to:
            params["to"] = self.to

        optional = {
            "value": self.value,
            "data": self.data,
            "gas": self.gas,
            "nonce": self.nonce,
        }
        if self.is_eip1559:
            optional["maxFeePerGas"] = self.max_fee_per_gas
            optional["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        else:
            optional["gasPrice"] = self.gas_price

        params.update({key: value for key, value in optional.items() if value is not None})

        if chain_id is not None:
            params["chainId"] = hex(chain_id)
        return params


class PendingTransaction(BaseModel):
    """A transaction published by the queue, awaiting submission."""

    kind: Literal["transaction"] = "transaction"
    id: str
    request: TransactionFields
    chain_id: Optional[int] = None
    raw: dict = Field(default_factory=dict, description="Payload as received")

    @classmethod
    def from_wire(cls, data: Any) -> "PendingTransaction":
        if not isinstance(data, Mapping) or not isinstance(data.get("id"), str):
            raise InvalidResponseError(f"Malformed pending transaction: {data!r}")

        raw_request = data.get("request")
        if not isinstance(raw_request, Mapping):
            raw_request = {}

        fields = TransactionFields.from_wire(raw_request)
        chain_id = read_pending_chain_id(data)
        if chain_id is None:
            chain_id = fields.chain_id

        return cls(id=data["id"], request=fields, chain_id=chain_id, raw=dict(data))


class PendingSigning(BaseModel):
    """A message published by the queue, awaiting a signature."""

    kind: Literal["signing"] = "signing"
    id: str
    sign_type: SignType
    address: str
    message: str

    @classmethod
    def from_wire(cls, data: Any) -> "PendingSigning":
        if not isinstance(data, Mapping) or not isinstance(data.get("id"), str):
            raise InvalidResponseError(f"Malformed pending signing request: {data!r}")

        request = data.get("request")
        if not isinstance(request, Mapping):
            raise InvalidResponseError(f"Signing request {data['id']} has no payload")

        try:
            sign_type = SignType(data.get("signType"))
        except ValueError as e:
            raise InvalidResponseError(
                f"Unsupported sign type {data.get('signType')!r} for {data['id']}"
            ) from e

        message = request.get("message")
        address = request.get("address")
        if not isinstance(message, str) or not isinstance(address, str):
            raise InvalidResponseError(f"Signing request {data['id']} lacks message or address")

        return cls(id=data["id"], sign_type=sign_type, address=address, message=message)


PendingRequest = Annotated[
    Union[PendingTransaction, PendingSigning],
    Field(discriminator="kind"),
]


class OutcomeRecord(BaseModel):
    """Result of handling one pending request."""

    request_id: str
    kind: Literal["transaction", "signing"]
    hash: Optional[str] = None
    signature: Optional[str] = None
    error: Optional[str] = None
    pushed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_wire(self) -> dict:
        """Body for the queue's response endpoint."""
        if self.kind == "transaction":
            return {"id": self.request_id, "hash": self.hash, "error": self.error}
        return {"id": self.request_id, "signature": self.signature, "error": self.error}
