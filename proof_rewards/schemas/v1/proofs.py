"""Proof submission, transfer and notification schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from proof_rewards.schemas.v1.common import NotificationType, Platform


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractedReward(BaseModel):
    """Reward fields read out of a classified proof.

    ``amount`` is kept as the decimal string found in the proof; conversion to
    base units happens at transfer time.
    """

    amount: str = ""
    address: str = ""
    platform: Platform


class TransferResult(CamelModel):
    success: bool = True
    signature: str
    transaction_url: str
    amount: str


class ReceiveProofResponse(BaseModel):
    success: bool = True
    message: str = "Reward processed successfully"
    transaction: TransferResult


class TransferTokensRequest(BaseModel):
    """Pre-extracted payout request from a trusted caller."""

    amount: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    platform: Platform | None = None
    proof: dict[str, Any] | None = None


class GenerateConfigRequest(CamelModel):
    user_address: str | None = Field(default=None, max_length=128)


class GenerateConfigResponse(CamelModel):
    request_url: str
    status_url: str
    session_id: str | None = None


class NotificationMessage(BaseModel):
    type: NotificationType
    content: str
