"""Proof request configuration routes (passthrough to the issuance SDK)."""

from fastapi import APIRouter, Body

from proof_rewards.core.dependencies import ProofRequestClientDep
from proof_rewards.schemas.v1.common import Platform
from proof_rewards.schemas.v1.proofs import GenerateConfigRequest, GenerateConfigResponse

router = APIRouter(prefix="/reclaim", tags=["reclaim"])


@router.post(
    "/generate-config-flipkart",
    response_model=GenerateConfigResponse,
    response_model_exclude_none=True,
)
async def generate_config_flipkart(
    client: ProofRequestClientDep,
    request: GenerateConfigRequest | None = Body(default=None),
):
    user_address = request.user_address if request else None
    return await client.generate_config(Platform.FLIPKART, user_address)


@router.post(
    "/generate-config-amazon",
    response_model=GenerateConfigResponse,
    response_model_exclude_none=True,
)
async def generate_config_amazon(
    client: ProofRequestClientDep,
    request: GenerateConfigRequest | None = Body(default=None),
):
    user_address = request.user_address if request else None
    return await client.generate_config(Platform.AMAZON, user_address)
