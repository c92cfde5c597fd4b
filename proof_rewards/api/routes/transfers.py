"""Trusted direct transfer route.

Callers here have already extracted and checked the reward themselves; the
route only authenticates the caller, it never looks at the proof.
"""

from fastapi import APIRouter

from proof_rewards.core.dependencies import RequireTransferToken, RewardServiceDep
from proof_rewards.schemas.v1.common import ErrorResponse
from proof_rewards.schemas.v1.proofs import ReceiveProofResponse, TransferTokensRequest

router = APIRouter(tags=["transfers"])


@router.post(
    "/transfer-tokens",
    response_model=ReceiveProofResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def transfer_tokens(
    request: TransferTokensRequest,
    _auth: RequireTransferToken,
    service: RewardServiceDep,
):
    return await service.transfer_direct(request)
