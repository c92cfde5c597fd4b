"""Proof submission route."""

from fastapi import APIRouter, Request

from proof_rewards.core.dependencies import RewardServiceDep
from proof_rewards.schemas.v1.common import ErrorResponse
from proof_rewards.schemas.v1.proofs import ReceiveProofResponse

router = APIRouter(tags=["proofs"])


@router.post(
    "/receive-proofs",
    response_model=ReceiveProofResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def receive_proofs(request: Request, service: RewardServiceDep):
    """Verify a URL-escaped proof envelope and pay out its reward.

    The body is read raw: providers post the envelope as escaped text with
    arbitrary content types.
    """
    body = await request.body()
    return await service.process_proof(body)
