"""Dependency injection accessors for collaborators held on ``app.state``."""

from typing import Annotated

from fastapi import Depends, Request
from starlette.requests import HTTPConnection

from proof_rewards.clients.reclaim_client import ProofRequestClient
from proof_rewards.core.auth import RequireTransferToken
from proof_rewards.notifications.registry import ConnectionRegistry
from proof_rewards.services.reward_service import RewardService


def get_reward_service(request: Request) -> RewardService:
    return request.app.state.reward_service


def get_proof_request_client(request: Request) -> ProofRequestClient:
    return request.app.state.proof_request_client


def get_connection_registry(connection: HTTPConnection) -> ConnectionRegistry:
    """Shared by HTTP routes and the /ws socket."""
    return connection.app.state.connection_registry


RewardServiceDep = Annotated[RewardService, Depends(get_reward_service)]
ProofRequestClientDep = Annotated[ProofRequestClient, Depends(get_proof_request_client)]
ConnectionRegistryDep = Annotated[ConnectionRegistry, Depends(get_connection_registry)]

__all__ = [
    "ConnectionRegistryDep",
    "ProofRequestClientDep",
    "RequireTransferToken",
    "RewardServiceDep",
    "get_connection_registry",
    "get_proof_request_client",
    "get_reward_service",
]
