"""Reward transfer engine: one SPL token transfer per call.

Each call resolves the sender and recipient associated token accounts,
creates the recipient account when it is missing (paid by the sender), and
submits exactly one transfer signed by the sender against a freshly fetched
blockhash. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import Any

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from proof_rewards.core.config import SolanaConfig
from proof_rewards.core.errors import (
    AccountCreationError,
    ConfirmationTimeoutError,
    InvalidAddressError,
    TransferError,
    TransferExecutionError,
    TransferOutcomeUnknownError,
)
from proof_rewards.core.metrics import (
    rewards_dependency_failures_total,
    rewards_token_accounts_created_total,
)
from proof_rewards.schemas.v1.proofs import TransferResult
from proof_rewards.utils.amounts import check_base_units, to_base_units

logger = structlog.get_logger(__name__)

DEFAULT_EXPLORER_TX_URL = "https://explorer.solana.com/tx/{signature}?cluster=devnet"


def load_keypair(secret: str) -> Keypair:
    """Load the sender keypair from a base64-encoded 64-byte secret key."""
    try:
        raw = base64.b64decode(secret.strip(), validate=True)
        return Keypair.from_bytes(raw)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ValueError("WALLET_PRIVATE_KEY is not a base64-encoded 64-byte secret key") from e


def parse_address(address: str) -> Pubkey:
    """Parse a base58 wallet address."""
    text = (address or "").strip()
    try:
        return Pubkey.from_string(text)
    except (ValueError, TypeError) as e:
        raise InvalidAddressError(
            f"Invalid recipient address: {text!r}", details={"address": text}
        ) from e


class RewardTransferEngine:
    def __init__(
        self,
        client: AsyncClient,
        payer: Keypair,
        mint: Pubkey,
        *,
        decimals: int | None = 9,
        explorer_tx_url_template: str = DEFAULT_EXPLORER_TX_URL,
        confirm_timeout_s: float = 60.0,
    ):
        self.client = client
        self.payer = payer
        self.mint = mint
        self.explorer_tx_url_template = explorer_tx_url_template
        self.confirm_timeout_s = confirm_timeout_s
        self._decimals = decimals
        self._decimals_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: SolanaConfig, client: AsyncClient | None = None):
        client = client or AsyncClient(
            config.rpc_url, commitment=Confirmed, timeout=config.rpc_timeout_s
        )
        return cls(
            client,
            load_keypair(config.wallet_private_key.get_secret_value()),
            Pubkey.from_string(config.reward_token_mint.strip()),
            decimals=config.token_decimals,
            explorer_tx_url_template=config.explorer_tx_url_template,
            confirm_timeout_s=config.confirm_timeout_s,
        )

    @property
    def sender(self) -> Pubkey:
        return self.payer.pubkey()

    @property
    def source_token_account(self) -> Pubkey:
        # Derived offline from sender + mint.
        return get_associated_token_address(self.sender, self.mint)

    async def close(self) -> None:
        await self.client.close()

    async def is_healthy(self) -> bool:
        try:
            return bool(await self.client.is_connected())
        except Exception:
            logger.warning("Solana RPC health check failed", exc_info=True)
            return False

    async def token_decimals(self) -> int:
        """Return the mint's decimal count, reading the mint when not configured."""
        if self._decimals is not None:
            return self._decimals
        async with self._decimals_lock:
            if self._decimals is None:
                try:
                    resp = await self.client.get_token_supply(self.mint)
                except Exception as e:
                    rewards_dependency_failures_total.labels(dependency="solana_rpc").inc()
                    raise TransferExecutionError(
                        f"Could not read decimals of mint {self.mint}: {e}"
                    ) from e
                self._decimals = int(resp.value.decimals)
                logger.info(
                    "Resolved reward token decimals", mint=str(self.mint), decimals=self._decimals
                )
        return self._decimals

    def explorer_url(self, signature: str) -> str:
        return self.explorer_tx_url_template.format(signature=signature)

    async def _account_exists(self, account: Pubkey) -> bool:
        resp = await self.client.get_account_info(account)
        return resp.value is not None

    async def _submit(self, instructions: list[Any]) -> tuple[Signature, int]:
        """Sign and send ``instructions`` with a fresh blockhash; no confirmation."""
        latest = (await self.client.get_latest_blockhash()).value
        message = Message.new_with_blockhash(instructions, self.sender, latest.blockhash)
        transaction = Transaction([self.payer], message, latest.blockhash)
        resp = await self.client.send_transaction(
            transaction,
            opts=TxOpts(skip_confirmation=True, preflight_commitment=Confirmed),
        )
        return resp.value, latest.last_valid_block_height

    async def _confirm(self, signature: Signature, last_valid_block_height: int) -> None:
        try:
            resp = await asyncio.wait_for(
                self.client.confirm_transaction(
                    signature,
                    commitment=Confirmed,
                    last_valid_block_height=last_valid_block_height,
                ),
                timeout=self.confirm_timeout_s,
            )
        except TimeoutError as e:
            raise ConfirmationTimeoutError(
                f"Transaction {signature} not confirmed within {self.confirm_timeout_s:g}s",
                details={"signature": str(signature)},
            ) from e

        statuses = getattr(resp, "value", None) or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise TransferExecutionError(
                f"Transaction {signature} failed: {status.err}",
                details={"signature": str(signature)},
            )

    async def ensure_token_account(self, owner: Pubkey) -> Pubkey:
        """Return ``owner``'s associated token account, creating it if absent.

        Raises:
            AccountCreationError: the account is missing and creating it failed.
        """
        account = get_associated_token_address(owner, self.mint)
        try:
            if await self._account_exists(account):
                return account
        except Exception as e:
            rewards_dependency_failures_total.labels(dependency="solana_rpc").inc()
            raise AccountCreationError(f"Could not look up token account {account}: {e}") from e

        logger.info("Creating recipient token account", owner=str(owner), account=str(account))
        try:
            signature, last_valid = await self._submit(
                [create_associated_token_account(self.sender, owner, self.mint)]
            )
            await self._confirm(signature, last_valid)
        except Exception as e:
            # A concurrent payout to the same owner may have created it first.
            try:
                if await self._account_exists(account):
                    return account
            except Exception:
                logger.warning("Token account re-check failed", account=str(account), exc_info=True)
            raise AccountCreationError(
                f"Failed to create token account for {owner}: {getattr(e, 'message', None) or e}",
                details={"owner": str(owner), "account": str(account)},
            ) from e

        rewards_token_accounts_created_total.inc()
        return account

    async def transfer(self, amount: str, recipient_address: str) -> TransferResult:
        """Transfer ``amount`` reward tokens to ``recipient_address``.

        Raises:
            InvalidAddressError: recipient address does not parse.
            InvalidAmountError: amount is not a decimal that fits a token transfer.
            AccountCreationError: recipient token account could not be created.
            TransferExecutionError: the ledger rejected the transfer.
            TransferOutcomeUnknownError: the transaction was sent but not confirmed,
                including ``ConfirmationTimeoutError``.
        """
        recipient = parse_address(recipient_address)
        decimals = await self.token_decimals()
        base_units = check_base_units(to_base_units(amount, decimals), amount)

        source = self.source_token_account
        destination = await self.ensure_token_account(recipient)

        logger.info(
            "Transferring reward tokens",
            amount=amount,
            base_units=base_units,
            recipient=str(recipient),
            destination=str(destination),
        )

        instruction = transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                mint=self.mint,
                dest=destination,
                owner=self.sender,
                amount=base_units,
                decimals=decimals,
            )
        )
        try:
            signature, last_valid = await self._submit([instruction])
        except Exception as e:
            rewards_dependency_failures_total.labels(dependency="solana_rpc").inc()
            raise TransferExecutionError(f"Transfer submission failed: {e}") from e

        try:
            await self._confirm(signature, last_valid)
        except TransferError:
            raise
        except Exception as e:
            rewards_dependency_failures_total.labels(dependency="solana_rpc").inc()
            raise TransferOutcomeUnknownError(
                f"Transfer confirmation failed: {e}", details={"signature": str(signature)}
            ) from e

        signature_text = str(signature)
        logger.info("Transaction successful", signature=signature_text)
        return TransferResult(
            success=True,
            signature=signature_text,
            transaction_url=self.explorer_url(signature_text),
            amount=amount,
        )
