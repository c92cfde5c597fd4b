"""Proof rewards error hierarchy."""

from typing import Any


class RewardsError(Exception):
    """Base exception for proof rewards errors."""

    code = "REWARDS_INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details
        super().__init__(message)


class DecodeError(RewardsError):
    """Submitted body is not a URL-escaped JSON proof envelope."""

    code = "REWARDS_DECODE_ERROR"
    status_code = 400


class MalformedProofError(DecodeError):
    """Envelope decoded but its claim parameters/context are absent or unparseable."""

    code = "REWARDS_MALFORMED_PROOF"
    status_code = 400


class UnsupportedPlatformError(RewardsError):
    code = "REWARDS_UNSUPPORTED_PLATFORM"
    status_code = 400


class MissingFieldError(RewardsError):
    code = "REWARDS_MISSING_FIELD"
    status_code = 400


class InvalidAmountError(RewardsError):
    code = "REWARDS_INVALID_AMOUNT"
    status_code = 400


class VerificationFailedError(RewardsError):
    """Proof failed its authenticity check or the verifier raised."""

    code = "REWARDS_VERIFICATION_FAILED"
    status_code = 500


class VerificationTimeoutError(VerificationFailedError):
    code = "REWARDS_VERIFICATION_TIMEOUT"
    status_code = 500


class TransferError(RewardsError):
    """Base for every failure raised by the transfer engine."""

    code = "REWARDS_TRANSFER_FAILED"
    status_code = 500


class InvalidAddressError(TransferError):
    code = "REWARDS_INVALID_ADDRESS"


class AccountCreationError(TransferError):
    """Recipient token account was missing and could not be created."""

    code = "REWARDS_ACCOUNT_CREATION_FAILED"


class TransferExecutionError(TransferError):
    """The ledger rejected or failed the transfer transaction."""

    code = "REWARDS_TRANSFER_EXECUTION_FAILED"


class TransferOutcomeUnknownError(TransferError):
    """Transaction was submitted but its outcome could not be confirmed.

    The transfer may still land; the signature is carried in ``details``.
    """

    code = "REWARDS_TRANSFER_OUTCOME_UNKNOWN"


class ConfirmationTimeoutError(TransferOutcomeUnknownError):
    code = "REWARDS_CONFIRMATION_TIMEOUT"


class DuplicateProofError(RewardsError):
    code = "REWARDS_DUPLICATE_PROOF"
    status_code = 409


class ProofRequestError(RewardsError):
    """Proof-issuance collaborator could not mint a request."""

    code = "REWARDS_PROOF_REQUEST_FAILED"
    status_code = 500


class UnauthorizedError(RewardsError):
    code = "REWARDS_UNAUTHORIZED"
    status_code = 401


class ForbiddenError(RewardsError):
    code = "REWARDS_FORBIDDEN"
    status_code = 403


def get_status_code(error: RewardsError) -> int:
    """Get HTTP status code for error."""
    return getattr(error, "status_code", 500)
