"""Error taxonomy for presale operations.

Every error carries a stable ``code`` string so callers (CLI, API layers) can
branch on it without parsing messages. All errors are terminal for the
attempted operation: the enclosing database session rolls back and nothing
the operation did is observable afterwards.
"""

from typing import Optional


class PresaleError(Exception):
    """Base class for all presale errors."""

    code = "PresaleError"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(PresaleError):
    """Invalid campaign parameters at deployment time."""

    code = "InvalidConfiguration"


class AuthorizationError(PresaleError):
    """Caller lacks the required capability."""

    code = "NotAdministrator"


class StageError(PresaleError):
    """Operation invoked outside the stage that permits it."""

    code = "WrongStage"

    def __init__(self, code: str, current, permitted, action: str = "operation"):
        self.current = current
        self.permitted = permitted
        message = f"{action} requires stage {_stage_name(permitted)} (current: {_stage_name(current)})"
        super().__init__(message, code)


class LedgerError(PresaleError):
    """Amount outside per-tx, per-contributor or aggregate bounds."""

    code = "InvalidAmount"


class ClaimError(PresaleError):
    """Nothing to claim, refund or withdraw for this caller right now."""

    code = "NothingToClaim"


class TransferError(PresaleError):
    """An outbound fund or asset movement failed."""

    code = "TransferFailed"


class LiquidityError(TransferError):
    """The liquidity venue rejected or short-filled a deposit."""

    code = "LiquidityProvisionFailed"


def _stage_name(stage) -> str:
    return getattr(stage, "value", str(stage))
