"""
liveness.errors — typed failures for the liveness protocol.

Every failure aborts the enclosing call; the host reverts all writes staged
by that call before the exception reaches the caller. There are no retries
and no partial commits.

Hierarchy
---------
LivenessError (base)
 ├─ ConfigError                   : invalid configuration or address input
 ├─ WalletError                   : a Safe primitive rejected the request
 ├─ GuardError
 │   └─ UnauthorizedRecorder      : liveness write from anything but the Safe
 │       └─ SignerMismatch        : signer set differs from the Safe's own check
 └─ ModuleError
     ├─ ArityMismatch
     ├─ HookTampered
     ├─ ThresholdDrifted
     ├─ StillActive
     ├─ RemovalFailed
     ├─ FallbackSwapFailed
     ├─ FloorBreached
     ├─ MinOwnersExceedsMembership
     └─ OwnershipAlreadyTransferred

These classes import nothing from the rest of the package so they can be used
from the lowest layers (types, journal) without cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LivenessError(Exception):
    """
    Base error.

    Attributes:
        message: Human-readable explanation.
        code:    Stable machine code string (e.g., 'STILL_ACTIVE').
        data:    Optional structured details (kept JSON-serializable).
    """

    message: str = "liveness error"
    code: str = "LIVENESS_ERROR"
    data: Optional[Dict[str, Any]] = field(default=None)

    def __str__(self) -> str:
        if self.data:
            return f"{self.code}: {self.message} ({self.data})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for logs and CLI output."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


class ConfigError(LivenessError):
    def __init__(self, message: str = "invalid configuration", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONFIG", data=data)


class WalletError(LivenessError):
    """
    A Safe primitive refused the request.

    `reason` is a short stable tag (e.g. 'INVALID_PREV_OWNER') kept in `data`
    so callers can tell linkage errors from threshold errors.
    """

    def __init__(
        self,
        message: str = "wallet rejected call",
        *,
        reason: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        d: Dict[str, Any] = {}
        if data:
            d.update(data)
        if reason is not None:
            d.setdefault("reason", reason)
        super().__init__(message=message, code="WALLET", data=d or None)

    @property
    def reason(self) -> Optional[str]:
        return (self.data or {}).get("reason")


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class GuardError(LivenessError):
    pass


class UnauthorizedRecorder(GuardError):
    def __init__(self, message: str = "only the safe may record liveness", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="UNAUTHORIZED_RECORDER", data=data)


class SignerMismatch(UnauthorizedRecorder):
    def __init__(self, message: str = "signers do not match the safe's verification", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, data=data)
        self.code = "SIGNER_MISMATCH"


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


class ModuleError(LivenessError):
    pass


class ArityMismatch(ModuleError):
    def __init__(self, message: str = "previous owners and owners to remove differ in length", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="ARITY_MISMATCH", data=data)


class HookTampered(ModuleError):
    """The Safe's guard is no longer the liveness guard this module reads."""

    def __init__(self, message: str = "liveness guard is no longer installed on the safe", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="HOOK_TAMPERED", data=data)


class ThresholdDrifted(ModuleError):
    def __init__(self, message: str = "safe threshold does not match the required threshold", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="THRESHOLD_DRIFTED", data=data)


class StillActive(ModuleError):
    def __init__(self, message: str = "owner has shown liveness within the interval", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="STILL_ACTIVE", data=data)


class RemovalFailed(ModuleError):
    def __init__(self, message: str = "safe rejected owner removal", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="REMOVAL_FAILED", data=data)


class FallbackSwapFailed(ModuleError):
    def __init__(self, message: str = "safe rejected swap to the fallback owner", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="FALLBACK_SWAP_FAILED", data=data)


class FloorBreached(ModuleError):
    """
    The batch would leave fewer than `min_owners` owners without handing the
    Safe over to the fallback owner.
    """

    def __init__(self, message: str = "owner count below minimum without fallback collapse", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="FLOOR_BREACHED", data=data)


class MinOwnersExceedsMembership(ModuleError):
    def __init__(self, message: str = "min owners must be less than the safe's owner count", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="MIN_OWNERS_EXCEEDS_MEMBERSHIP", data=data)


class OwnershipAlreadyTransferred(ModuleError):
    def __init__(self, message: str = "ownership has already been transferred to the fallback owner", *, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="OWNERSHIP_TRANSFERRED", data=data)


def error_to_fields(err: LivenessError) -> Dict[str, Any]:
    """
    Map an error to the {"status", "error"} shape used by the CLI and logs.
    """
    if isinstance(err, ModuleError):
        status = "REJECTED"
    elif isinstance(err, GuardError):
        status = "UNAUTHORIZED"
    else:
        status = "ERROR"
    return {"status": status, "error": err.to_dict()}


__all__ = [
    "LivenessError",
    "ConfigError",
    "WalletError",
    "GuardError",
    "UnauthorizedRecorder",
    "SignerMismatch",
    "ModuleError",
    "ArityMismatch",
    "HookTampered",
    "ThresholdDrifted",
    "StillActive",
    "RemovalFailed",
    "FallbackSwapFailed",
    "FloorBreached",
    "MinOwnersExceedsMembership",
    "OwnershipAlreadyTransferred",
    "error_to_fields",
]
