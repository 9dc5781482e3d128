"""Unified error codes and custom exceptions.

Every failure aborts the whole engine call; nothing is retried internally.

Error code ranges:
  1xxx: Authorization
  2xxx: Funds / solvency
  3xxx: Market lifecycle
  4xxx: Input validation and trade guards
  5xxx: Position / claim
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Authorization ---

class InvalidSignatureError(AppError):
    def __init__(self, role: str) -> None:
        super().__init__(1001, f"Invalid {role} signature", 401)


class SignatureExpiredError(AppError):
    def __init__(self, deadline: int, now: int) -> None:
        super().__init__(1002, f"Signature deadline {deadline} passed (now={now})", 401)


class UnauthorizedCallerError(AppError):
    def __init__(self, caller: str) -> None:
        super().__init__(1003, f"Caller {caller} is not the market authority", 403)


# --- 2xxx: Funds / solvency ---

class InsufficientBalanceError(AppError):
    def __init__(self, holder: str, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance for {holder}: required {required}, available {available}",
            422,
        )


class InsuranceFundInsufficientError(AppError):
    def __init__(self, shortfall: int, available: int) -> None:
        super().__init__(
            2002,
            f"Insurance fund cannot cover shortfall {shortfall} (assets {available})",
            500,
        )


class LendingCapacityExceededError(AppError):
    def __init__(self, requested: int, detail: str) -> None:
        super().__init__(2003, f"Loan of {requested} rejected: {detail}", 422)


class MigrationTransferUsedError(AppError):
    def __init__(self, market: str) -> None:
        super().__init__(2004, f"Migration transfer already used for {market}", 409)


# --- 3xxx: Market lifecycle ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketAlreadyInitializedError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3002, f"Market already initialized: {market_id}", 409)


class MarketNotInitializedError(AppError):
    def __init__(self) -> None:
        super().__init__(3003, "Market is not initialized", 422)


class MarketAlreadyMigratedError(AppError):
    def __init__(self) -> None:
        super().__init__(3004, "Bonding curve closed: market already migrated", 422)


class Phase2NotActiveError(AppError):
    def __init__(self) -> None:
        super().__init__(3005, "Phase 2 trading is not active", 422)


class MarketAlreadyResolvedError(AppError):
    def __init__(self) -> None:
        super().__init__(3006, "Market already resolved", 422)


class MarketNotResolvedError(AppError):
    def __init__(self) -> None:
        super().__init__(3007, "Market is not resolved yet", 422)


class ClaimCooloffActiveError(AppError):
    def __init__(self, available_at: int) -> None:
        super().__init__(3008, f"Sweep not allowed before {available_at}", 422)


# --- 4xxx: Input validation and trade guards ---

class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid amount: {detail}", 422)


class CollateralTooLowError(AppError):
    def __init__(self, collateral: int, minimum: int) -> None:
        super().__init__(4002, f"Collateral {collateral} below minimum {minimum}", 422)


class LeverageOutOfRangeError(AppError):
    def __init__(self, leverage: int, maximum: int) -> None:
        super().__init__(4003, f"Leverage {leverage} must be in [1, {maximum}]", 422)


class SlippageExceededError(AppError):
    def __init__(self, realized: int, floor: int) -> None:
        super().__init__(4004, f"Slippage exceeded: realized {realized} < floor {floor}", 422)


class ZeroSharesOutError(AppError):
    def __init__(self) -> None:
        super().__init__(4005, "AMM buy would mint zero shares", 422)


class ZeroProceedsError(AppError):
    def __init__(self) -> None:
        super().__init__(4006, "AMM sell would return zero proceeds", 422)


class ArrayLengthMismatchError(AppError):
    def __init__(self, left: int, right: int) -> None:
        super().__init__(4007, f"Array length mismatch: {left} != {right}", 422)


class InvalidMarketConfigError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4008, f"Invalid market config: {detail}", 422)


# --- 5xxx: Position / claim ---

class PositionAlreadyActiveError(AppError):
    def __init__(self, trader: str, side: str) -> None:
        super().__init__(5001, f"Active {side} position already exists for {trader}", 409)


class NoActivePositionError(AppError):
    def __init__(self, trader: str, side: str) -> None:
        super().__init__(5002, f"No active {side} position for {trader}", 404)


class PositionHealthyError(AppError):
    def __init__(self, health_factor: int) -> None:
        super().__init__(5003, f"Position is healthy (health factor {health_factor})", 422)


class NoWinningPhase1BalanceError(AppError):
    def __init__(self, user: str) -> None:
        super().__init__(5004, f"No winning outcome tokens for {user}", 422)


class NoWinningPhase2PositionError(AppError):
    def __init__(self, user: str) -> None:
        super().__init__(5005, f"No active winning position for {user}", 422)


class TransferNotAllowedError(AppError):
    def __init__(self) -> None:
        super().__init__(5006, "Outcome tokens are non-transferable", 403)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class ReentrantCallError(AppError):
    def __init__(self) -> None:
        super().__init__(9003, "Re-entrant call into market engine rejected", 409)
