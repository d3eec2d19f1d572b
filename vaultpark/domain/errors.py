"""Error taxonomy for the access-token and billing engine.

Every error carries a stable ``kind`` (used by the scan handler and the API to
pick a response) and a short ``user_message`` suitable for a gate display.
"""


class VaultParkError(Exception):
    kind = "error"
    user_message = "Something went wrong. Please try again"
    retryable = False

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


# Token layer

class TokenError(VaultParkError):
    kind = "token_error"
    user_message = "Invalid QR code"


class MalformedToken(TokenError):
    kind = "malformed_token"


class InvalidTimestamp(MalformedToken):
    kind = "invalid_timestamp"


class EmptySubject(MalformedToken):
    kind = "empty_subject"


class EmptyVehicle(MalformedToken):
    kind = "empty_vehicle"


class IntegrityMismatch(TokenError):
    kind = "integrity_mismatch"
    user_message = "Invalid QR code. Possible tampering detected"


class Expired(TokenError):
    kind = "expired"
    user_message = "QR code expired. Please request a new one"


# Session layer

class SessionError(VaultParkError):
    kind = "session_error"


class DuplicateActiveSession(SessionError):
    kind = "duplicate_active_session"
    user_message = "Driver already has an active parking session"


class SessionNotFound(SessionError):
    kind = "session_not_found"
    user_message = "Parking session not found"


class AlreadyCompleted(SessionError):
    kind = "already_completed"
    user_message = "Parking session is already completed"


class VehicleMismatch(SessionError):
    kind = "vehicle_mismatch"
    user_message = "Vehicle number does not match the active session"


# Ledger layer

class LotError(VaultParkError):
    kind = "lot_error"


class LotNotFound(LotError):
    kind = "lot_not_found"
    user_message = "Parking lot not found"


class LotInactive(LotError):
    kind = "lot_inactive"
    user_message = "Parking lot is not accepting vehicles"


class CapacityExceeded(LotError):
    kind = "capacity_exceeded"
    user_message = "Parking lot is full"


class LotAlreadyExists(LotError):
    kind = "lot_already_exists"
    user_message = "Owner already has a parking lot"


class LotHasActiveSessions(LotError):
    kind = "lot_has_active_sessions"
    user_message = "Cannot delete a parking lot with active sessions"


# Billing layer

class BillingError(VaultParkError):
    kind = "billing_error"


class InvoiceFoldConflict(BillingError):
    kind = "invoice_fold_conflict"
    user_message = "Invoice is busy. Please try again"


class InvoiceNotFound(BillingError):
    kind = "invoice_not_found"
    user_message = "Invoice not found"


# Store layer

class StoreError(VaultParkError):
    kind = "store_error"
    user_message = "Service temporarily unavailable. Please try again"


class StoreTimeout(StoreError):
    kind = "store_timeout"
    retryable = True


class StoreConflict(StoreError):
    kind = "store_conflict"
    retryable = True
