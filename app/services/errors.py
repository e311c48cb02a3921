"""
Service-level exceptions translated to HTTP errors by the routes
"""


class WaitlistError(Exception):
    """Base class for waitlist errors"""
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(WaitlistError):
    """Input failed validation; nothing was written"""
    status_code = 400


class PartyNotFound(WaitlistError):
    status_code = 404

    def __init__(self, party_id: str):
        super().__init__(f"Party {party_id} not found")
        self.party_id = party_id


class InvalidTransition(WaitlistError):
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move a party from '{current}' to '{target}'")
        self.current = current
        self.target = target


class StoreError(WaitlistError):
    """The queue store rejected or failed a read/write"""
    status_code = 500


class PaymentError(WaitlistError):
    """The payments provider failed a request"""
    status_code = 500


class WebhookVerificationError(WaitlistError):
    status_code = 400


class PartyClosed(WaitlistError):
    """The party is seated or a no-show; only removal is left"""
    status_code = 409

    def __init__(self, party_id: str, status: str):
        super().__init__(f"Party {party_id} is {status} and can no longer be edited")
        self.party_id = party_id
        self.status = status
