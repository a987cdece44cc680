"""Error taxonomy shared by the billing endpoints and the webhook flow."""


class BillingError(Exception):
    status_code = 500

    def __init__(self, message='', **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        return {'error': self.message}


class AuthenticationFailure(BillingError):
    """Missing or invalid webhook signature. Nothing has been written."""

    status_code = 400


class ValidationFailure(BillingError):
    status_code = 400


class LookupFailure(BillingError):
    """No user record matches the event or request."""

    status_code = 404


class ProcessingFailure(BillingError):
    status_code = 500
