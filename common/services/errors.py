class OrderError(ValueError):
    """Base error for the order/payment services; carries an HTTP status."""

    status_code = 400


class ValidationError(OrderError):
    status_code = 400


class TransitionError(OrderError):
    status_code = 400


class AuthError(OrderError):
    status_code = 403


class NotFoundError(OrderError):
    status_code = 404


class GatewayError(OrderError):
    status_code = 502
