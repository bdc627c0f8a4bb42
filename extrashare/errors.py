class ExtraShareError(Exception):
    """Base class for every error the core reports to the request gateway."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ExtraShareError):
    """Missing or malformed input. Nothing was mutated."""

    status_code = 400


class PreconditionFailed(ExtraShareError):
    """Business-rule rejection (already staked, paused, nothing to collect, ...)."""

    status_code = 400


class AuthorizationFailed(ExtraShareError):
    """Caller is not the configured admin wallet."""

    status_code = 403


class StoreUnavailable(ExtraShareError):
    """Persistence unreachable or inconsistent. Detail never leaks internals."""

    status_code = 503

    def __init__(self, detail: str = "Internal server error. Please retry."):
        super().__init__(detail)
