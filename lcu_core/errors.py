"""Error types raised and signalled by the connection layer."""


class LcuError(Exception):
    """Base class for local client API failures."""


class LcuNotConnectedError(LcuError):
    def __init__(self, message: str = "Not connected to the local client"):
        super().__init__(message)


class LcuTransportError(LcuError):
    """The request never got an HTTP response (refused, timed out, reset)."""


class LcuRequestError(LcuError):
    """Non-2xx response. ``status_code`` lets callers special-case 404."""

    def __init__(self, status_code: int, method: str, path: str, detail: str = ""):
        self.status_code = status_code
        self.method = method
        self.path = path
        self.detail = detail
        super().__init__(f"LCU request failed: {status_code} {method} {path}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class CredentialsNotFoundError(LcuError):
    def __init__(self, message: str = "League client not found"):
        super().__init__(message)


class HandshakeError(LcuError):
    def __init__(self, message: str = "Failed to connect to League client"):
        super().__init__(message)
