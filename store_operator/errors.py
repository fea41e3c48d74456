"""Exception hierarchy for the Store operator."""


class StoreOperatorError(Exception):
    """Base class for operator errors."""


class ConfigurationError(StoreOperatorError):
    """Required process configuration is missing or invalid.

    Never retried around: the operator's configuration has to be fixed.
    """


class DeployError(StoreOperatorError):
    """The Helm install/upgrade/uninstall failed or timed out."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class CredentialError(StoreOperatorError):
    """A stored credentials secret is unreadable or incomplete."""
