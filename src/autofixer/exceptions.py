"""Exception types raised by autofixer components."""


class AutofixerError(Exception):
    """Base class for all autofixer errors."""


class ConfigError(AutofixerError):
    """Raised when an environment setting cannot be interpreted."""


class EmbeddingServiceError(AutofixerError):
    """Raised when the embedding service fails or answers out of contract."""


class EmbeddingDimensionError(AutofixerError):
    """Raised when vectors of different dimensionality end up in one snapshot."""


class ProposalServiceError(AutofixerError):
    """Raised when the fix-proposal service cannot be reached or errors out."""
