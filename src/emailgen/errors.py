"""
Exception types used across emailgen.

Library code raises these; the HTTP layer and the CLI translate them into
status codes and exit codes.
"""


class EmailGenError(Exception):
    """Base class for all emailgen specific errors."""


class MissingParameterError(EmailGenError):
    """Raised when a required input value is absent."""


class InvalidSuggestionError(EmailGenError):
    """Raised when a model payload cannot be parsed into valid records."""


class ModificationStateError(EmailGenError):
    """Raised when a modification is moved through an illegal transition."""


class UnsupportedFileTypeError(EmailGenError):
    """Raised when a design upload is not a supported file type."""


class ConversionError(EmailGenError):
    """Raised when design-to-HTML conversion fails."""


class UnsupportedCommandError(EmailGenError):
    """Raised for code-assistant commands that are not recognised."""


class ModelProviderError(EmailGenError):
    """Raised when a generative model call fails or is misconfigured."""


class StoreError(EmailGenError):
    """Raised when the backing store rejects an operation."""


class NotFoundError(EmailGenError):
    """Raised when a requested record does not exist."""


class ConfigurationError(EmailGenError):
    """Raised when a required setting is missing."""
