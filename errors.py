"""
Exception types raised by the decoder and the transform pipeline.

The HTTP layer maps DecodeError / ConfigError to 400 and ProcessingError
to 500. MetadataError and StageError never reach the caller: the pipeline
either recovers from them or wraps them in a ProcessingError.
"""


class DecodeError(ValueError):
    """Base64 payload is missing, empty or decodes to nothing."""


class ConfigError(ValueError):
    """A caller-supplied option has the wrong type."""


class MetadataError(Exception):
    """Image dimensions or format cannot be read."""


class StageError(Exception):
    """A single pipeline stage failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class ProcessingError(Exception):
    """Unrecovered pipeline failure; carries the upstream message."""
