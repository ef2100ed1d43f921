"""Closed set of failures the seal generator surfaces to its callers.

Every error here means "generation impossible" for the given inputs. The only
one a caller can act on is EncodingCapacityError: retry with a lower
error-correction percentage or a shorter payload.
"""


class SealError(Exception):
    """Base class for all seal generation failures."""


class ConfigurationIntegrityError(SealError):
    """The base template is missing, malformed, or fails its checksum.

    Every seal produced by this process is unreliable until an operator fixes
    the template or the expected checksum.
    """


class EncodingCapacityError(SealError):
    """The payload does not fit in a QR symbol at the selected level."""

    def __init__(self, payload_bytes: int, level: str):
        self.payload_bytes = payload_bytes
        self.level = level
        super().__init__(
            f"payload of {payload_bytes} bytes exceeds QR capacity at level {level}"
        )


class EmptyPatternError(SealError):
    """The pattern renderer produced no data shapes."""


class InvalidConfigError(SealError, ValueError):
    """A SporeFieldConfig failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("invalid seal config: " + "; ".join(self.errors))
