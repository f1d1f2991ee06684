"""Error kinds raised by classification and config validation.

Decoder anomalies (out-of-range indices, foreign report ids, unknown codes)
are not errors and never raise; see ``tablet_mapper.decoder``.
"""

from __future__ import annotations


class TabletMapperError(Exception):
    """Base class for all tablet mapper errors."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class ClassificationError(TabletMapperError):
    """A gesture step could not be turned into a mapping for ``channel``."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class CaptureEmptyError(ClassificationError):
    def __init__(self, channel: str) -> None:
        super().__init__(channel, "no packets were captured for this step")


class ClassificationAmbiguousError(ClassificationError):
    def __init__(self, channel: str, reason: str = "no discriminating byte") -> None:
        super().__init__(channel, reason)


class MappingConflictError(ClassificationError):
    """A mapping would claim a byte that another channel already owns."""

    def __init__(
        self,
        channel: str,
        message: str,
        *,
        byte_index: int | None = None,
        owner: str | None = None,
    ) -> None:
        super().__init__(channel, message)
        self.byte_index = byte_index
        self.owner = owner


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class ConfigError(TabletMapperError, ValueError):
    """A serialized config could not be turned into a ``TabletConfig``."""


class ConfigFieldMissingError(ConfigError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Invalid config: missing required field '{field}'")
        self.field = field


class ConfigParseError(ConfigError):
    pass


class ConfigTypeError(ConfigError):
    pass
