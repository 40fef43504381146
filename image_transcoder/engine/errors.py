"""Failure kinds raised inside the transcoding pipeline.

None of these ever leave ``process_image``: each is recovered at the stage
boundary where it is raised.
"""

from __future__ import annotations


class TranscodeError(Exception):
    """Base class for recoverable pipeline failures."""

    kind = "error"


class DecodeFailure(TranscodeError):
    """Source bytes could not be turned into a raster."""

    kind = "decode"


class EncodeFailure(TranscodeError):
    """Every candidate for the target format failed."""

    kind = "encode"


class MetadataFailure(TranscodeError):
    """EXIF extraction or injection failed."""

    kind = "metadata"


class ResizeError(TranscodeError):
    """Resize parameters cannot be applied to the source geometry."""

    kind = "resize"


class ExternalToolFailure(TranscodeError):
    """An external encoder was missing, crashed, timed out or exited non-zero."""

    kind = "external"

    def __init__(self, message: str, *, returncode: int | None = None, stderr: bytes = b"") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
