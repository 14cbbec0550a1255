from __future__ import annotations


class ChapterDetectionError(RuntimeError):
    """Base class for chapter detection failures."""


class FatalPreconditionError(ChapterDetectionError):
    """A required external tool is not available."""


class MediaProbeError(ChapterDetectionError):
    """The container duration could not be determined."""


class DetectorSoftFailure(ChapterDetectionError):
    """One detector pass failed; the run continues without its candidates."""


class DetectionCancelled(ChapterDetectionError):
    """The run was interrupted and its remaining ffmpeg passes were stopped."""
