"""
DocScrub Errors Module

Exception taxonomy shared by the optimizer stages.

Failures local to one part or one image are caught by the stage that hit them;
failures that make a whole file unprocessable are caught per file by the
orchestrator. Nothing here is fatal for a batch.
"""


class DocScrubError(Exception):
    """Base class for all optimizer errors."""


class CorruptArchive(DocScrubError):
    """The input is not a readable zip archive."""


class MalformedXml(DocScrubError):
    """A named part could not be parsed as XML."""

    def __init__(self, part: str, detail: str = ""):
        self.part = part
        self.detail = detail
        message = f"Malformed XML in {part}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CodecFailure(DocScrubError):
    """A single image could not be decoded or re-encoded."""

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"Could not process image {path}: {detail}" if detail
                         else f"Could not process image {path}")


class IoFailure(DocScrubError):
    """Reading the source file or writing the output failed."""

    def __init__(self, path, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"I/O error on {path}: {detail}" if detail else f"I/O error on {path}")
