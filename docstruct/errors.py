"""Error taxonomy for the run-processing pipeline.

Only ``OcrFailure``, ``PersistenceFailure`` and ``UnexpectedFailure`` end a
run as FAILED. ``LlmUnavailable`` and ``MalformedModelOutput`` are carried
as values by the LLM adapter and the parser and route the run to the
fallback result instead.
"""


class DocstructError(Exception):
    """Base class for errors raised by the structuring service."""


class OcrFailure(DocstructError):
    """The OCR engine could not process the input file."""


class LlmUnavailable(DocstructError):
    """The LLM produced no usable output (transport, auth, quota, timeout, empty)."""


class MalformedModelOutput(DocstructError):
    """The model output could not be decoded into an extraction result."""


class PersistenceFailure(DocstructError):
    """A run, file, or extraction record could not be read or written."""


class UnexpectedFailure(DocstructError):
    """Any other error raised while a run was processing."""


class RunNotFound(DocstructError):
    """No run exists for the requested ID."""


class RunStateError(DocstructError):
    """The run is not in a state that allows the requested operation."""
