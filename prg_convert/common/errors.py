"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for conversion failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when strict output contracts are broken."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that should halt the run."""

    error_code = "STAGE_ERROR"


class MalformedDocumentError(PipelineError):
    """Raised when an input document is truncated or not well-formed."""

    error_code = "MALFORMED_DOCUMENT"


class UnsupportedValueError(PipelineError):
    """Raised for enumerated values outside the assumed dialect."""

    error_code = "UNSUPPORTED_VALUE"


class CoordinateParseError(MalformedDocumentError):
    """Raised when a position block does not hold exactly two tokens."""

    error_code = "COORDINATE_ERROR"


class UnresolvedReferenceError(PipelineError):
    """Raised in strict mode for references absent from the dictionary."""

    error_code = "UNRESOLVED_REFERENCE"
