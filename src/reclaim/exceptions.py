class RecaptureError(Exception):
    pass


class ConfigurationError(RecaptureError):
    """Required setting missing or unparsable. Raised before the pipeline starts."""


class PipelineBusyError(RecaptureError):
    """Another scan/reclaim run holds the pipeline."""


class PipelineError(RecaptureError):
    """Unexpected failure of a whole run (e.g. RPC unreachable during scan)."""
