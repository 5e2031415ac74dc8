"""Error taxonomy for the generation pipeline.

Every failure that ends a Submit/Poll/Import cycle is one of these. The
orchestrator stores the instance on the session as the typed reason of the
terminal transition; guard violations (``PipelineBusy``,
``NoPreviewToRefine``) are raised straight to the caller instead.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    kind = "pipeline_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(PipelineError):
    kind = "config_error"


class NetworkError(PipelineError):
    kind = "network_error"


class ProtocolError(PipelineError):
    kind = "protocol_error"

    def __init__(self, message: str, status_code: int, body: bytes = b""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MalformedResponse(PipelineError):
    kind = "malformed_response"


class RemoteTaskFailed(PipelineError):
    kind = "remote_task_failed"

    def __init__(self, message: str, code: Optional[str] = None, task_id: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.task_id = task_id


class UnexpectedStatus(PipelineError):
    kind = "unexpected_status"

    def __init__(self, message: str, status: str):
        super().__init__(message)
        self.status = status


class PollTimeout(PipelineError):
    kind = "timeout"

    def __init__(self, message: str, waited: float):
        super().__init__(message)
        self.waited = waited


class PollFailed(PipelineError):
    kind = "poll_failed"


class NoPreviewToRefine(PipelineError):
    kind = "no_preview_to_refine"


class MissingArtifact(PipelineError):
    kind = "missing_artifact"


class ImportFailed(PipelineError):
    kind = "import_failed"


class PipelineBusy(PipelineError):
    kind = "pipeline_busy"
