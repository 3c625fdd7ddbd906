"""
Pipeline error taxonomy.

``ServiceUnavailable`` and ``BadInput`` are the only errors an orchestrator
operation may raise; malformed provider output is always recovered locally.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base error carrying the HTTP status the transport layer should use."""

    status_code: int = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ServiceUnavailable(PipelineError):
    """AI/OCR unavailable and no deterministic substitute exists."""

    status_code = 503


class BadInput(PipelineError):
    """Required input missing or empty."""

    status_code = 400
