from __future__ import annotations


class AssetServiceError(Exception):
    """Base for request-scoped failures of the asset pipeline.

    Each subclass carries a stable ``error_code`` and the HTTP status it maps to;
    the message is human readable and returned to the caller as-is.
    """

    error_code = "asset_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = str(message)
        self.details = details or None


class Forbidden(AssetServiceError):
    error_code = "forbidden"
    status_code = 403


class ValidationFailed(AssetServiceError):
    error_code = "validation_failed"
    status_code = 422


class AssetMissing(AssetServiceError):
    error_code = "asset_missing"
    status_code = 404


class ExtractionFailed(AssetServiceError):
    error_code = "extraction_failed"
    status_code = 500


class StorageFailure(AssetServiceError):
    error_code = "storage_failure"
    status_code = 502


class NotFound(AssetServiceError):
    error_code = "not_found"
    status_code = 404
