"""Exceptions raised by the backup module"""
# Standard
from typing import Any, Optional


class BackupConfigurationError(ValueError):
    """
    Invalid module parameters, with structured context.

    Attributes
    ----------
    message : str
        A human-readable error message describing the failure.
    field : str
        Dotted path of the offending parameter, e.g. `plans.daily.rules[0].lifecycle`.
    value : Any
        The offending value, if any.
    original_error : Exception
        The original exception that caused this failure, if any.
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value
        self.original_error = original_error

    def __str__(self):
        parts = [f"Message: {self.message}"]
        if self.field:
            parts.append(f"Field: {self.field}")
        if self.value is not None:
            parts.append(f"Value: {self.value!r}")
        if self.original_error:
            parts.append(f"Original Error: {repr(self.original_error)}")
        return " | ".join(parts)


class DriftDetectionError(Exception):
    """
    Failure while reading the deployed AWS Backup state.

    Attributes
    ----------
    message : str
        A human-readable error message describing the failure.
    resource : str
        Name of the vault, plan or selection being read.
    original_error : Exception
        The botocore error that caused this failure, if any.
    """

    def __init__(self, message: str, resource: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.resource = resource
        self.original_error = original_error

    def __str__(self):
        parts = [f"Message: {self.message}"]
        if self.resource:
            parts.append(f"Resource: {self.resource}")
        if self.original_error:
            parts.append(f"Original Error: {repr(self.original_error)}")
        return " | ".join(parts)
