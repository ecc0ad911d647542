# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import requests


class CloudDirectorClientError(Exception):
    """Base class for all errors raised by this library."""


class ConfigValidationError(CloudDirectorClientError):
    """Raised when the client configuration file is not valid."""


class OpenApiRequestError(CloudDirectorClientError):
    """Raised when VCD answers an OpenAPI request with a non 2xx status.

    The VCD OpenAPI error body has the form
    {"minorErrorCode": ..., "message": ..., "stackTrace": ...}.
    """

    def __init__(self, status_code, message=None, minor_error_code=None,
                 stack_trace=None):
        self.status_code = status_code
        self.message = message or ''
        self.minor_error_code = minor_error_code or ''
        self.stack_trace = stack_trace
        super().__init__(str(self))

    def __str__(self):
        return f"{self.minor_error_code} - {self.message}"


class EntityNotFoundError(OpenApiRequestError):
    """Raised when a requested entity does not exist, or is not visible."""

    def __init__(self, message=None, minor_error_code='NOT_FOUND',
                 stack_trace=None, status_code=requests.codes.not_found):
        super().__init__(status_code, message, minor_error_code, stack_trace)


class OpenApiConnectionError(CloudDirectorClientError):
    """Raised when an OpenAPI request fails before VCD answers it.

    Covers connection failures, timeouts and any other requests error that
    comes without an HTTP response. The requests error is kept as __cause__.
    """


class ApiVersionError(CloudDirectorClientError):
    """Raised when API versions of client, endpoint and VCD don't match."""


class CrudConfigError(CloudDirectorClientError):
    """Raised when a generic CRUD configuration is not valid."""


class EndpointBuildError(CloudDirectorClientError):
    """Raised when an endpoint template can't be populated with params."""


class GenericCrudError(CloudDirectorClientError):
    """Raised when a generic CRUD operation fails.

    The original error is kept as __cause__.
    """

    def __init__(self, entity_label, endpoint, error_message):
        self.entity_label = entity_label
        self.endpoint = endpoint
        self.error_message = error_message
        super().__init__(error_message)

    def is_not_found(self):
        return isinstance(self.__cause__, EntityNotFoundError)


class TaskError(CloudDirectorClientError):
    """Raised when a VCD task can't be tracked or fails."""


class EntityStateError(CloudDirectorClientError):
    """Raised when an entity reaches an error or an unexpected state."""

    def __init__(self, error_message, last_state=None):
        self.last_state = last_state
        super().__init__(error_message)


class EntityStateTimeoutError(EntityStateError):
    """Raised when an entity doesn't reach a target state in time."""


class CapiYamlError(CloudDirectorClientError):
    """Raised when a Cluster API YAML document can't be read or patched."""


class CseClusterError(CloudDirectorClientError):
    """Raised on invalid settings or failed Kubernetes cluster operations.

    `cluster_id` is set when the cluster was created but could not be
    provisioned, so callers can still inspect or delete it.
    """

    def __init__(self, error_message, cluster_id=None):
        self.cluster_id = cluster_id
        super().__init__(error_message)


class CseClusterTimeoutError(CseClusterError):
    """Raised when a Kubernetes cluster operation doesn't finish in time."""


class UnsupportedCseVersionError(CseClusterError):
    """Raised when a Container Service Extension version is not supported."""


def is_not_found_error(error: Exception) -> bool:
    """Check whether an error means that an entity does not exist.

    :param Exception error: error to check, possibly wrapping other errors

    :rtype: bool
    """
    while error is not None:
        if isinstance(error, EntityNotFoundError):
            return True
        if isinstance(error, OpenApiRequestError) and \
                error.status_code == requests.codes.not_found:
            return True
        error = error.__cause__
    return False


def is_etag_error(error: Exception) -> bool:
    """Check whether an error was caused by an ETag mismatch."""
    return 'etag' in str(error).lower()
