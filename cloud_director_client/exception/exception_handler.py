# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import functools
import json

import requests
from requests.exceptions import HTTPError
from requests.exceptions import RequestException

from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.exception.exceptions import OpenApiConnectionError  # noqa: E501
from cloud_director_client.exception.exceptions import OpenApiRequestError
from cloud_director_client.lib.cloudapi.constants import OpenApiErrorKey
from cloud_director_client.logging.logger import CLIENT_LOGGER as LOGGER


def openapi_error_from_response(response):
    """Build an OpenApiRequestError out of a failed OpenAPI response.

    VCD answers failed OpenAPI calls with a body of the form
    {"minorErrorCode": ..., "message": ..., "stackTrace": ...}. Bodies that
    are not JSON are kept as the error message.

    :param requests.Response response: response with a non 2xx status

    :rtype: OpenApiRequestError
    """
    status_code = response.status_code
    minor_error_code = ''
    message = response.text or response.reason or ''
    stack_trace = None
    if response.text:
        try:
            response_dict = json.loads(response.text)
        except ValueError:
            response_dict = None
        if isinstance(response_dict, dict):
            minor_error_code = response_dict.get(
                OpenApiErrorKey.MINOR_ERROR_CODE.value, '')
            message = response_dict.get(OpenApiErrorKey.MESSAGE.value, message)  # noqa: E501
            stack_trace = response_dict.get(OpenApiErrorKey.STACK_TRACE.value)

    if status_code == requests.codes.not_found:
        return EntityNotFoundError(message=message,
                                   minor_error_code=minor_error_code or 'NOT_FOUND',  # noqa: E501
                                   stack_trace=stack_trace)
    return OpenApiRequestError(status_code=status_code,
                               message=message,
                               minor_error_code=minor_error_code,
                               stack_trace=stack_trace)


def handle_openapi_exception(func):
    """Decorate to trap HTTP errors of OpenAPI calls and process them.

    Raise errors of type HTTPError as OpenApiRequestError, and any other
    requests error (connection refused, timeout, ...) as
    OpenApiConnectionError, with the original error chained. Any other
    exception is re-raised as it is.

    :param method func: decorated function

    :return: reference to the function that executes the decorated function
        and traps exceptions raised by it.
    """
    @functools.wraps(func)
    def exception_handler_wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except HTTPError as error:
            openapi_error = openapi_error_from_response(error.response)
            LOGGER.error(str(openapi_error))
            raise openapi_error from error
        except RequestException as error:
            LOGGER.error(f"OpenAPI request failed: {error}")
            raise OpenApiConnectionError(
                f"OpenAPI request failed: {error}") from error
        return result
    return exception_handler_wrapper
