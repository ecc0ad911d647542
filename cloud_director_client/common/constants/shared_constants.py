# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Constants shared between the OpenAPI, RDE and CSE layers."""

from enum import Enum
from enum import unique


# Lowest API version that exposes the /cloudapi/ surface
MINIMUM_OPENAPI_VERSION = '31.0'

# Default page size used when retrieving all items of an OpenAPI collection
DEFAULT_OPENAPI_PAGE_SIZE = 128

# Tokens longer than this are bearer tokens and not legacy session ids
MAX_LEGACY_TOKEN_LENGTH = 32

# Default poll interval, in seconds, when waiting for VCD tasks
DEFAULT_TASK_POLL_SEC = 3

# Entity state wait defaults, in seconds
DEFAULT_STATE_WAIT_TIMEOUT_SEC = 3600
DEFAULT_STATE_WAIT_DELAY_SEC = 5
DEFAULT_STATE_WAIT_MIN_TIMEOUT_SEC = 5

# Synthetic state reported for entities that no longer exist
DELETED_STATE = 'DELETED'
ERROR_STATE = 'ERROR'

SYSTEM_ORG_NAME = 'System'
URN_PREFIX = 'urn:vcloud'


@unique
class RequestMethod(str, Enum):
    GET = 'GET'
    POST = 'POST'
    PUT = 'PUT'
    DELETE = 'DELETE'


@unique
class HttpResponseHeader(str, Enum):
    LOCATION = 'Location'
    ETAG = 'Etag'
    LINK = 'Link'
    X_VMWARE_VCLOUD_TASK_LOCATION = 'X-VMWARE-VCLOUD-TASK-LOCATION'


@unique
class HttpRequestHeader(str, Enum):
    ACCEPT = 'Accept'
    CONTENT_TYPE = 'Content-Type'
    AUTHORIZATION = 'Authorization'
    X_VCLOUD_AUTHORIZATION = 'x-vcloud-authorization'
    X_VMWARE_VCLOUD_TOKEN_TYPE = 'X-Vmware-Vcloud-Token-Type'
    X_VMWARE_VCLOUD_TENANT_CONTEXT = 'X-Vmware-Vcloud-Tenant-Context'
    X_VMWARE_VCLOUD_AUTH_CONTEXT = 'X-Vmware-Vcloud-Auth-Context'
    IF_MATCH = 'If-Match'


@unique
class ContentType(str, Enum):
    JSON = 'application/json'
    URL_ENCODED = 'application/x-www-form-urlencoded'


@unique
class PaginationKey(str, Enum):
    PAGE_NUMBER = 'page'
    PAGE_SIZE = 'pageSize'
    PAGE_COUNT = 'pageCount'
    RESULT_TOTAL = 'resultTotal'
    VALUES = 'values'
    NEXT_PAGE = 'nextPage'


@unique
class QueryParameterKey(str, Enum):
    FILTER = 'filter'
    FILTER_ENCODED = 'filterEncoded'
    SORT_ASC = 'sortAsc'


@unique
class TaskStatus(str, Enum):
    """Status values of the VCD Task resource."""

    QUEUED = 'queued'
    PRE_RUNNING = 'preRunning'
    RUNNING = 'running'
    SUCCESS = 'success'
    ERROR = 'error'
    CANCELED = 'canceled'
    ABORTED = 'aborted'


TASK_IN_PROGRESS_STATUSES = [TaskStatus.QUEUED.value,
                             TaskStatus.PRE_RUNNING.value,
                             TaskStatus.RUNNING.value]
