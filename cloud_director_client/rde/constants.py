# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from enum import Enum
from enum import unique

# Runtime Defined Entities are available from this API version on
RDE_MIN_API_VERSION = '35.0'

# Entities created asynchronously are searched by name this many times
PRE_CREATED_POLL_TRIES = 5
PRE_CREATED_POLL_SEC = 3


@unique
class RdeState(str, Enum):
    PRE_CREATED = 'PRE_CREATED'
    RESOLVED = 'RESOLVED'
    RESOLUTION_ERROR = 'RESOLUTION_ERROR'


@unique
class BehaviorInvocationKey(str, Enum):
    ARGUMENTS = 'arguments'
    METADATA = 'metadata'
