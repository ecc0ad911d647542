# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from enum import Enum
from enum import unique


@unique
class CloudApiVersion(str, Enum):
    VERSION_1_0_0 = '1.0.0/'
    VERSION_2_0_0 = '2.0.0/'


class CloudApiResource(str, Enum):
    """Relative OpenAPI endpoints.

    Endpoints containing '%s' need to be populated with path parameters,
    see generic_crud.url_from_endpoint.
    """

    VDC_COMPUTE_POLICIES = 'vdcComputePolicies/'
    ORG_VDC_NETWORKS = 'orgVdcNetworks/'

    # Runtime Defined Entities
    RDE_ENTITY_TYPES = 'entityTypes/'
    RDE_ENTITIES = 'entities/'
    RDE_ENTITIES_TYPES = 'entities/types/'
    RDE_ENTITIES_RESOLVE = 'entities/%s/resolve'
    RDE_ENTITIES_BEHAVIORS_INVOCATIONS = 'entities/%s/behaviors/%s/invocations'  # noqa: E501


_V1 = CloudApiVersion.VERSION_1_0_0.value
_V2 = CloudApiVersion.VERSION_2_0_0.value

# Maps OpenAPI endpoints to the API version they were introduced in
ENDPOINT_MIN_API_VERSIONS = {
    _V1 + CloudApiResource.VDC_COMPUTE_POLICIES.value: '32.0',
    _V2 + CloudApiResource.VDC_COMPUTE_POLICIES.value: '35.0',
    _V1 + CloudApiResource.ORG_VDC_NETWORKS.value: '32.0',
    _V1 + CloudApiResource.RDE_ENTITY_TYPES.value: '35.0',
    _V1 + CloudApiResource.RDE_ENTITIES.value: '35.0',
    _V1 + CloudApiResource.RDE_ENTITIES_TYPES.value: '35.0',
    _V1 + CloudApiResource.RDE_ENTITIES_RESOLVE.value: '35.0',
    _V1 + CloudApiResource.RDE_ENTITIES_BEHAVIORS_INVOCATIONS.value: '35.0',
}

# Newer API versions that bring extra fields to an endpoint. The highest one
# supported by both VCD and the client is preferred over the minimum.
ENDPOINT_ELEVATED_API_VERSIONS = {
    _V1 + CloudApiResource.RDE_ENTITY_TYPES.value: [
        '37.1',  # MaxImplicitRight
    ],
    _V1 + CloudApiResource.RDE_ENTITIES.value: [
        '37.0',  # metadata
    ],
}


@unique
class ResponseKeys(str, Enum):
    LINK = 'link'
    REL = 'rel'
    URL = 'url'


@unique
class OpenApiErrorKey(str, Enum):
    MINOR_ERROR_CODE = 'minorErrorCode'
    MESSAGE = 'message'
    STACK_TRACE = 'stackTrace'
