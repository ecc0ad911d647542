# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from dataclasses import dataclass
from dataclasses import field
from typing import List, Optional

from dataclasses_json import config
from dataclasses_json import dataclass_json
from dataclasses_json import Undefined

from cloud_director_client.common.constants.shared_constants import HttpRequestHeader  # noqa: E501
from cloud_director_client.common.constants.shared_constants import SYSTEM_ORG_NAME  # noqa: E501
from cloud_director_client.common.constants.shared_constants import URN_PREFIX


def generate_entity_type_id(vendor, nss, version):
    """Generate the id of an entity type.

    Example: urn:vcloud:type:vmware:capvcdCluster:1.2.0
    """
    return f"{URN_PREFIX}:type:{vendor}:{nss}:{version}"


def generate_interface_id(vendor, nss, version):
    """Generate the id of an interface.

    Example: urn:vcloud:interface:vmware:k8s:1.0.0
    """
    return f"{URN_PREFIX}:interface:{vendor}:{nss}:{version}"


@dataclass_json
@dataclass
class OpenApiReference:
    name: Optional[str] = None
    id: Optional[str] = None


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class DefinedInterface:
    """Runtime Defined Entity interface."""

    name: str
    vendor: str
    nss: str
    version: str
    id: Optional[str] = None
    readonly: bool = False

    def get_id(self):
        if self.id is None:
            return generate_interface_id(self.vendor, self.nss, self.version)
        return self.id


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class DefinedEntityType:
    """Runtime Defined Entity type, the schema of a family of entities."""

    name: str
    vendor: str
    nss: str
    version: str
    id: Optional[str] = None
    description: Optional[str] = None
    schema: Optional[dict] = None
    interfaces: List[str] = field(default_factory=list)
    externalId: Optional[str] = None
    readonly: bool = False
    hooks: Optional[dict] = None
    inheritedVersion: Optional[str] = None
    maxImplicitRight: Optional[str] = None

    def get_id(self):
        """Get or generate the entity type id.

        By no means, id generation in this method guarantees the actual
        entity type registration with VCD.
        """
        if self.id is None:
            return generate_entity_type_id(self.vendor, self.nss,
                                           self.version)
        return self.id


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class DefinedEntity:
    """Runtime Defined Entity instance.

    `entity` holds the JSON contents as a dict. `etag` is not part of the
    payload, it is read from the response headers and sent back as
    If-Match on updates.
    """

    name: Optional[str] = None
    entity: dict = field(default_factory=dict)
    id: Optional[str] = None
    entityType: Optional[str] = None
    externalId: Optional[str] = None
    state: Optional[str] = None
    owner: Optional[OpenApiReference] = None
    org: Optional[OpenApiReference] = None
    etag: Optional[str] = field(default=None,
                                metadata=config(exclude=lambda _: True))


@dataclass
class TenantContext:
    """Organization that a request is run on behalf of.

    :param str org_id: bare id of the organization, without URN prefix
    :param str org_name: name of the organization
    """

    org_id: str
    org_name: str

    def to_headers(self):
        """Get the tenant context headers.

        Provider requests, made in the System organization, don't need
        them.

        :rtype: dict
        """
        if not self.org_name or self.org_name.lower() == SYSTEM_ORG_NAME.lower():  # noqa: E501
            return {}
        return {
            HttpRequestHeader.X_VMWARE_VCLOUD_TENANT_CONTEXT.value: self.org_id,  # noqa: E501
            HttpRequestHeader.X_VMWARE_VCLOUD_AUTH_CONTEXT.value: self.org_name  # noqa: E501
        }
