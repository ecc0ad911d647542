# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from enum import Enum
from enum import unique

# Kubernetes clusters are RDEs of type vmware:capvcdCluster
CSE_KUBERNETES_CLUSTER_VENDOR = 'vmware'
CSE_KUBERNETES_CLUSTER_NAMESPACE = 'capvcdCluster'

# CSE Server configuration is a single RDE of type vmware:VCDKEConfig
VCDKE_CONFIG_VENDOR = 'vmware'
VCDKE_CONFIG_NAMESPACE = 'VCDKEConfig'
VCDKE_CONFIG_NAME = 'vcdKeConfig'

CSE_GET_FULL_ENTITY_BEHAVIOR = 'urn:vcloud:behavior-interface:getFullEntity:cse:capvcd:{interface_version}'  # noqa: E501
CAPVCD_API_VERSION = 'capvcd.vmware.com/v1.1'
CAPVCD_KIND = 'CAPVCDCluster'

# Names of clusters, worker pools and storage classes
CSE_NAME_REGEX = r'^[a-z](?:[a-z0-9-]{0,29}[a-z0-9])?$'
CSE_NAME_RULES = "must contain only lowercase alphanumeric characters or " \
                 "'-', start with an alphabetic character, end with an " \
                 "alphanumeric, and contain at most 31 characters"

MINIMUM_CSE_VERSION = '4.1'
MINIMUM_DISK_SIZE_GI = 20
API_TOKEN_MASK = '******'
TARGET_NAMESPACE_SUFFIX = '-ns'
CONTROL_PLANE_NODE_POOL_SUFFIX = 'control-plane-node-pool'
TKG_VERSIONS_FILE = 'tkg_versions.json'
TEMPLATES_PACKAGE = 'cloud_director_client.cse.templates'
# Releases whose CAPI YAML is unchanged read the templates of an earlier one
SHARED_TEMPLATE_VERSIONS = {
    '4.2': '4.1',
}

CLUSTER_STATE_POLL_SEC = 10
CLUSTER_UPDATE_MAX_RETRIES = 5


@unique
class CseTemplateName(str, Enum):
    CLUSTER = 'capiyaml_cluster'
    WORKER_POOL = 'capiyaml_workerpool'
    MACHINE_HEALTH_CHECK = 'capiyaml_mhc'


@unique
class ClusterState(str, Enum):
    PROVISIONED = 'provisioned'
    ERROR = 'error'


@unique
class ReclaimPolicy(str, Enum):
    DELETE = 'delete'
    RETAIN = 'retain'


@unique
class Filesystem(str, Enum):
    EXT4 = 'ext4'
    XFS = 'xfs'


@unique
class CapiKind(str, Enum):
    CLUSTER = 'Cluster'
    VCD_CLUSTER = 'VCDCluster'
    VCD_MACHINE_TEMPLATE = 'VCDMachineTemplate'
    KUBEADM_CONTROL_PLANE = 'KubeadmControlPlane'
    KUBEADM_CONFIG_TEMPLATE = 'KubeadmConfigTemplate'
    MACHINE_DEPLOYMENT = 'MachineDeployment'
    MACHINE_HEALTH_CHECK = 'MachineHealthCheck'


@unique
class ClusterEventType(str, Enum):
    EVENT = 'event'
    ERROR = 'error'
