# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
import ipaddress
import re
from typing import Dict, List, Optional

import semantic_version

from cloud_director_client.common.utils.core_utils import get_duplicate_items_in_list  # noqa: E501
from cloud_director_client.cse.constants import CSE_NAME_REGEX
from cloud_director_client.cse.constants import CSE_NAME_RULES
from cloud_director_client.cse.constants import Filesystem
from cloud_director_client.cse.constants import MINIMUM_DISK_SIZE_GI
from cloud_director_client.cse.constants import ReclaimPolicy
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.exception.exceptions import UnsupportedCseVersionError  # noqa: E501
from cloud_director_client.rde.models import DefinedEntityType

_CSE_NAME_PATTERN = re.compile(CSE_NAME_REGEX)


def parse_semantic_version(version) -> semantic_version.Version:
    """Read a version such as 'v1.25.7+vmware.2' or '4.2'.

    A leading 'v' is ignored and missing parts are filled with zeros.

    :raises ValueError: if the version is malformed
    """
    if isinstance(version, semantic_version.Version):
        return version
    text = str(version).strip()
    if text.startswith('v'):
        text = text[1:]
    return semantic_version.Version.coerce(text)


def _core_version(version) -> semantic_version.Version:
    """Version without build metadata, which takes no part in ordering."""
    return parse_semantic_version(version).truncate('prerelease')


@dataclass
class CseComponentsVersions:
    vcd_ke_config_rde_type_version: str
    capvcd_rde_type_version: str
    cse_interface_version: str


def get_cse_components_versions(cse_version) -> CseComponentsVersions:
    """Get the versions of the subcomponents of a CSE release.

    Needs an update on every CSE release.

    :param cse_version: semantic_version.Version or str

    :raises UnsupportedCseVersionError: for unknown CSE versions
    """
    error_message = f"the Container Service Extension version " \
                    f"'{cse_version if cse_version is not None else ''}' " \
                    f"is not supported"
    if cse_version is None:
        raise UnsupportedCseVersionError(error_message)
    try:
        version = _core_version(cse_version)
    except ValueError:
        raise UnsupportedCseVersionError(error_message)

    if version >= semantic_version.Version('4.3.0'):
        raise UnsupportedCseVersionError(error_message)
    if version >= semantic_version.Version('4.2.0'):
        return CseComponentsVersions(
            vcd_ke_config_rde_type_version='1.1.0',
            capvcd_rde_type_version='1.3.0',
            cse_interface_version='1.0.0')
    if version >= semantic_version.Version('4.1.0'):
        return CseComponentsVersions(
            vcd_ke_config_rde_type_version='1.1.0',
            capvcd_rde_type_version='1.2.0',
            cse_interface_version='1.0.0')
    raise UnsupportedCseVersionError(error_message)


@dataclass
class CseControlPlaneSettings:
    machine_count: int = 0
    disk_size_gi: int = 0
    sizing_policy_id: Optional[str] = None
    placement_policy_id: Optional[str] = None
    storage_profile_id: Optional[str] = None
    ip: Optional[str] = None


@dataclass
class CseWorkerPoolSettings:
    name: str = ''
    machine_count: int = 0
    disk_size_gi: int = 0
    sizing_policy_id: Optional[str] = None
    placement_policy_id: Optional[str] = None
    vgpu_policy_id: Optional[str] = None
    storage_profile_id: Optional[str] = None


@dataclass
class CseDefaultStorageClassSettings:
    storage_profile_id: str = ''
    name: str = ''
    # 'delete' or 'retain'
    reclaim_policy: str = ReclaimPolicy.RETAIN.value
    # 'ext4' or 'xfs'
    filesystem: str = Filesystem.EXT4.value


def _validate_cidr(value: str, label: str):
    if '/' not in value:
        raise CseClusterError(
            f"the {label} is malformed: invalid CIDR address: {value}")
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError as err:
        raise CseClusterError(f"the {label} is malformed: {err}")


@dataclass
class CseClusterSettings:
    """Configuration of a CSE Kubernetes cluster, as given by the user.

    Items such as the VDC, network, OVA, policies and storage profiles are
    referenced by ID. `owner` defaults to the user of the session.
    """

    cse_version: Optional[semantic_version.Version] = None
    name: str = ''
    organization_id: str = ''
    vdc_id: str = ''
    network_id: str = ''
    kubernetes_template_ova_id: str = ''
    control_plane: CseControlPlaneSettings = field(
        default_factory=CseControlPlaneSettings)
    worker_pools: List[CseWorkerPoolSettings] = field(default_factory=list)
    default_storage_class: Optional[CseDefaultStorageClassSettings] = None
    owner: Optional[str] = None
    api_token: str = ''
    node_health_check: bool = False
    pod_cidr: str = ''
    service_cidr: str = ''
    ssh_public_key: Optional[str] = None
    virtual_ip_subnet: Optional[str] = None
    auto_repair_on_errors: bool = False

    def validate(self):
        """Check that the settings are complete and well formed.

        :raises CseClusterError: on the first wrong or missing field
        """
        get_cse_components_versions(self.cse_version)
        if not _CSE_NAME_PATTERN.match(self.name or ''):
            raise CseClusterError(f"the name '{self.name}' {CSE_NAME_RULES}")
        if not self.organization_id:
            raise CseClusterError("the Organization ID is required")
        if not self.vdc_id:
            raise CseClusterError("the VDC ID is required")
        if not self.network_id:
            raise CseClusterError("the Network ID is required")
        if not self.kubernetes_template_ova_id:
            raise CseClusterError("the Kubernetes Template OVA ID is required")

        control_plane = self.control_plane
        if control_plane.machine_count < 1 or \
                control_plane.machine_count % 2 == 0:
            raise CseClusterError(
                f"number of Control Plane nodes must be odd and higher than "
                f"0, but it was '{control_plane.machine_count}'")
        if control_plane.disk_size_gi < MINIMUM_DISK_SIZE_GI:
            raise CseClusterError(
                f"disk size for the Control Plane in Gibibytes (Gi) must be "
                f"at least {MINIMUM_DISK_SIZE_GI}, but it was "
                f"'{control_plane.disk_size_gi}'")

        if not self.worker_pools:
            raise CseClusterError("there must be at least one Worker Pool")
        duplicates = get_duplicate_items_in_list(
            [worker_pool.name for worker_pool in self.worker_pools])
        if duplicates:
            raise CseClusterError(
                f"the names of the Worker Pools must be unique, but "
                f"'{duplicates[0]}' is repeated")
        for worker_pool in self.worker_pools:
            if worker_pool.machine_count < 1:
                raise CseClusterError(
                    f"number of Worker Pool '{worker_pool.name}' nodes must "
                    f"higher than 0, but it was "
                    f"'{worker_pool.machine_count}'")
            if worker_pool.disk_size_gi < MINIMUM_DISK_SIZE_GI:
                raise CseClusterError(
                    f"disk size for the Worker Pool '{worker_pool.name}' in "
                    f"Gibibytes (Gi) must be at least {MINIMUM_DISK_SIZE_GI}, "
                    f"but it was '{worker_pool.disk_size_gi}'")
            if not _CSE_NAME_PATTERN.match(worker_pool.name or ''):
                raise CseClusterError(
                    f"the Worker Pool name '{worker_pool.name}' "
                    f"{CSE_NAME_RULES}")

        storage_class = self.default_storage_class
        if storage_class is not None:
            if not _CSE_NAME_PATTERN.match(storage_class.name or ''):
                raise CseClusterError(
                    f"the Default Storage Class name '{storage_class.name}' "
                    f"{CSE_NAME_RULES}")
            if not storage_class.storage_profile_id:
                raise CseClusterError(
                    "the Storage Profile ID for the Default Storage Class is "
                    "required")
            if storage_class.reclaim_policy not in \
                    [policy.value for policy in ReclaimPolicy]:
                raise CseClusterError(
                    f"the Reclaim Policy for the Default Storage Class must "
                    f"be either 'delete' or 'retain', but it was "
                    f"'{storage_class.reclaim_policy}'")
            if storage_class.filesystem not in \
                    [filesystem.value for filesystem in Filesystem]:
                raise CseClusterError(
                    f"the filesystem for the Default Storage Class must be "
                    f"either 'ext4' or 'xfs', but it was "
                    f"'{storage_class.filesystem}'")

        if not self.api_token:
            raise CseClusterError("the API token is required")
        if not self.pod_cidr:
            raise CseClusterError("the Pod CIDR is required")
        _validate_cidr(self.pod_cidr, 'Pod CIDR')
        if not self.service_cidr:
            raise CseClusterError("the Service CIDR is required")
        _validate_cidr(self.service_cidr, 'Service CIDR')
        if self.virtual_ip_subnet:
            _validate_cidr(self.virtual_ip_subnet, 'Virtual IP Subnet')
        if control_plane.ip:
            try:
                ipaddress.ip_address(control_plane.ip)
            except ValueError:
                raise CseClusterError(
                    f"the Control Plane IP is malformed: {control_plane.ip}")


@dataclass
class CseControlPlaneUpdateInput:
    machine_count: int


@dataclass
class CseWorkerPoolUpdateInput:
    machine_count: int


@dataclass
class CseClusterUpdateInput:
    """Changes to apply to an existing cluster, None means untouched.

    `worker_pools` maps the name of an existing worker pool to its new
    settings.
    """

    kubernetes_template_ova_id: Optional[str] = None
    control_plane: Optional[CseControlPlaneUpdateInput] = None
    worker_pools: Optional[Dict[str, CseWorkerPoolUpdateInput]] = None
    new_worker_pools: Optional[List[CseWorkerPoolSettings]] = None
    node_health_check: Optional[bool] = None
    auto_repair_on_errors: Optional[bool] = None

    # Computed from the cluster being updated
    vcd_ke_config_version: Optional[str] = field(default=None, init=False,
                                                 repr=False)
    cluster_name: Optional[str] = field(default=None, init=False, repr=False)
    cse_version: Optional[semantic_version.Version] = field(
        default=None, init=False, repr=False)


@dataclass
class CseClusterEvent:
    name: str
    type: str
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    occurred_at: Optional[datetime] = None
    details: Optional[str] = None


@dataclass
class TkgVersionBundle:
    """Versions of the components of a Kubernetes Template OVA."""

    etcd_version: str = ''
    core_dns_version: str = ''
    tkg_version: str = ''
    tkr_version: str = ''
    kubernetes_version: str = ''

    def compare_tkg_version(self, tkg_version: str) -> int:
        """Compare the TKG version of the bundle with the given one.

        :return: -1, 0 or 1 if the bundle version is lower, equal or higher,
            and -2 if any of them can't be parsed
        """
        try:
            receiver = _core_version(self.tkg_version)
            other = _core_version(tkg_version)
        except ValueError:
            return -2
        if receiver < other:
            return -1
        if receiver > other:
            return 1
        return 0

    def kubernetes_version_is_upgradeable_from(self,
                                               kubernetes_version: str) -> bool:  # noqa: E501
        """Check if a cluster on the given version can move to this bundle.

        It can if the bundle Kubernetes version is exactly one minor higher,
        or has the same minor and a higher patch.
        Examples:
        * 1.19.2 is upgradeable from 1.18.7
        * 1.19.2 is upgradeable from 1.19.0
        * 1.19.2 is not upgradeable from 1.19.2
        * 1.20.2 is not upgradeable from 1.18.7
        * 1.18.0 is not upgradeable from 1.18.7
        """
        try:
            upgrade_to = _core_version(self.kubernetes_version)
            upgrade_from = _core_version(kubernetes_version)
        except ValueError:
            return False
        if upgrade_to == upgrade_from:
            return False
        major_is_equal = upgrade_to.major == upgrade_from.major
        minor_is_one_higher = upgrade_to.minor - 1 == upgrade_from.minor
        minor_is_equal = upgrade_to.minor == upgrade_from.minor
        patch_is_higher = upgrade_to.patch > upgrade_from.patch
        return major_is_equal and \
            (minor_is_one_higher or (minor_is_equal and patch_is_higher))


@dataclass
class VcdKeConfig:
    """Relevant settings of the CSE Server configuration entity."""

    max_unhealthy_nodes_percentage: float = 0
    node_startup_timeout: str = ''
    node_not_ready_timeout: str = ''
    node_unknown_timeout: str = ''
    container_registry_url: str = ''
    base64_certificates: List[str] = field(default_factory=list)

    def has_machine_health_check(self) -> bool:
        return bool(self.node_startup_timeout or self.node_unknown_timeout or
                    self.node_not_ready_timeout or
                    self.max_unhealthy_nodes_percentage)


@dataclass
class CseControlPlaneSettingsInternal:
    machine_count: int = 0
    disk_size_gi: int = 0
    sizing_policy_name: str = ''
    placement_policy_name: str = ''
    storage_profile_name: str = ''
    ip: str = ''


@dataclass
class CseWorkerPoolSettingsInternal:
    name: str = ''
    machine_count: int = 0
    disk_size_gi: int = 0
    sizing_policy_name: str = ''
    placement_policy_name: str = ''
    vgpu_policy_name: str = ''
    storage_profile_name: str = ''


@dataclass
class CseDefaultStorageClassInternal:
    storage_profile_name: str = ''
    name: str = ''
    use_delete_reclaim_policy: bool = False
    filesystem: str = ''


@dataclass
class CseClusterSettingsInternal:
    """Cluster settings as CSE reads them: names instead of IDs.

    Built from a validated CseClusterSettings, this feeds the CAPI YAML
    templates and the RDE payload.
    """

    cse_version: Optional[semantic_version.Version] = None
    name: str = ''
    organization_name: str = ''
    vdc_name: str = ''
    network_name: str = ''
    kubernetes_template_ova_name: str = ''
    tkg_version_bundle: TkgVersionBundle = field(
        default_factory=TkgVersionBundle)
    catalog_name: str = ''
    rde_type: Optional[DefinedEntityType] = None
    control_plane: CseControlPlaneSettingsInternal = field(
        default_factory=CseControlPlaneSettingsInternal)
    worker_pools: List[CseWorkerPoolSettingsInternal] = field(
        default_factory=list)
    default_storage_class: CseDefaultStorageClassInternal = field(
        default_factory=CseDefaultStorageClassInternal)
    vcd_ke_config: VcdKeConfig = field(default_factory=VcdKeConfig)
    owner: str = ''
    api_token: str = ''
    vcd_url: str = ''
    virtual_ip_subnet: str = ''
    ssh_public_key: str = ''
    pod_cidr: str = ''
    service_cidr: str = ''
    auto_repair_on_errors: bool = False
