# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Lifecycle of Kubernetes clusters managed by the Container Service Extension.

A cluster is a Runtime Defined Entity of type vmware:capvcdCluster. Creating
the entity triggers the provisioning by the CSE Server, and any change of its
CAPI YAML is reconciled by it.
"""

import copy
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from datetime import datetime
from datetime import timezone
import re
import time
from typing import List, Optional
import urllib.parse

import pyvcloud.vcd.exceptions as vcd_e
import semantic_version

from cloud_director_client.common.utils.core_utils import extract_uuid
from cloud_director_client.common.utils.core_utils import extract_uuid_from_urn  # noqa: E501
from cloud_director_client.common.utils.core_utils import query_parameter_filter_and  # noqa: E501
from cloud_director_client.common.utils.pyvcloud_utils import get_xml_resource_by_id  # noqa: E501
from cloud_director_client.cse.constants import API_TOKEN_MASK
from cloud_director_client.cse.constants import CapiKind
from cloud_director_client.cse.constants import CLUSTER_STATE_POLL_SEC
from cloud_director_client.cse.constants import CLUSTER_UPDATE_MAX_RETRIES
from cloud_director_client.cse.constants import ClusterEventType
from cloud_director_client.cse.constants import ClusterState
from cloud_director_client.cse.constants import CONTROL_PLANE_NODE_POOL_SUFFIX
from cloud_director_client.cse.constants import CSE_GET_FULL_ENTITY_BEHAVIOR
from cloud_director_client.cse.constants import CSE_KUBERNETES_CLUSTER_NAMESPACE  # noqa: E501
from cloud_director_client.cse.constants import CSE_KUBERNETES_CLUSTER_VENDOR
from cloud_director_client.cse.constants import ReclaimPolicy
from cloud_director_client.cse.cse_template import get_cluster_creation_payload  # noqa: E501
from cloud_director_client.cse.cse_types import CseClusterEvent
from cloud_director_client.cse.cse_types import CseClusterSettings
from cloud_director_client.cse.cse_types import CseClusterUpdateInput
from cloud_director_client.cse.cse_types import CseControlPlaneUpdateInput
from cloud_director_client.cse.cse_types import CseDefaultStorageClassSettings
from cloud_director_client.cse.cse_types import CseWorkerPoolSettings
from cloud_director_client.cse.cse_types import get_cse_components_versions
from cloud_director_client.cse.cse_types import parse_semantic_version
import cloud_director_client.cse.cse_util as cse_util
from cloud_director_client.cse.cse_yaml import traverse_map_and_get
from cloud_director_client.cse.cse_yaml import unmarshal_multiple_yaml_documents  # noqa: E501
from cloud_director_client.cse.cse_yaml import update_capi_yaml
from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.exception.exceptions import CseClusterTimeoutError
from cloud_director_client.exception.exceptions import is_etag_error
from cloud_director_client.exception.exceptions import is_not_found_error
from cloud_director_client.lib.cloudapi.cloudapi_client import CloudApiClient  # noqa: E501
from cloud_director_client.logging.logger import CLIENT_LOGGER as LOGGER
from cloud_director_client.rde.entity_service import DefinedEntityService
from cloud_director_client.rde.models import DefinedEntity
from cloud_director_client.rde.models import TenantContext

_CLUSTER_ENTITY_TYPE = f"{CSE_KUBERNETES_CLUSTER_VENDOR}:{CSE_KUBERNETES_CLUSTER_NAMESPACE}"  # noqa: E501
_FRACTION_PATTERN = re.compile(r'\.(\d+)')
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

# Components of the cluster that report events, in status.<component>
_EVENT_SOURCES = ['vcdKe', 'capvcd', 'cpi', 'csi', 'projector']


@dataclass
class CseKubernetesCluster(CseClusterSettings):
    """A Kubernetes cluster as read from its RDE.

    Besides the settings, it carries what the CSE Server reports about it.
    `api_token` is never returned, it is always masked.
    """

    id: str = ''
    etag: Optional[str] = None
    kubernetes_version: Optional[semantic_version.Version] = None
    tkg_version: Optional[semantic_version.Version] = None
    capvcd_version: Optional[semantic_version.Version] = None
    cpi_version: Optional[semantic_version.Version] = None
    csi_version: Optional[semantic_version.Version] = None
    cluster_resource_set_bindings: List[str] = field(default_factory=list)
    state: str = ''
    events: List[CseClusterEvent] = field(default_factory=list)
    # RDE contents, as they were last read
    capvcd: dict = field(default_factory=dict, repr=False)
    cloudapi_client: Optional[CloudApiClient] = field(default=None,
                                                      repr=False,
                                                      compare=False)
    entity_service: Optional[DefinedEntityService] = field(default=None,
                                                           repr=False,
                                                           compare=False)
    _supported_upgrades: Optional[list] = field(default=None, init=False,
                                                repr=False, compare=False)

    def refresh(self):
        """Read the latest state of the cluster."""
        entity = self.entity_service.get_entity(self.id)
        refreshed = rde_to_cluster(entity, self.cloudapi_client,
                                   self.entity_service)
        for cluster_field in fields(self):
            setattr(self, cluster_field.name,
                    getattr(refreshed, cluster_field.name))

    def update_worker_pools(self, worker_pools: dict):
        """Resize existing worker pools.

        :param dict worker_pools: CseWorkerPoolUpdateInput by pool name
        """
        self.update(CseClusterUpdateInput(worker_pools=worker_pools))

    def add_worker_pools(self, new_worker_pools: List[CseWorkerPoolSettings]):  # noqa: E501
        self.update(CseClusterUpdateInput(new_worker_pools=new_worker_pools))

    def update_control_plane(self, control_plane: CseControlPlaneUpdateInput):  # noqa: E501
        self.update(CseClusterUpdateInput(control_plane=control_plane))

    def change_kubernetes_template(self, kubernetes_template_ova_id: str):
        """Upgrade the cluster to another Kubernetes Template OVA.

        See get_supported_upgrades for the OVAs that can be used.
        """
        self.update(CseClusterUpdateInput(
            kubernetes_template_ova_id=kubernetes_template_ova_id))

    def set_node_health_check(self, node_health_check: bool):
        self.update(CseClusterUpdateInput(
            node_health_check=node_health_check))

    def set_auto_repair_on_errors(self, auto_repair_on_errors: bool):
        self.update(CseClusterUpdateInput(
            auto_repair_on_errors=auto_repair_on_errors))

    def update(self, update_input: CseClusterUpdateInput):
        """Update the cluster with the set fields of the input.

        The update doesn't wait for the CSE Server to reconcile the cluster.
        The RDE update is retried while it conflicts on the ETag with the
        CSE Server.

        :raises CseClusterError: if the cluster is not provisioned or the
            update can't be performed
        """
        self.refresh()
        if not self.state:
            raise CseClusterError("can't update a Kubernetes cluster that "
                                  "does not have any state")
        if self.state != ClusterState.PROVISIONED.value:
            raise CseClusterError(
                f"can't update a Kubernetes cluster that is not in "
                f"'{ClusterState.PROVISIONED.value}' state, as it is in "
                f"'{self.state}'")

        components_versions = get_cse_components_versions(self.cse_version)
        update_input.vcd_ke_config_version = \
            components_versions.vcd_ke_config_rde_type_version
        update_input.cluster_name = self.name
        update_input.cse_version = self.cse_version

        spec = self.capvcd.setdefault('spec', {})
        if update_input.auto_repair_on_errors is not None:
            spec.setdefault('vcdKe', {})['autoRepairOnErrors'] = \
                update_input.auto_repair_on_errors
        spec['capiYaml'] = update_capi_yaml(self, update_input)
        contents = copy.deepcopy(self.capvcd)

        for attempt in range(CLUSTER_UPDATE_MAX_RETRIES + 1):
            entity = self.entity_service.get_entity(self.id)
            entity.entity = contents
            try:
                self.entity_service.update_entity(entity)
                break
            except CloudDirectorClientError as err:
                if not is_etag_error(err):
                    raise
            LOGGER.debug(f"The update of the Kubernetes cluster '{self.id}' "
                         f"failed due to an ETag lock, attempt {attempt + 1}")
        else:
            raise CseClusterError(
                f"could not update the Kubernetes cluster '{self.id}' after "
                f"{CLUSTER_UPDATE_MAX_RETRIES} retries, due to an ETag lock "
                f"blocking the operations", cluster_id=self.id)
        LOGGER.info(f"Updated the Kubernetes cluster '{self.name}' "
                    f"({self.id})")
        self.refresh()

    def get_kubeconfig(self) -> str:
        """Get the Kubeconfig to access the cluster.

        :raises CseClusterError: if the cluster has no Kubeconfig yet
        """
        components_versions = get_cse_components_versions(self.cse_version)
        behavior_id = CSE_GET_FULL_ENTITY_BEHAVIOR.format(
            interface_version=components_versions.cse_interface_version)
        result = self.entity_service.invoke_behavior(self.id, behavior_id)
        kubeconfig = cse_util.get_value_at_path(
            result, 'entity.status.capvcd.private.kubeConfig', '')
        if not kubeconfig or not isinstance(kubeconfig, str):
            raise CseClusterError("could not retrieve the Kubeconfig from "
                                  "the invocation of the Behavior",
                                  cluster_id=self.id)
        return kubeconfig

    def get_supported_upgrades(self, refresh=False) -> list:
        """Get the Kubernetes Template OVAs the cluster can be upgraded to.

        Results are cached, use `refresh` to query them again.

        :rtype: list of lxml.objectify.ObjectifiedElement
        """
        if self._supported_upgrades is not None and not refresh:
            return self._supported_upgrades
        client = self.cloudapi_client.vcd_client
        supported_upgrades = []
        for record in cse_util.query_vapp_templates(client):
            try:
                vapp_template = client.get_resource(record.get('href'))
            except vcd_e.VcdException as err:
                raise CseClusterError(f"could not retrieve the vApp template "
                                      f"'{record.get('name')}': {err}")
            try:
                tkg_bundle = \
                    cse_util.get_tkg_version_bundle_from_vapp_template(
                        vapp_template)
            except CseClusterError:
                # Not a supported Kubernetes Template OVA
                continue
            if tkg_bundle.compare_tkg_version(self.tkg_version) >= 0 and \
                    tkg_bundle.kubernetes_version_is_upgradeable_from(
                        self.kubernetes_version):
                supported_upgrades.append(vapp_template)
        self._supported_upgrades = supported_upgrades
        return supported_upgrades

    def delete(self, timeout_seconds=0, poll_seconds=CLUSTER_STATE_POLL_SEC):
        """Delete the cluster, waiting for the CSE Server to remove it.

        The cluster is marked for deletion, which the CSE Server picks up.

        :param int timeout_seconds: 0 waits forever

        :raises CseClusterError: if the cluster can't be marked for deletion
        :raises CseClusterTimeoutError: if the cluster is not gone in time,
            it may be still marked for deletion
        """
        start = time.monotonic()
        marked = False
        while timeout_seconds == 0 or \
                time.monotonic() - start <= timeout_seconds:
            try:
                entity = self.entity_service.get_entity(self.id)
            except CloudDirectorClientError as err:
                if is_not_found_error(err):
                    LOGGER.info(f"Deleted the Kubernetes cluster '{self.id}'")
                    return
                raise CseClusterError(f"could not retrieve the Kubernetes "
                                      f"cluster with ID '{self.id}': {err}",
                                      cluster_id=self.id)

            vcd_ke = cse_util.get_value_at_path(entity.entity, 'spec.vcdKe')
            if not isinstance(vcd_ke, dict):
                raise CseClusterError(f"JSON object 'spec.vcdKe' is not "
                                      f"correct in the RDE '{self.id}'",
                                      cluster_id=self.id)
            if not vcd_ke.get('markForDelete') or \
                    not vcd_ke.get('forceDelete'):
                vcd_ke['markForDelete'] = True
                vcd_ke['forceDelete'] = True
                try:
                    self.entity_service.update_entity(entity)
                except CloudDirectorClientError as err:
                    # A clash with the CSE Server, try again
                    if is_etag_error(err):
                        continue
                    raise CseClusterError(
                        f"could not mark the Kubernetes cluster with ID "
                        f"'{self.id}' to be deleted: {err}",
                        cluster_id=self.id)
            marked = True

            LOGGER.debug(f"Cluster '{self.id}' is still not deleted, will "
                         f"check again in {poll_seconds} seconds")
            time.sleep(poll_seconds)

        if marked:
            raise CseClusterTimeoutError(
                f"timeout of {timeout_seconds} seconds reached, the cluster "
                f"was successfully marked for deletion but was not removed "
                f"in time", cluster_id=self.id)
        raise CseClusterTimeoutError(
            f"timeout of {timeout_seconds} seconds reached, the cluster was "
            f"not marked for deletion, please try again", cluster_id=self.id)


def _parse_occurred_at(value) -> Optional[datetime]:
    """Read event timestamps such as '2024-01-31T10:20:30.123456789Z'."""
    if not value:
        return None
    text = str(value).replace('Z', '+00:00')
    text = _FRACTION_PATTERN.sub(
        lambda match: '.' + match.group(1)[:6].ljust(6, '0'), text)
    try:
        occurred_at = datetime.fromisoformat(text)
    except ValueError:
        LOGGER.debug(f"Could not read the event timestamp '{value}'")
        return None
    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    return occurred_at


def _to_event(item: dict, event_type: ClusterEventType,
              details: str) -> CseClusterEvent:
    return CseClusterEvent(
        name=item.get('name', ''),
        type=event_type.value,
        resource_id=item.get('vcdResourceId'),
        resource_name=item.get('vcdResourceName'),
        occurred_at=_parse_occurred_at(item.get('occurredAt')),
        details=details)


def get_cluster_events(capvcd: dict) -> List[CseClusterEvent]:
    """Collect the events and errors of every component, newest first."""
    events = []
    for source in _EVENT_SOURCES:
        status = cse_util.get_value_at_path(capvcd, f"status.{source}", {})
        for item in status.get('eventSet') or []:
            details = item.get('name', '')
            if source == 'vcdKe':
                details = cse_util.get_value_at_path(
                    item, 'additionalDetails.Detailed Event', '')
            events.append(_to_event(item, ClusterEventType.EVENT, details))
        for item in status.get('errorSet') or []:
            details = cse_util.get_value_at_path(
                item, 'additionalDetails.Detailed Error', '')
            events.append(_to_event(item, ClusterEventType.ERROR, details))
    events.sort(key=lambda event: event.occurred_at or _OLDEST, reverse=True)
    return events


def _read_version(value, label: str) -> Optional[semantic_version.Version]:
    if not value:
        return None
    try:
        return parse_semantic_version(str(value).strip())
    except ValueError as err:
        raise CseClusterError(f"could not read {label} version: {err}")


def _disk_size_gi(doc: dict) -> int:
    disk_size = traverse_map_and_get(doc, 'spec.template.spec.diskSize', str)
    try:
        return int(disk_size.replace('Gi', ''))
    except ValueError:
        raise CseClusterError(f"could not read the disk size '{disk_size}'")


def _policy_ids(compute_policies, sizing_policy_name, placement_policy_name):
    """Get the ids of the sizing, placement and vGPU policies in use.

    Placement policies named in the CAPI YAML can be vGPU policies too.
    """
    sizing_id = placement_id = vgpu_id = None
    for policy in compute_policies:
        name = policy.get('name')
        if policy.get('isSizingOnly'):
            if name == sizing_policy_name:
                sizing_id = policy.get('id')
        elif name == placement_policy_name:
            if policy.get('isVgpuPolicy'):
                vgpu_id = policy.get('id')
            else:
                placement_id = policy.get('id')
    return sizing_id, placement_id, vgpu_id


def _get_kubernetes_template_ova_id(client, doc: dict) -> str:
    ova_name = traverse_map_and_get(doc, 'spec.template.spec.template', str)
    catalog_name = traverse_map_and_get(doc, 'spec.template.spec.catalog',
                                        str)
    try:
        records = cse_util.query_vapp_templates(
            client, qfilter=f"name=={urllib.parse.quote(ova_name)};"
                            f"catalogName=={urllib.parse.quote(catalog_name)}")  # noqa: E501
    except vcd_e.VcdException as err:
        raise CseClusterError(f"could not find any vApp Template with name "
                              f"'{ova_name}' in Catalog '{catalog_name}': "
                              f"{err}")
    if not records:
        raise CseClusterError(f"could not find any vApp Template with name "
                              f"'{ova_name}' in Catalog '{catalog_name}'")
    return f"urn:vcloud:vapptemplate:{extract_uuid(records[0].get('href'))}"


def rde_to_cluster(entity: DefinedEntity, cloudapi_client: CloudApiClient,
                   entity_service: DefinedEntityService) -> CseKubernetesCluster:  # noqa: E501
    """Read a cluster out of its RDE.

    Node settings are read from the CAPI YAML rather than from the status,
    as the status takes minutes to reflect the changes. Names in the CAPI
    YAML are resolved back to the IDs of the VDC, network, OVA, policies
    and storage profiles.

    :raises CseClusterError: if the RDE is not a cluster or some item can't
        be resolved
    """
    if _CLUSTER_ENTITY_TYPE not in (entity.id or '') or \
            _CLUSTER_ENTITY_TYPE not in (entity.entityType or ''):
        raise CseClusterError(f"the receiver RDE is not a "
                              f"'{_CLUSTER_ENTITY_TYPE}' entity, it is "
                              f"'{entity.entityType}'")
    capvcd = entity.entity or {}
    vcd_ke_spec = cse_util.get_value_at_path(capvcd, 'spec.vcdKe', {})
    capvcd_status = cse_util.get_value_at_path(capvcd, 'status.capvcd', {})

    cluster = CseKubernetesCluster(
        name=entity.name,
        id=entity.id,
        etag=entity.etag,
        api_token=API_TOKEN_MASK,
        auto_repair_on_errors=bool(vcd_ke_spec.get('autoRepairOnErrors')),
        state=cse_util.get_value_at_path(capvcd, 'status.vcdKe.state', ''),
        events=get_cluster_events(capvcd),
        capvcd=capvcd,
        cloudapi_client=cloudapi_client,
        entity_service=entity_service)

    cluster.capvcd_version = _read_version(
        capvcd_status.get('capvcdVersion'), 'Capvcd')
    cluster.cpi_version = _read_version(
        cse_util.get_value_at_path(capvcd, 'status.cpi.version'), 'CPI')
    cluster.csi_version = _read_version(
        cse_util.get_value_at_path(capvcd, 'status.csi.version'), 'CSI')
    cse_version = _read_version(
        cse_util.get_value_at_path(capvcd, 'status.vcdKe.vcdKeVersion'),
        'the CSE')
    if cse_version is not None:
        # Only major.minor.patch are relevant
        cse_version = cse_version.truncate('patch')
    cluster.cse_version = cse_version

    if entity.owner is not None:
        cluster.owner = entity.owner.name
    cluster.cluster_resource_set_bindings = [
        binding.get('name') for binding in
        capvcd_status.get('clusterResourceSetBindings') or []]
    api_endpoints = cse_util.get_value_at_path(
        capvcd_status, 'clusterApiStatus.apiEndpoints', [])
    if api_endpoints:
        cluster.control_plane.ip = api_endpoints[0].get('host')
    organizations = cse_util.get_value_at_path(
        capvcd_status, 'vcdProperties.organizations', [])
    if organizations:
        cluster.organization_id = organizations[0].get('id')

    # Clusters that failed early have no VDC, nothing else can be read
    org_vdcs = cse_util.get_value_at_path(capvcd_status,
                                          'vcdProperties.orgVdcs', [])
    if not org_vdcs:
        return cluster

    client = cloudapi_client.vcd_client
    cluster.vdc_id = org_vdcs[0].get('id')
    # Some CSE releases store the VDC name as the id
    if cluster.vdc_id == org_vdcs[0].get('name'):
        cluster.vdc_id = cse_util.get_vdc_id_by_name(client,
                                                     org_vdcs[0].get('name'))
    cluster.network_id = cse_util.get_org_vdc_network_id(
        cloudapi_client, org_vdcs[0].get('ovdcNetworkName'), cluster.vdc_id)

    storage_profiles = cse_util.get_storage_profiles_by_vdc_id(
        client, cluster.vdc_id)
    compute_policies = cse_util.get_all_compute_policies(cloudapi_client)

    storage_class_options = vcd_ke_spec.get('defaultStorageClassOptions') or {}  # noqa: E501
    if storage_class_options.get('k8sStorageClassName'):
        reclaim_policy = ReclaimPolicy.RETAIN.value
        if storage_class_options.get('useDeleteReclaimPolicy'):
            reclaim_policy = ReclaimPolicy.DELETE.value
        cluster.default_storage_class = CseDefaultStorageClassSettings(
            storage_profile_id=storage_profiles.get(
                storage_class_options.get('vcdStorageProfileName'), ''),
            name=storage_class_options.get('k8sStorageClassName'),
            reclaim_policy=reclaim_policy,
            filesystem=storage_class_options.get('filesystem'))

    # VCDMachineTemplate and MachineDeployment documents of a worker pool
    # come in no particular order
    worker_pools = {}
    docs = unmarshal_multiple_yaml_documents(
        cse_util.get_value_at_path(capvcd, 'spec.capiYaml', ''))
    for doc in docs:
        kind = doc.get('kind')
        if kind == CapiKind.KUBEADM_CONTROL_PLANE.value:
            cluster.control_plane.machine_count = traverse_map_and_get(
                doc, 'spec.replicas', int)
            users = traverse_map_and_get(doc, 'spec.kubeadmConfigSpec.users',
                                         list)
            if not users:
                raise CseClusterError("expected 'spec.kubeadmConfigSpec."
                                      "users' list to not be empty")
            keys = users[0].get('sshAuthorizedKeys') or []
            if keys:
                cluster.ssh_public_key = keys[0]
            cluster.kubernetes_version = _read_version(
                traverse_map_and_get(doc, 'spec.version', str), 'Kubernetes')
        elif kind == CapiKind.VCD_MACHINE_TEMPLATE.value:
            name = traverse_map_and_get(doc, 'metadata.name', str)
            sizing_id, placement_id, vgpu_id = _policy_ids(
                compute_policies,
                cse_util.get_value_at_path(
                    doc, 'spec.template.spec.sizingPolicy', ''),
                cse_util.get_value_at_path(
                    doc, 'spec.template.spec.placementPolicy', ''))
            storage_profile_id = storage_profiles.get(
                cse_util.get_value_at_path(
                    doc, 'spec.template.spec.storageProfile', ''))
            if CONTROL_PLANE_NODE_POOL_SUFFIX in name:
                control_plane = cluster.control_plane
                control_plane.sizing_policy_id = sizing_id
                control_plane.placement_policy_id = placement_id
                control_plane.storage_profile_id = storage_profile_id
                control_plane.disk_size_gi = _disk_size_gi(doc)
                # Every node uses the same OVA
                cluster.kubernetes_template_ova_id = \
                    _get_kubernetes_template_ova_id(client, doc)
            else:
                worker_pool = worker_pools.setdefault(
                    name, CseWorkerPoolSettings(name=name))
                worker_pool.sizing_policy_id = sizing_id
                worker_pool.placement_policy_id = placement_id
                worker_pool.vgpu_policy_id = vgpu_id
                worker_pool.storage_profile_id = storage_profile_id
                worker_pool.disk_size_gi = _disk_size_gi(doc)
        elif kind == CapiKind.MACHINE_DEPLOYMENT.value:
            name = traverse_map_and_get(doc, 'metadata.name', str)
            worker_pool = worker_pools.setdefault(
                name, CseWorkerPoolSettings(name=name))
            worker_pool.machine_count = traverse_map_and_get(
                doc, 'spec.replicas', int)
        elif kind == CapiKind.VCD_CLUSTER.value:
            cluster.virtual_ip_subnet = cse_util.get_value_at_path(
                doc, 'spec.loadBalancerConfigSpec.vipSubnet')
        elif kind == CapiKind.CLUSTER.value:
            cluster.tkg_version = _read_version(
                traverse_map_and_get(doc, 'metadata.annotations.TKGVERSION',
                                     str), 'TKG')
            pod_cidrs = traverse_map_and_get(
                doc, 'spec.clusterNetwork.pods.cidrBlocks', list)
            service_cidrs = traverse_map_and_get(
                doc, 'spec.clusterNetwork.services.cidrBlocks', list)
            if not pod_cidrs or not service_cidrs:
                raise CseClusterError("expected at least one "
                                      "'spec.clusterNetwork' CIDR block for "
                                      "pods and services")
            cluster.pod_cidr = pod_cidrs[0]
            cluster.service_cidr = service_cidrs[0]
        elif kind == CapiKind.MACHINE_HEALTH_CHECK.value:
            cluster.node_health_check = True
    cluster.worker_pools = list(worker_pools.values())
    return cluster


def _new_entity_service(cloudapi_client: CloudApiClient) -> DefinedEntityService:  # noqa: E501
    return DefinedEntityService(cloudapi_client, logger_debug=LOGGER)


def create_kubernetes_cluster_async(cloudapi_client: CloudApiClient,
                                    settings: CseClusterSettings) -> str:
    """Start the creation of a Kubernetes cluster.

    The provisioning is not waited for, the state of the cluster can be
    checked with get_kubernetes_cluster_by_id.

    :return: the id of the new cluster

    :rtype: str

    :raises CseClusterError: if the settings are invalid
    """
    settings.validate()
    entity_service = _new_entity_service(cloudapi_client)
    try:
        org = get_xml_resource_by_id(cloudapi_client.vcd_client, 'org',
                                     settings.organization_id)
    except vcd_e.VcdException as err:
        raise CseClusterError(f"could not retrieve the Organization with ID "
                              f"'{settings.organization_id}': {err}")
    org_name = org.get('name')

    internal_settings = cse_util.cluster_settings_to_internal(
        cloudapi_client, entity_service, settings, org_name)
    payload = get_cluster_creation_payload(internal_settings)
    entity_type_id = internal_settings.rde_type.get_id()
    entity = entity_service.create_entity(
        entity_type_id,
        DefinedEntity(name=internal_settings.name, entity=payload,
                      entityType=entity_type_id),
        TenantContext(extract_uuid_from_urn(settings.organization_id),
                      org_name))
    LOGGER.info(f"Started the creation of the Kubernetes cluster "
                f"'{settings.name}' ({entity.id})")
    return entity.id


def create_kubernetes_cluster(cloudapi_client: CloudApiClient,
                              settings: CseClusterSettings,
                              timeout_seconds=0) -> CseKubernetesCluster:
    """Create a Kubernetes cluster and wait for it to be provisioned.

    :param int timeout_seconds: 0 waits forever

    :raises CseClusterError: if the cluster can't be provisioned, with the
        `cluster_id` of the failed cluster when it was created
    """
    cluster_id = create_kubernetes_cluster_async(cloudapi_client, settings)
    cse_util.wait_until_cluster_is_provisioned(
        _new_entity_service(cloudapi_client), cluster_id, timeout_seconds)
    return get_kubernetes_cluster_by_id(cloudapi_client, cluster_id)


def get_kubernetes_cluster_by_id(cloudapi_client: CloudApiClient,
                                 cluster_id: str,
                                 org_id=None) -> CseKubernetesCluster:
    """Get a Kubernetes cluster by id.

    :param str org_id: if given, the cluster must belong to this
        organization
    """
    entity_service = _new_entity_service(cloudapi_client)
    entity = entity_service.get_entity(cluster_id)
    if org_id and (entity.org is None or entity.org.id != org_id):
        raise CseClusterError(f"could not find any Kubernetes cluster with "
                              f"ID '{cluster_id}' in Organization "
                              f"'{org_id}'")
    return rde_to_cluster(entity, cloudapi_client, entity_service)


def get_kubernetes_clusters_by_name(cloudapi_client: CloudApiClient,
                                    cse_version, name: str,
                                    org_id=None) -> List[CseKubernetesCluster]:  # noqa: E501
    """Get the Kubernetes clusters with the given name.

    Names are not unique, so there can be many.

    :param cse_version: CSE version the clusters were created with
    :param str org_id: if given, only clusters of this organization

    :rtype: list
    """
    components_versions = get_cse_components_versions(cse_version)
    entity_service = _new_entity_service(cloudapi_client)
    query_params = None
    if org_id:
        query_params = query_parameter_filter_and(f"org.id=={org_id}")
    query_params = query_parameter_filter_and(f"name=={name}", query_params)
    entities = entity_service.get_all_entities(
        CSE_KUBERNETES_CLUSTER_VENDOR, CSE_KUBERNETES_CLUSTER_NAMESPACE,
        components_versions.capvcd_rde_type_version, query_params)
    # Listed entities come without ETag
    return [get_kubernetes_cluster_by_id(cloudapi_client, entity.id)
            for entity in entities]
