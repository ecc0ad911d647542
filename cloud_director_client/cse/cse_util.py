# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import base64
import json
import time
import urllib.parse

from pyvcloud.vcd import client as vcd_client
from pyvcloud.vcd.client import NSMAP
import pyvcloud.vcd.exceptions as vcd_e

from cloud_director_client.common.utils.core_utils import extract_uuid
from cloud_director_client.common.utils.core_utils import query_parameter_filter_and  # noqa: E501
from cloud_director_client.common.utils.pyvcloud_utils import get_vcd_url
from cloud_director_client.common.utils.pyvcloud_utils import get_xml_resource_by_id  # noqa: E501
from cloud_director_client.common.utils.script_utils import get_package_file_contents  # noqa: E501
from cloud_director_client.cse.constants import CLUSTER_STATE_POLL_SEC
from cloud_director_client.cse.constants import ClusterState
from cloud_director_client.cse.constants import CSE_KUBERNETES_CLUSTER_NAMESPACE  # noqa: E501
from cloud_director_client.cse.constants import CSE_KUBERNETES_CLUSTER_VENDOR
from cloud_director_client.cse.constants import ReclaimPolicy
from cloud_director_client.cse.constants import TEMPLATES_PACKAGE
from cloud_director_client.cse.constants import TKG_VERSIONS_FILE
from cloud_director_client.cse.constants import VCDKE_CONFIG_NAME
from cloud_director_client.cse.constants import VCDKE_CONFIG_NAMESPACE
from cloud_director_client.cse.constants import VCDKE_CONFIG_VENDOR
from cloud_director_client.cse.cse_types import CseClusterSettings
from cloud_director_client.cse.cse_types import CseClusterSettingsInternal
from cloud_director_client.cse.cse_types import CseControlPlaneSettingsInternal
from cloud_director_client.cse.cse_types import CseDefaultStorageClassInternal
from cloud_director_client.cse.cse_types import CseWorkerPoolSettingsInternal
from cloud_director_client.cse.cse_types import get_cse_components_versions
from cloud_director_client.cse.cse_types import TkgVersionBundle
from cloud_director_client.cse.cse_types import VcdKeConfig
from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.exception.exceptions import CseClusterTimeoutError
from cloud_director_client.exception.exceptions import is_not_found_error
from cloud_director_client.lib.cloudapi.cloudapi_client import CloudApiClient  # noqa: E501
from cloud_director_client.lib.cloudapi.constants import CloudApiResource
from cloud_director_client.lib.cloudapi.constants import CloudApiVersion
import cloud_director_client.lib.cloudapi.generic_crud as crud
from cloud_director_client.logging.logger import CLIENT_LOGGER as LOGGER
from cloud_director_client.rde.entity_service import DefinedEntityService

_V1 = CloudApiVersion.VERSION_1_0_0.value
_V2 = CloudApiVersion.VERSION_2_0_0.value

COMPUTE_POLICY_LABEL = 'VDC Compute Policy'
ORG_VDC_NETWORK_LABEL = 'Org VDC Network'


def get_value_at_path(data, path: str, default=None):
    """Get a nested value of a dict with a dotted path, leniently.

    get_value_at_path(rde, 'status.vcdKe.state') returns
    rde['status']['vcdKe']['state'], or `default` if any key is missing.
    """
    current = data
    for key in path.split('.'):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    if current is None:
        return default
    return current


def _clark(namespace: str, tag: str) -> str:
    return f"{{{NSMAP[namespace]}}}{tag}"


def load_tkg_versions() -> dict:
    """Read the supported Kubernetes Template OVAs and their versions."""
    return json.loads(get_package_file_contents(TEMPLATES_PACKAGE,
                                                TKG_VERSIONS_FILE))


def get_tkg_version_bundle_from_vapp_template(vapp_template) -> TkgVersionBundle:  # noqa: E501
    """Get the versions of the components of a Kubernetes Template OVA.

    The OVA id is the VERSION property of the Product section of its first
    VM, e.g. 'v1.25.7+vmware.2-tkg.1-8a74b9f12e488c54605b3537acb683bc'.

    :param lxml.objectify.ObjectifiedElement vapp_template: the vApp
        template resource

    :raises CseClusterError: if it is not a supported Kubernetes Template
        OVA
    """
    if vapp_template is None:
        raise CseClusterError("the Kubernetes Template OVA is None")
    name = vapp_template.get('name')
    children = vapp_template.find(_clark('vcloud', 'Children'))
    vms = [] if children is None else \
        children.findall(_clark('vcloud', 'Vm'))
    if not vms:
        raise CseClusterError(f"the Kubernetes Template OVA '{name}' doesn't "
                              f"have any child VM")
    product_section = vms[0].find(_clark('ovf', 'ProductSection'))
    if product_section is None:
        raise CseClusterError(
            f"the Product section of the Kubernetes Template OVA '{name}' is "
            f"empty, can't proceed")

    ova_id = ''
    for prop in product_section.findall(_clark('ovf', 'Property')):
        if prop.get(_clark('ovf', 'key')) == 'VERSION':
            ova_id = prop.get(_clark('ovf', 'value')) or ''
    if not ova_id:
        raise CseClusterError(
            f"could not find any VERSION property inside the Kubernetes "
            f"Template OVA '{name}' Product section")

    versions = load_tkg_versions().get(ova_id)
    if versions is None:
        raise CseClusterError(
            f"the Kubernetes Template OVA '{name}' is not supported")
    return TkgVersionBundle(
        kubernetes_version=ova_id.split('-')[0],
        tkr_version=versions['tkr'],
        tkg_version=versions['tkg'],
        etcd_version=versions['etcd'],
        core_dns_version=versions['coreDns'])


def get_vapp_template_by_id(client: vcd_client.Client, vapp_template_id: str):
    """Read a vApp template, by URN or uuid.

    :rtype: lxml.objectify.ObjectifiedElement
    """
    uuid = extract_uuid(vapp_template_id) or vapp_template_id
    return get_xml_resource_by_id(client, 'vAppTemplate',
                                  f"vappTemplate-{uuid}")


def query_vapp_templates(client: vcd_client.Client, qfilter=None) -> list:
    """Query vApp template records, as tenant or as provider.

    :param str qfilter: FIQL filter, e.g. 'name==foo;catalogName==bar'
    """
    resource_type = vcd_client.ResourceType.VAPP_TEMPLATE.value
    if client.is_sysadmin():
        resource_type = vcd_client.ResourceType.ADMIN_VAPP_TEMPLATE.value
    query = client.get_typed_query(
        resource_type,
        query_result_format=vcd_client.QueryResultFormat.RECORDS,
        qfilter=qfilter)
    return list(query.execute())


def get_vapp_template_catalog_name(client: vcd_client.Client,
                                   vapp_template) -> str:
    """Get the name of the catalog that holds a vApp template."""
    name = vapp_template.get('name')
    uuid = extract_uuid(vapp_template.get('id') or vapp_template.get('href'))
    records = query_vapp_templates(
        client, qfilter=f"name=={urllib.parse.quote(name)}")
    for record in records:
        if extract_uuid(record.get('href')) == uuid:
            return record.get('catalogName')
    raise CseClusterError(f"could not find the catalog of the vApp template "
                          f"'{name}'")


def get_vdc_id_by_name(client: vcd_client.Client, vdc_name: str) -> str:
    resource_type = vcd_client.ResourceType.ORG_VDC.value
    if client.is_sysadmin():
        resource_type = vcd_client.ResourceType.ADMIN_ORG_VDC.value
    query = client.get_typed_query(
        resource_type,
        query_result_format=vcd_client.QueryResultFormat.RECORDS,
        equality_filter=('name', vdc_name))
    records = list(query.execute())
    if not records:
        raise CseClusterError(f"could not get VDC IDs as no VDC with name "
                              f"'{vdc_name}' was found")
    return f"urn:vcloud:vdc:{extract_uuid(records[0].get('href'))}"


def get_storage_profiles_by_vdc_id(client: vcd_client.Client,
                                   vdc_id: str) -> dict:
    """Map the names of the storage profiles of a VDC to their URNs."""
    resource_type = vcd_client.ResourceType.ORG_VDC_STORAGE_PROFILE.value
    if client.is_sysadmin():
        resource_type = \
            vcd_client.ResourceType.ADMIN_ORG_VDC_STORAGE_PROFILE.value
    query = client.get_typed_query(
        resource_type,
        query_result_format=vcd_client.QueryResultFormat.RECORDS,
        equality_filter=('vdc',
                         f"{client.get_api_uri()}/vdc/{extract_uuid(vdc_id)}"))  # noqa: E501
    storage_profiles = {}
    for record in query.execute():
        storage_profiles[record.get('name')] = \
            f"urn:vcloud:vdcstorageProfile:{extract_uuid(record.get('href'))}"  # noqa: E501
    return storage_profiles


def get_compute_policy_by_id(cloudapi_client: CloudApiClient,
                             policy_id: str) -> dict:
    config = crud.CrudConfig(
        entity_label=COMPUTE_POLICY_LABEL,
        endpoint=_V2 + CloudApiResource.VDC_COMPUTE_POLICIES.value,
        endpoint_params=[policy_id])
    return crud.get_inner_entity(cloudapi_client, config)


def get_all_compute_policies(cloudapi_client: CloudApiClient,
                             query_params=None) -> list:
    config = crud.CrudConfig(
        entity_label=COMPUTE_POLICY_LABEL,
        endpoint=_V2 + CloudApiResource.VDC_COMPUTE_POLICIES.value,
        query_parameters=query_params)
    return crud.get_all_inner_entities(cloudapi_client, config)


def get_org_vdc_network_by_id(cloudapi_client: CloudApiClient,
                              network_id: str) -> dict:
    config = crud.CrudConfig(
        entity_label=ORG_VDC_NETWORK_LABEL,
        endpoint=_V1 + CloudApiResource.ORG_VDC_NETWORKS.value,
        endpoint_params=[network_id])
    return crud.get_inner_entity(cloudapi_client, config)


def get_org_vdc_network_id(cloudapi_client: CloudApiClient, name: str,
                           vdc_id: str) -> str:
    """Get the URN of the network with the given name in a VDC.

    :raises CseClusterError: unless exactly one network matches
    """
    query_params = query_parameter_filter_and(
        f"ownerRef.id=={vdc_id}", query_parameter_filter_and(f"name=={name}"))
    config = crud.CrudConfig(
        entity_label=ORG_VDC_NETWORK_LABEL,
        endpoint=_V1 + CloudApiResource.ORG_VDC_NETWORKS.value,
        query_parameters=query_params)
    networks = crud.get_all_inner_entities(cloudapi_client, config)
    if len(networks) != 1:
        raise CseClusterError(f"expected one Org VDC Network from Capvcd "
                              f"type, but got {len(networks)}")
    return networks[0]['id']


def id_to_names(cloudapi_client: CloudApiClient, compute_policy_ids,
                storage_profile_ids) -> dict:
    """Map compute policy and storage profile URNs to their names.

    Unset (empty) ids map to an empty name. URNs are unique across kinds of
    entities, so a single map holds both.

    :raises CseClusterError: if an id can't be resolved
    """
    result = {'': '', None: ''}
    for storage_profile_id in storage_profile_ids:
        if storage_profile_id in result:
            continue
        try:
            storage_profile = get_xml_resource_by_id(
                cloudapi_client.vcd_client, 'vdcStorageProfile',
                storage_profile_id)
        except vcd_e.VcdException as err:
            raise CseClusterError(f"could not retrieve Storage Profile with "
                                  f"ID '{storage_profile_id}': {err}")
        result[storage_profile_id] = storage_profile.get('name')
    for compute_policy_id in compute_policy_ids:
        if compute_policy_id in result:
            continue
        try:
            compute_policy = get_compute_policy_by_id(cloudapi_client,
                                                      compute_policy_id)
        except CloudDirectorClientError as err:
            raise CseClusterError(f"could not retrieve Compute Policy with "
                                  f"ID '{compute_policy_id}': {err}")
        result[compute_policy_id] = compute_policy['name']
    return result


def get_vcd_ke_config(entity_service: DefinedEntityService,
                      vcd_ke_config_version: str,
                      retrieve_machine_health_check_info: bool) -> VcdKeConfig:  # noqa: E501
    """Read the relevant settings of the CSE Server configuration RDE.

    :param str vcd_ke_config_version: version of the VCDKEConfig RDE type
    :param bool retrieve_machine_health_check_info: also read the Machine
        Health Check settings

    :raises CseClusterError: if the configuration is missing or malformed
    """
    try:
        entities = entity_service.get_entities_by_name(
            VCDKE_CONFIG_VENDOR, VCDKE_CONFIG_NAMESPACE,
            vcd_ke_config_version, VCDKE_CONFIG_NAME)
    except CloudDirectorClientError as err:
        if not is_not_found_error(err):
            raise
        entities = []
    if len(entities) != 1:
        raise CseClusterError(
            f"expected exactly one VCDKEConfig RDE with version "
            f"'{vcd_ke_config_version}', but got {len(entities)}")

    profiles = (entities[0].entity or {}).get('profiles')
    if not isinstance(profiles, list):
        raise CseClusterError("wrong format of VCDKEConfig RDE contents, "
                              "expected a 'profiles' array")
    if not profiles:
        raise CseClusterError("wrong format of VCDKEConfig RDE contents, "
                              "expected a non-empty 'profiles' element")

    result = VcdKeConfig()
    # /tkg is needed even in air-gapped environments
    result.container_registry_url = \
        f"{profiles[0].get('containerRegistryUrl')}/tkg"

    k8s_config = profiles[0].get('K8Config')
    if not isinstance(k8s_config, dict):
        raise CseClusterError("wrong format of VCDKEConfig RDE contents, "
                              "expected a 'K8Config' object")
    result.base64_certificates = [
        base64.b64encode(certificate.encode('utf-8')).decode('ascii')
        for certificate in k8s_config.get('certificateAuthorities') or []]

    if retrieve_machine_health_check_info:
        mhc = k8s_config.get('mhc')
        if not mhc:
            # Clusters are created without Machine Health Check then
            return result
        result.max_unhealthy_nodes_percentage = \
            float(mhc.get('maxUnhealthyNodes') or 0)
        result.node_startup_timeout = str(mhc.get('nodeStartupTimeout') or '')  # noqa: E501
        result.node_not_ready_timeout = \
            str(mhc.get('nodeNotReadyTimeout') or '')
        result.node_unknown_timeout = str(mhc.get('nodeUnknownTimeout') or '')  # noqa: E501
    return result


def cluster_settings_to_internal(cloudapi_client: CloudApiClient,
                                 entity_service: DefinedEntityService,
                                 settings: CseClusterSettings,
                                 org_name: str) -> CseClusterSettingsInternal:  # noqa: E501
    """Transform validated user settings into what CSE understands.

    IDs of VDC, network, OVA, compute policies and storage profiles are
    resolved to names, and the TKG versions, the RDE type and the CSE
    Server configuration are retrieved.

    :raises CseClusterError: if the settings are invalid or any item can't
        be retrieved
    """
    settings.validate()
    client = cloudapi_client.vcd_client
    output = CseClusterSettingsInternal(organization_name=org_name)

    try:
        vdc = get_xml_resource_by_id(client, 'vdc', settings.vdc_id)
    except vcd_e.VcdException as err:
        raise CseClusterError(f"could not retrieve the VDC with ID "
                              f"'{settings.vdc_id}': {err}")
    output.vdc_name = vdc.get('name')

    try:
        vapp_template = get_vapp_template_by_id(
            client, settings.kubernetes_template_ova_id)
    except vcd_e.VcdException as err:
        raise CseClusterError(
            f"could not retrieve the Kubernetes Template OVA with ID "
            f"'{settings.kubernetes_template_ova_id}': {err}")
    output.kubernetes_template_ova_name = vapp_template.get('name')
    try:
        output.tkg_version_bundle = \
            get_tkg_version_bundle_from_vapp_template(vapp_template)
    except CseClusterError as err:
        raise CseClusterError(f"could not retrieve the required information "
                              f"from the Kubernetes Template OVA: {err}")
    try:
        output.catalog_name = get_vapp_template_catalog_name(client,
                                                             vapp_template)
    except (CseClusterError, vcd_e.VcdException) as err:
        raise CseClusterError(
            f"could not retrieve the Catalog name where the the Kubernetes "
            f"Template OVA '{settings.kubernetes_template_ova_id}' "
            f"({output.kubernetes_template_ova_name}) is hosted: {err}")

    try:
        network = get_org_vdc_network_by_id(cloudapi_client,
                                            settings.network_id)
    except CloudDirectorClientError as err:
        raise CseClusterError(f"could not retrieve the Org VDC Network with "
                              f"ID '{settings.network_id}': {err}")
    output.network_name = network['name']

    components_versions = get_cse_components_versions(settings.cse_version)
    output.rde_type = entity_service.get_entity_type(
        CSE_KUBERNETES_CLUSTER_VENDOR, CSE_KUBERNETES_CLUSTER_NAMESPACE,
        components_versions.capvcd_rde_type_version)

    compute_policy_ids = []
    storage_profile_ids = []
    for worker_pool in settings.worker_pools:
        compute_policy_ids += [worker_pool.sizing_policy_id,
                               worker_pool.placement_policy_id,
                               worker_pool.vgpu_policy_id]
        storage_profile_ids.append(worker_pool.storage_profile_id)
    control_plane = settings.control_plane
    compute_policy_ids += [control_plane.sizing_policy_id,
                           control_plane.placement_policy_id]
    storage_profile_ids.append(control_plane.storage_profile_id)
    if settings.default_storage_class is not None:
        storage_profile_ids.append(
            settings.default_storage_class.storage_profile_id)
    names = id_to_names(cloudapi_client, compute_policy_ids,
                        storage_profile_ids)

    output.worker_pools = [
        CseWorkerPoolSettingsInternal(
            name=worker_pool.name,
            machine_count=worker_pool.machine_count,
            disk_size_gi=worker_pool.disk_size_gi,
            sizing_policy_name=names[worker_pool.sizing_policy_id],
            placement_policy_name=names[worker_pool.placement_policy_id],
            vgpu_policy_name=names[worker_pool.vgpu_policy_id],
            storage_profile_name=names[worker_pool.storage_profile_id])
        for worker_pool in settings.worker_pools]
    output.control_plane = CseControlPlaneSettingsInternal(
        machine_count=control_plane.machine_count,
        disk_size_gi=control_plane.disk_size_gi,
        sizing_policy_name=names[control_plane.sizing_policy_id],
        placement_policy_name=names[control_plane.placement_policy_id],
        storage_profile_name=names[control_plane.storage_profile_id],
        ip=control_plane.ip or '')

    storage_class = settings.default_storage_class
    if storage_class is not None:
        output.default_storage_class = CseDefaultStorageClassInternal(
            storage_profile_name=names[storage_class.storage_profile_id],
            name=storage_class.name,
            use_delete_reclaim_policy=storage_class.reclaim_policy == ReclaimPolicy.DELETE.value,  # noqa: E501
            filesystem=storage_class.filesystem)

    output.vcd_ke_config = get_vcd_ke_config(
        entity_service, components_versions.vcd_ke_config_rde_type_version,
        settings.node_health_check)

    output.owner = settings.owner
    if not output.owner:
        output.owner = client.get_vcloud_session().get('user')
    output.vcd_url = get_vcd_url(client)

    output.api_token = settings.api_token
    output.auto_repair_on_errors = settings.auto_repair_on_errors
    output.cse_version = settings.cse_version
    output.name = settings.name
    output.pod_cidr = settings.pod_cidr
    output.service_cidr = settings.service_cidr
    output.ssh_public_key = settings.ssh_public_key or ''
    output.virtual_ip_subnet = settings.virtual_ip_subnet or ''
    return output


def wait_until_cluster_is_provisioned(entity_service: DefinedEntityService,
                                      cluster_id: str, timeout_seconds=0,
                                      poll_seconds=CLUSTER_STATE_POLL_SEC):
    """Wait for a cluster to be in 'provisioned' state.

    A cluster in 'error' state is only waited for if it has auto repair on
    errors enabled, as CSE keeps trying to fix it then.

    :param int timeout_seconds: 0 waits forever

    :return: the cluster RDE once provisioned

    :rtype: cloud_director_client.rde.models.DefinedEntity

    :raises CseClusterError: if the cluster fails and can't be repaired
    :raises CseClusterTimeoutError: if the timeout is reached
    """
    start = time.monotonic()
    elapsed = 0
    state = ''
    while timeout_seconds == 0 or elapsed <= timeout_seconds:
        entity = entity_service.get_entity(cluster_id)
        contents = entity.entity or {}
        state = get_value_at_path(contents, 'status.vcdKe.state', '')
        if state == ClusterState.PROVISIONED.value:
            return entity
        if state == ClusterState.ERROR.value and \
                not get_value_at_path(contents, 'spec.vcdKe.autoRepairOnErrors', False):  # noqa: E501
            errors = ''
            for event in get_value_at_path(contents, 'status.capvcd.errorSet', []):  # noqa: E501
                detail = get_value_at_path(
                    event, 'additionalDetails.Detailed Error', '')
                errors += f"{detail},\n"
            raise CseClusterError(
                f"got an error and 'AutoRepairOnErrors' is disabled, "
                f"aborting. Error events:\n{errors}", cluster_id=cluster_id)

        LOGGER.debug(f"Cluster '{cluster_id}' is in '{state}' state, will "
                     f"check again in {poll_seconds} seconds")
        elapsed = time.monotonic() - start
        time.sleep(poll_seconds)
    raise CseClusterTimeoutError(
        f"timeout of {timeout_seconds} seconds reached, latest cluster state "
        f"obtained was '{state}'", cluster_id=cluster_id)
