# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Patching of the multi document Cluster API (CAPI) YAML of a cluster.

The CAPI YAML is stored in the cluster RDE, under spec.capiYaml, and CSE
reconciles the cluster every time it changes. Documents are handled as
plain dicts, as loaded by PyYAML.
"""

import pyvcloud.vcd.exceptions as vcd_e
import yaml

from cloud_director_client.cse.constants import CapiKind
from cloud_director_client.cse.cse_template import generate_machine_health_check_yaml  # noqa: E501
from cloud_director_client.cse.cse_template import generate_worker_pools_yaml
from cloud_director_client.cse.cse_types import CseClusterSettingsInternal
from cloud_director_client.cse.cse_types import CseWorkerPoolSettingsInternal
from cloud_director_client.cse.cse_types import TkgVersionBundle
from cloud_director_client.cse.cse_types import VcdKeConfig
from cloud_director_client.cse.cse_util import get_tkg_version_bundle_from_vapp_template  # noqa: E501
from cloud_director_client.cse.cse_util import get_value_at_path
from cloud_director_client.cse.cse_util import get_vapp_template_by_id
from cloud_director_client.cse.cse_util import get_vcd_ke_config
from cloud_director_client.cse.cse_util import id_to_names
from cloud_director_client.exception.exceptions import CapiYamlError
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.logging.logger import CLIENT_LOGGER as LOGGER


def traverse_map_and_get(data, path: str, expected_type=object):
    """Get the value of a nested dict following a dotted path.

    traverse_map_and_get(doc, 'spec.template.spec.template', str) returns
    doc['spec']['template']['spec']['template'], checking that every step
    exists and that the final value is a str.

    :param dict data: dict of dicts
    :param str path: keys separated by dots
    :param type expected_type: type of the value at the end of the path

    :raises CapiYamlError: if the path can't be followed or the value has
        another type
    """
    if data is None:
        raise CapiYamlError("the input is None")
    if not isinstance(data, dict):
        raise CapiYamlError(f"the input is a {type(data).__name__}, not a "
                            f"dict")
    if not data:
        raise CapiYamlError("the map is empty")

    keys = path.split('.')
    current = data
    for i, key in enumerate(keys):
        if key not in current:
            raise CapiYamlError(f"key '{key}' does not exist in input map")
        current = current[key]
        remaining = len(keys) - (i + 1)
        if remaining > 0 and not isinstance(current, dict):
            raise CapiYamlError(
                f"key '{key}' is a {type(current).__name__}, not a map, but "
                f"there are still {remaining} paths to explore")
    if not isinstance(current, expected_type):
        raise CapiYamlError(
            f"could not convert obtained type {type(current).__name__} to "
            f"requested {expected_type.__name__}")
    return current


def _set_at_path(doc: dict, path: str, value):
    """Set an existing value of a nested dict, following a dotted path."""
    parent_path, _, key = path.rpartition('.')
    parent = doc
    if parent_path:
        parent = traverse_map_and_get(doc, parent_path, dict)
    if key not in parent:
        raise CapiYamlError(f"key '{key}' does not exist in input map")
    parent[key] = value


def _documents_of_kind(docs, kind: CapiKind):
    return [doc for doc in docs if doc.get('kind') == kind.value]


def _document_name(doc: dict) -> str:
    return get_value_at_path(doc, 'metadata.name', '')


def unmarshal_multiple_yaml_documents(text: str) -> list:
    """Read a multi document YAML into a list of dicts.

    Empty documents are skipped.

    :raises CapiYamlError: if the YAML is malformed or a document is not a
        mapping
    """
    if not text or not text.strip():
        return []
    try:
        loaded = list(yaml.safe_load_all(text))
    except yaml.YAMLError as err:
        raise CapiYamlError(f"could not read the CAPI YAML: {err}")
    docs = []
    for doc in loaded:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise CapiYamlError(f"expected every CAPI YAML document to be a "
                                f"map, but got a {type(doc).__name__}")
        docs.append(doc)
    return docs


def marshal_multiple_yaml_documents(docs) -> str:
    """Write a list of dicts as a multi document YAML.

    Documents are separated with '---', with no separator after the last one.
    """
    try:
        rendered = [yaml.safe_dump(doc, default_flow_style=False,
                                   sort_keys=False) + '\n' for doc in docs]
    except yaml.YAMLError as err:
        raise CapiYamlError(f"could not write the CAPI YAML: {err}")
    return '---\n'.join(rendered)


def update_kubernetes_template_in_yaml(docs, ova_name: str,
                                       tkg_bundle: TkgVersionBundle = None):
    """Change the Kubernetes Template OVA used by every node of the cluster.

    With a TKG bundle, the Kubernetes, TKG, etcd and CoreDNS versions are
    updated as well.

    :raises CapiYamlError: if the documents are malformed or there is no
        VCDMachineTemplate
    """
    updated = False
    for doc in _documents_of_kind(docs, CapiKind.VCD_MACHINE_TEMPLATE):
        try:
            _set_at_path(doc, 'spec.template.spec.template', ova_name)
        except CapiYamlError as err:
            raise CapiYamlError(f"incorrect CAPI YAML: {err}")
        updated = True
    if not updated:
        raise CapiYamlError("could not find any template inside the "
                            "VCDMachineTemplate blocks in the CAPI YAML")
    if tkg_bundle is None:
        return

    paths_by_kind = {
        CapiKind.MACHINE_DEPLOYMENT.value: {
            'spec.template.spec.version': tkg_bundle.kubernetes_version
        },
        CapiKind.CLUSTER.value: {
            'metadata.annotations.TKGVERSION': tkg_bundle.tkg_version,
            'metadata.labels.tanzuKubernetesRelease': tkg_bundle.tkr_version
        },
        CapiKind.KUBEADM_CONTROL_PLANE.value: {
            'spec.version': tkg_bundle.kubernetes_version,
            'spec.kubeadmConfigSpec.clusterConfiguration.dns.imageTag':
                tkg_bundle.core_dns_version,
            'spec.kubeadmConfigSpec.clusterConfiguration.etcd.local.imageTag':
                tkg_bundle.etcd_version
        }
    }
    for doc in docs:
        for path, value in paths_by_kind.get(doc.get('kind'), {}).items():
            try:
                _set_at_path(doc, path, value)
            except CapiYamlError as err:
                raise CapiYamlError(f"incorrect CAPI YAML: {err}")


def update_control_plane_in_yaml(docs, machine_count: int):
    """Change the number of control plane nodes.

    :raises CapiYamlError: if the count is negative or there is no
        KubeadmControlPlane
    """
    if machine_count < 0:
        raise CapiYamlError(f"incorrect machine count for Control Plane: "
                            f"{machine_count}. Should be at least 0")
    updated = False
    for doc in _documents_of_kind(docs, CapiKind.KUBEADM_CONTROL_PLANE):
        try:
            _set_at_path(doc, 'spec.replicas', machine_count)
        except CapiYamlError as err:
            raise CapiYamlError(f"incorrect CAPI YAML: {err}")
        updated = True
    if not updated:
        raise CapiYamlError("could not find the KubeadmControlPlane object "
                            "in the YAML")


def update_worker_pools_in_yaml(docs, worker_pools: dict):
    """Change the number of nodes of existing worker pools.

    :param dict worker_pools: CseWorkerPoolUpdateInput by worker pool name

    :raises CapiYamlError: if a count is negative or a worker pool does not
        exist
    """
    for name, worker_pool in worker_pools.items():
        if worker_pool.machine_count < 0:
            raise CapiYamlError(
                f"incorrect machine count for worker pool {name}: "
                f"{worker_pool.machine_count}. Should be at least 0")
    updated = 0
    for doc in _documents_of_kind(docs, CapiKind.MACHINE_DEPLOYMENT):
        worker_pool = worker_pools.get(_document_name(doc))
        if worker_pool is None:
            continue
        try:
            _set_at_path(doc, 'spec.replicas', worker_pool.machine_count)
        except CapiYamlError as err:
            raise CapiYamlError(f"incorrect CAPI YAML: {err}")
        updated += 1
    if updated != len(worker_pools):
        raise CapiYamlError(f"could not update all the Node pools. Updated "
                            f"{updated}, expected {len(worker_pools)}")


def add_worker_pools_in_yaml(docs, cluster, new_worker_pools) -> list:
    """Render new worker pools and append them to the documents.

    Catalog, OVA and Kubernetes version are the ones of the existing nodes.

    :param cluster: the CseKubernetesCluster being updated
    :param list new_worker_pools: list of CseWorkerPoolSettings

    :return: the documents with the new worker pools

    :raises CseClusterError: if a policy or storage profile can't be read
    """
    if not new_worker_pools:
        return docs
    existing_names = {_document_name(doc) for doc in
                      _documents_of_kind(docs, CapiKind.MACHINE_DEPLOYMENT)}
    for worker_pool in new_worker_pools:
        if worker_pool.name in existing_names:
            raise CseClusterError(f"there is an existing worker pool with "
                                  f"name '{worker_pool.name}'")

    machine_templates = _documents_of_kind(docs,
                                           CapiKind.VCD_MACHINE_TEMPLATE)
    control_planes = _documents_of_kind(docs, CapiKind.KUBEADM_CONTROL_PLANE)
    if not machine_templates or not control_planes:
        raise CapiYamlError("could not find the VCDMachineTemplate and "
                            "KubeadmControlPlane objects in the YAML")
    try:
        catalog_name = traverse_map_and_get(
            machine_templates[0], 'spec.template.spec.catalog', str)
        ova_name = traverse_map_and_get(
            machine_templates[0], 'spec.template.spec.template', str)
        kubernetes_version = traverse_map_and_get(control_planes[0],
                                                  'spec.version', str)
    except CapiYamlError as err:
        raise CapiYamlError(f"incorrect CAPI YAML: {err}")

    compute_policy_ids = []
    storage_profile_ids = []
    for worker_pool in new_worker_pools:
        compute_policy_ids += [worker_pool.sizing_policy_id,
                               worker_pool.placement_policy_id,
                               worker_pool.vgpu_policy_id]
        storage_profile_ids.append(worker_pool.storage_profile_id)
    names = id_to_names(cluster.cloudapi_client, compute_policy_ids,
                        storage_profile_ids)

    settings = CseClusterSettingsInternal(
        cse_version=cluster.cse_version,
        name=cluster.name,
        catalog_name=catalog_name,
        kubernetes_template_ova_name=ova_name,
        tkg_version_bundle=TkgVersionBundle(
            kubernetes_version=kubernetes_version),
        worker_pools=[
            CseWorkerPoolSettingsInternal(
                name=worker_pool.name,
                machine_count=worker_pool.machine_count,
                disk_size_gi=worker_pool.disk_size_gi,
                sizing_policy_name=names[worker_pool.sizing_policy_id],
                placement_policy_name=names[worker_pool.placement_policy_id],
                vgpu_policy_name=names[worker_pool.vgpu_policy_id],
                storage_profile_name=names[worker_pool.storage_profile_id])
            for worker_pool in new_worker_pools])
    new_docs = unmarshal_multiple_yaml_documents(
        generate_worker_pools_yaml(settings))
    return docs + new_docs


def update_node_health_check_in_yaml(docs, cluster_name: str, cse_version,
                                     vcd_ke_config: VcdKeConfig) -> list:
    """Add or remove the MachineHealthCheck document.

    :param VcdKeConfig vcd_ke_config: Machine Health Check settings of the
        CSE Server, None to remove the document

    :return: the updated documents
    """
    machine_health_checks = _documents_of_kind(docs,
                                               CapiKind.MACHINE_HEALTH_CHECK)
    if vcd_ke_config is None:
        return [doc for doc in docs if
                doc.get('kind') != CapiKind.MACHINE_HEALTH_CHECK.value]
    if machine_health_checks:
        return docs
    machine_health_check_yaml = generate_machine_health_check_yaml(
        vcd_ke_config, cse_version, cluster_name)
    # CSE Server without Machine Health Check settings
    if not machine_health_check_yaml:
        return docs
    return docs + unmarshal_multiple_yaml_documents(machine_health_check_yaml)  # noqa: E501


def update_capi_yaml(cluster, update_input) -> str:
    """Apply the set fields of an update input to the CAPI YAML of a cluster.

    Fields left as None are not changed. If none is set, the CAPI YAML is
    returned as it is.

    :param cluster: the CseKubernetesCluster being updated
    :param CseClusterUpdateInput update_input: with vcd_ke_config_version,
        cluster_name and cse_version populated

    :return: the new CAPI YAML

    :rtype: str

    :raises CseClusterError: if an OVA, policy or configuration can't be read
    :raises CapiYamlError: if the CAPI YAML is malformed
    """
    capi_yaml = get_value_at_path(cluster.capvcd, 'spec.capiYaml', '')
    if update_input.kubernetes_template_ova_id is None and \
            update_input.control_plane is None and \
            update_input.worker_pools is None and \
            update_input.new_worker_pools is None and \
            update_input.node_health_check is None:
        return capi_yaml

    docs = unmarshal_multiple_yaml_documents(capi_yaml)

    if update_input.kubernetes_template_ova_id is not None:
        ova_id = update_input.kubernetes_template_ova_id
        try:
            vapp_template = get_vapp_template_by_id(
                cluster.cloudapi_client.vcd_client, ova_id)
        except vcd_e.VcdException as err:
            raise CseClusterError(f"could not retrieve the Kubernetes "
                                  f"Template OVA with ID '{ova_id}': {err}")
        tkg_bundle = get_tkg_version_bundle_from_vapp_template(vapp_template)
        if tkg_bundle.compare_tkg_version(cluster.tkg_version) < 0 or \
                not tkg_bundle.kubernetes_version_is_upgradeable_from(
                    cluster.kubernetes_version):
            raise CseClusterError(
                f"cannot perform an OVA change as the new one "
                f"'{vapp_template.get('name')}' has an older TKG/Kubernetes "
                f"version ({tkg_bundle.tkg_version}/"
                f"{tkg_bundle.kubernetes_version})")
        update_kubernetes_template_in_yaml(docs, vapp_template.get('name'),
                                           tkg_bundle)

    if update_input.control_plane is not None:
        update_control_plane_in_yaml(docs,
                                     update_input.control_plane.machine_count)

    if update_input.worker_pools is not None:
        update_worker_pools_in_yaml(docs, update_input.worker_pools)

    if update_input.new_worker_pools is not None:
        docs = add_worker_pools_in_yaml(docs, cluster,
                                        update_input.new_worker_pools)

    if update_input.node_health_check is not None:
        vcd_ke_config = None
        if update_input.node_health_check:
            vcd_ke_config = get_vcd_ke_config(
                cluster.entity_service, update_input.vcd_ke_config_version,
                True)
        docs = update_node_health_check_in_yaml(
            docs, update_input.cluster_name, update_input.cse_version,
            vcd_ke_config)

    LOGGER.debug(f"Updated CAPI YAML of cluster '{update_input.cluster_name}'"
                 f", it has {len(docs)} documents")
    return marshal_multiple_yaml_documents(docs)
