# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Rendering of the CAPI YAML and of the cluster RDE payload.

Templates are plain str.format templates, stored per CSE version under
the templates package, e.g. templates/v4_1/capiyaml_cluster.tmpl.
Releases with an unchanged CAPI YAML share the templates of an earlier
release. Optional YAML blocks are rendered here and injected as a whole,
already indented.
"""

import base64

from cloud_director_client.cse.constants import CAPVCD_API_VERSION
from cloud_director_client.cse.constants import CAPVCD_KIND
from cloud_director_client.cse.constants import CseTemplateName
from cloud_director_client.cse.constants import MINIMUM_CSE_VERSION
from cloud_director_client.cse.constants import SHARED_TEMPLATE_VERSIONS
from cloud_director_client.cse.constants import TARGET_NAMESPACE_SUFFIX
from cloud_director_client.cse.constants import TEMPLATES_PACKAGE
from cloud_director_client.cse.cse_types import CseClusterSettingsInternal
from cloud_director_client.cse.cse_types import parse_semantic_version
from cloud_director_client.cse.cse_types import VcdKeConfig
from cloud_director_client.common.utils.script_utils import get_package_file_contents  # noqa: E501
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.logging.logger import CLIENT_LOGGER

CONTROL_PLANE_PORT = 6443


def get_cse_template(cse_version, template_name) -> str:
    """Read the template of a CSE version.

    The template is looked up for 'major.minor.patch' first, then for
    'major.minor', then for the release 'major.minor' shares templates
    with.

    :param cse_version: semantic_version.Version or str
    :param CseTemplateName template_name:

    :raises CseClusterError: if CSE is too old or there is no template
    """
    template_name = CseTemplateName(template_name).value
    try:
        version = parse_semantic_version(cse_version)
    except ValueError as err:
        raise CseClusterError(f"could not read the CSE version "
                              f"'{cse_version}': {err}")
    minimum_version = parse_semantic_version(MINIMUM_CSE_VERSION)
    if version < minimum_version:
        raise CseClusterError(f"the Container Service minimum version is "
                              f"'{minimum_version}'")

    filename = f"{template_name}.tmpl"
    minor_release = f"{version.major}.{version.minor}"
    directories = [f"v{version.major}_{version.minor}_{version.patch}",
                   f"v{version.major}_{version.minor}"]
    shared_release = SHARED_TEMPLATE_VERSIONS.get(minor_release)
    if shared_release:
        directories.append(f"v{shared_release.replace('.', '_')}")
    for directory in directories:
        try:
            return get_package_file_contents(
                f"{TEMPLATES_PACKAGE}.{directory}", filename)
        except (ImportError, FileNotFoundError):
            continue
    raise CseClusterError(f"could not read template '{filename}' for CSE "
                          f"version {version}")


def _indent_lines(lines, indent: int) -> str:
    return '\n'.join(' ' * indent + line for line in lines)


def _control_plane_endpoint_block(ip) -> str:
    if not ip:
        return ''
    return _indent_lines(['controlPlaneEndpoint:',
                          f'  host: "{ip}"',
                          f'  port: {CONTROL_PLANE_PORT}'], 2)


def _load_balancer_config_block(virtual_ip_subnet) -> str:
    if not virtual_ip_subnet:
        return ''
    return _indent_lines(['loadBalancerConfigSpec:',
                          f'  vipSubnet: "{virtual_ip_subnet}"'], 2)


def _certificates_block(base64_certificates, indent: int) -> str:
    """Files with the trusted CA certificates, and the command to install them."""  # noqa: E501
    if not base64_certificates:
        return ''
    lines = ['files:']
    for i, certificate in enumerate(base64_certificates):
        lines += [f'  - path: /etc/ssl/certs/custom_certificate_{i}.crt',
                  '    owner: root',
                  f'    content: "{certificate}"',
                  '    encoding: base64',
                  '    permissions: "0644"']
    lines += ['preKubeadmCommands:',
              '  - mv /etc/ssl/certs/custom_certificate_*.crt '
              '/usr/local/share/ca-certificates && update-ca-certificates']
    return _indent_lines(lines, indent)


def _to_base64(value: str) -> str:
    return base64.b64encode((value or '').encode('utf-8')).decode('ascii')


def generate_worker_pools_yaml(settings: CseClusterSettingsInternal) -> str:
    """Render the YAML documents of every worker pool in the settings.

    Pools are separated with '---', with no separator after the last one.

    :raises CseClusterError: if a pool has both a Placement and a vGPU
        policy
    """
    template = get_cse_template(settings.cse_version,
                                CseTemplateName.WORKER_POOL)
    rendered_pools = []
    for worker_pool in settings.worker_pools:
        if worker_pool.placement_policy_name and worker_pool.vgpu_policy_name:  # noqa: E501
            raise CseClusterError(
                f"the worker pool '{worker_pool.name}' should have either a "
                f"Placement Policy or a vGPU Policy, not both")
        # A vGPU policy is a placement policy for CAPVCD
        placement_policy = worker_pool.placement_policy_name
        if worker_pool.vgpu_policy_name:
            placement_policy = worker_pool.vgpu_policy_name

        rendered_pools.append(template.format(
            ClusterName=settings.name,
            NodePoolName=worker_pool.name,
            TargetNamespace=settings.name + TARGET_NAMESPACE_SUFFIX,
            Catalog=settings.catalog_name,
            VAppTemplate=settings.kubernetes_template_ova_name,
            NodePoolSizingPolicy=worker_pool.sizing_policy_name or '',
            NodePoolPlacementPolicy=placement_policy or '',
            NodePoolStorageProfile=worker_pool.storage_profile_name or '',
            NodePoolDiskSize=f"{worker_pool.disk_size_gi}Gi",
            NodePoolEnableGpu=str(bool(worker_pool.vgpu_policy_name)).lower(),  # noqa: E501
            NodePoolMachineCount=worker_pool.machine_count,
            KubernetesVersion=settings.tkg_version_bundle.kubernetes_version) + '\n')  # noqa: E501
    return '---\n'.join(rendered_pools)


def generate_machine_health_check_yaml(vcd_ke_config: VcdKeConfig,
                                       cse_version, cluster_name: str) -> str:
    """Render the MachineHealthCheck document of a cluster.

    :return: the YAML document, or an empty string when the CSE Server
        has no Machine Health Check settings
    """
    if vcd_ke_config is None or not vcd_ke_config.has_machine_health_check():
        return ''
    template = get_cse_template(cse_version,
                                CseTemplateName.MACHINE_HEALTH_CHECK)

    def _seconds(timeout):
        # Values may come with the seconds suffix already
        return f"{str(timeout or '').replace('s', '')}s"

    return template.format(
        ClusterName=cluster_name,
        TargetNamespace=cluster_name + TARGET_NAMESPACE_SUFFIX,
        MaxUnhealthyNodePercentage=f"{vcd_ke_config.max_unhealthy_nodes_percentage:.0f}%",  # noqa: E501
        NodeStartupTimeout=_seconds(vcd_ke_config.node_startup_timeout),
        NodeUnknownTimeout=_seconds(vcd_ke_config.node_unknown_timeout),
        NodeNotReadyTimeout=_seconds(vcd_ke_config.node_not_ready_timeout)) + '\n'  # noqa: E501


def generate_capi_yaml(settings: CseClusterSettingsInternal) -> str:
    """Render the full CAPI YAML of a new cluster.

    Documents are ordered as Machine Health Check (if any), worker pools
    and finally the cluster documents.
    """
    cluster_template = get_cse_template(settings.cse_version,
                                        CseTemplateName.CLUSTER)
    worker_pools_yaml = generate_worker_pools_yaml(settings)
    machine_health_check_yaml = generate_machine_health_check_yaml(
        settings.vcd_ke_config, settings.cse_version, settings.name)

    tkg_bundle = settings.tkg_version_bundle
    control_plane = settings.control_plane
    certificates = settings.vcd_ke_config.base64_certificates
    cluster_yaml = cluster_template.format(
        ClusterName=settings.name,
        TargetNamespace=settings.name + TARGET_NAMESPACE_SUFFIX,
        TkrVersion=tkg_bundle.tkr_version,
        TkgVersion=tkg_bundle.tkg_version,
        UsernameB64=_to_base64(settings.owner),
        ApiTokenB64=_to_base64(settings.api_token),
        PodCidr=settings.pod_cidr,
        ServiceCidr=settings.service_cidr,
        VcdSite=settings.vcd_url,
        Org=settings.organization_name,
        OrgVdc=settings.vdc_name,
        OrgVdcNetwork=settings.network_name,
        Catalog=settings.catalog_name,
        VAppTemplate=settings.kubernetes_template_ova_name,
        ControlPlaneSizingPolicy=control_plane.sizing_policy_name or '',
        ControlPlanePlacementPolicy=control_plane.placement_policy_name or '',  # noqa: E501
        ControlPlaneStorageProfile=control_plane.storage_profile_name or '',
        ControlPlaneDiskSize=f"{control_plane.disk_size_gi}Gi",
        ControlPlaneMachineCount=control_plane.machine_count,
        ControlPlaneEndpointBlock=_control_plane_endpoint_block(control_plane.ip),  # noqa: E501
        LoadBalancerConfigBlock=_load_balancer_config_block(settings.virtual_ip_subnet),  # noqa: E501
        ControlPlaneCertificatesBlock=_certificates_block(certificates, 4),
        WorkerCertificatesBlock=_certificates_block(certificates, 6),
        DnsVersion=tkg_bundle.core_dns_version,
        EtcdVersion=tkg_bundle.etcd_version,
        ContainerRegistryUrl=settings.vcd_ke_config.container_registry_url,
        KubernetesVersion=tkg_bundle.kubernetes_version,
        SshPublicKey=settings.ssh_public_key or '')

    capi_yaml = ''
    if machine_health_check_yaml:
        capi_yaml += f"{machine_health_check_yaml}\n---\n"
    capi_yaml += f"{worker_pools_yaml}\n---\n{cluster_yaml}"
    CLIENT_LOGGER.debug(f"Generated CAPI YAML for cluster '{settings.name}' "
                        f"with {len(settings.worker_pools)} worker pools")
    return capi_yaml


def get_cluster_creation_payload(settings: CseClusterSettingsInternal) -> dict:  # noqa: E501
    """Get the contents of the RDE that triggers the cluster creation.

    :rtype: dict
    """
    vcd_ke = {
        'isVCDKECluster': True,
        'markForDelete': False,
        'forceDelete': False,
        'autoRepairOnErrors': settings.auto_repair_on_errors,
    }
    storage_class = settings.default_storage_class
    if storage_class.storage_profile_name:
        vcd_ke['defaultStorageClassOptions'] = {
            'filesystem': storage_class.filesystem,
            'k8sStorageClassName': storage_class.name,
            'vcdStorageProfileName': storage_class.storage_profile_name,
            'useDeleteReclaimPolicy': storage_class.use_delete_reclaim_policy
        }
    vcd_ke['secure'] = {'apiToken': settings.api_token}

    return {
        'apiVersion': CAPVCD_API_VERSION,
        'kind': CAPVCD_KIND,
        'name': settings.name,
        'metadata': {
            'name': settings.name,
            'orgName': settings.organization_name,
            'site': settings.vcd_url,
            'virtualDataCenterName': settings.vdc_name
        },
        'spec': {
            'vcdKe': vcd_ke,
            'capiYaml': generate_capi_yaml(settings)
        }
    }
