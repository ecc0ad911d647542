# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""
conftest.py is used by pytest to automatically find shared fixtures.

Fixtures defined here can be used without importing. No fixture talks to a
real VCD, HTTP calls and the pyvcloud client are mocked.
"""
import json
from unittest import mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict
import semantic_version

from cloud_director_client.cse.cse_template import generate_capi_yaml
from cloud_director_client.cse.cse_types import CseClusterSettings
from cloud_director_client.cse.cse_types import CseClusterSettingsInternal
from cloud_director_client.cse.cse_types import CseControlPlaneSettings
from cloud_director_client.cse.cse_types import CseControlPlaneSettingsInternal
from cloud_director_client.cse.cse_types import CseDefaultStorageClassInternal
from cloud_director_client.cse.cse_types import CseDefaultStorageClassSettings
from cloud_director_client.cse.cse_types import CseWorkerPoolSettings
from cloud_director_client.cse.cse_types import CseWorkerPoolSettingsInternal
from cloud_director_client.cse.cse_types import TkgVersionBundle
from cloud_director_client.cse.cse_types import VcdKeConfig
from cloud_director_client.lib.cloudapi.cloudapi_client import CloudApiClient  # noqa: E501
from cloud_director_client.rde.models import DefinedEntity
from cloud_director_client.rde.models import OpenApiReference

VCD_HOST = 'https://vcd.example.com'
CLOUDAPI_URL = f"{VCD_HOST}/cloudapi/"
SUPPORTED_VERSIONS = ['33.0', '34.0', '35.0', '36.0', '37.0', '37.1', '37.2']

ORG_ID = 'urn:vcloud:org:3bbd1a50-0aaf-4d6a-b8c4-a6a2c8d0e4f1'
VDC_ID = 'urn:vcloud:vdc:8c9f7d6e-5b4a-4321-9abc-def012345678'
NETWORK_ID = 'urn:vcloud:network:0a1b2c3d-4e5f-4a6b-8c7d-9e0f1a2b3c4d'
OVA_ID = 'urn:vcloud:vapptemplate:11112222-3333-4444-5555-666677778888'
SIZING_SMALL_ID = 'urn:vcloud:vdcComputePolicy:aaaa0000-0000-4000-8000-000000000001'  # noqa: E501
SIZING_MEDIUM_ID = 'urn:vcloud:vdcComputePolicy:aaaa0000-0000-4000-8000-000000000002'  # noqa: E501
STORAGE_PROFILE_ID = 'urn:vcloud:vdcstorageProfile:bbbb0000-0000-4000-8000-000000000001'  # noqa: E501
CLUSTER_ID = 'urn:vcloud:entity:vmware:capvcdCluster:cccc0000-0000-4000-8000-000000000001'  # noqa: E501
CLUSTER_TYPE_ID = 'urn:vcloud:type:vmware:capvcdCluster:1.3.0'
CLUSTER_NAME = 'test-cluster'


def make_response(status_code=200, body=None, headers=None,
                  url=CLOUDAPI_URL):
    """Build a requests.Response as VCD would answer it."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.encoding = 'utf-8'
    response.headers = CaseInsensitiveDict(headers or {})
    if body is None:
        response._content = b''
    elif isinstance(body, str):
        response._content = body.encode('utf-8')
    else:
        response._content = json.dumps(body).encode('utf-8')
    response.request = mock.Mock(headers={}, body=None)
    return response


@pytest.fixture
def vcd_client():
    """Fixture of a logged in pyvcloud client, mocked."""
    client = mock.MagicMock()
    client.get_api_uri.return_value = f"{VCD_HOST}/api"
    client.get_supported_versions_list.return_value = SUPPORTED_VERSIONS
    client.is_sysadmin.return_value = True
    return client


@pytest.fixture
def cloudapi_client(vcd_client):
    """Fixture of a real CloudApiClient whose HTTP calls must be patched.

    Usage: patch 'requests.request' to serve the responses of the test.
    """
    return CloudApiClient(base_url=CLOUDAPI_URL,
                          token='legacy-token',
                          api_version='37.2',
                          vcd_client=vcd_client,
                          supported_versions=SUPPORTED_VERSIONS,
                          task_poll_seconds=0)


@pytest.fixture
def fake_requests(monkeypatch):
    """Fixture to serve canned responses to every HTTP request.

    Usage: append responses to the returned mock 'responses' list, in the
        order they are requested. Calls are recorded in the mock.
    """
    fake = mock.Mock()
    fake.responses = []

    def _request(method, url, **kwargs):
        fake(method, url, **kwargs)
        return fake.responses.pop(0)

    monkeypatch.setattr(requests, 'request', _request)
    return fake


@pytest.fixture
def no_sleep(monkeypatch):
    """Fixture to skip every time.sleep call."""
    sleep = mock.Mock()
    monkeypatch.setattr('time.sleep', sleep)
    return sleep


@pytest.fixture
def tkg_bundle():
    return TkgVersionBundle(etcd_version='v3.5.6_vmware.20',
                            core_dns_version='v1.10.1_vmware.7',
                            tkg_version='v2.4.0',
                            tkr_version='v1.26.8---vmware.1-tkg.1',
                            kubernetes_version='v1.26.8+vmware.1')


@pytest.fixture
def vcd_ke_config():
    """Fixture of a CSE Server configuration with Machine Health Check."""
    return VcdKeConfig(max_unhealthy_nodes_percentage=100.0,
                       node_startup_timeout='900',
                       node_not_ready_timeout='300',
                       node_unknown_timeout='200s',
                       container_registry_url='projects.registry.vmware.com/tkg')  # noqa: E501


@pytest.fixture
def internal_settings(tkg_bundle, vcd_ke_config):
    """Fixture of cluster settings with every ID already resolved."""
    return CseClusterSettingsInternal(
        cse_version=semantic_version.Version('4.2.1'),
        name=CLUSTER_NAME,
        organization_name='tenant1',
        vdc_name='vdc1',
        network_name='net1',
        kubernetes_template_ova_name='ubuntu-2004-kube-v1.26.8',
        tkg_version_bundle=tkg_bundle,
        catalog_name='tkgm-catalog',
        control_plane=CseControlPlaneSettingsInternal(
            machine_count=1, disk_size_gi=20, sizing_policy_name='TKG small',
            storage_profile_name='*'),
        worker_pools=[CseWorkerPoolSettingsInternal(
            name='worker-pool-1', machine_count=2, disk_size_gi=40,
            sizing_policy_name='TKG medium', storage_profile_name='*')],
        default_storage_class=CseDefaultStorageClassInternal(
            storage_profile_name='*', name='sc-1',
            use_delete_reclaim_policy=True, filesystem='ext4'),
        vcd_ke_config=vcd_ke_config,
        owner='admin',
        api_token='secret-token',
        vcd_url=VCD_HOST,
        pod_cidr='100.96.0.0/11',
        service_cidr='100.64.0.0/13')


@pytest.fixture
def capi_yaml(internal_settings):
    """Fixture of the CAPI YAML of a cluster, rendered from the templates."""
    return generate_capi_yaml(internal_settings)


@pytest.fixture
def cluster_settings():
    """Fixture of valid user settings for a new cluster."""
    return CseClusterSettings(
        cse_version=semantic_version.Version('4.2.1'),
        name=CLUSTER_NAME,
        organization_id=ORG_ID,
        vdc_id=VDC_ID,
        network_id=NETWORK_ID,
        kubernetes_template_ova_id=OVA_ID,
        control_plane=CseControlPlaneSettings(
            machine_count=1, disk_size_gi=20,
            sizing_policy_id=SIZING_SMALL_ID,
            storage_profile_id=STORAGE_PROFILE_ID),
        worker_pools=[CseWorkerPoolSettings(
            name='worker-pool-1', machine_count=2, disk_size_gi=40,
            sizing_policy_id=SIZING_MEDIUM_ID,
            storage_profile_id=STORAGE_PROFILE_ID)],
        default_storage_class=CseDefaultStorageClassSettings(
            storage_profile_id=STORAGE_PROFILE_ID, name='sc-1',
            reclaim_policy='delete', filesystem='ext4'),
        api_token='secret-token',
        pod_cidr='100.96.0.0/11',
        service_cidr='100.64.0.0/13')


@pytest.fixture
def cluster_rde(capi_yaml):
    """Fixture of the RDE of a provisioned cluster."""
    contents = {
        'apiVersion': 'capvcd.vmware.com/v1.1',
        'kind': 'CAPVCDCluster',
        'spec': {
            'vcdKe': {
                'isVCDKECluster': True,
                'markForDelete': False,
                'forceDelete': False,
                'autoRepairOnErrors': True,
                'defaultStorageClassOptions': {
                    'filesystem': 'ext4',
                    'k8sStorageClassName': 'sc-1',
                    'vcdStorageProfileName': '*',
                    'useDeleteReclaimPolicy': True
                }
            },
            'capiYaml': capi_yaml
        },
        'status': {
            'vcdKe': {
                'state': 'provisioned',
                'vcdKeVersion': '4.2.1',
                'eventSet': [{
                    'name': 'ClusterAvailable',
                    'occurredAt': '2024-01-31T10:20:30.123456789Z',
                    'additionalDetails': {
                        'Detailed Event': 'cluster is available'
                    }
                }]
            },
            'capvcd': {
                'capvcdVersion': '1.2.0',
                'clusterResourceSetBindings': [{'name': 'cpi'},
                                               {'name': 'csi'}],
                'clusterApiStatus': {
                    'apiEndpoints': [{'host': '10.10.0.2', 'port': 6443}]
                },
                'vcdProperties': {
                    'organizations': [{'id': ORG_ID, 'name': 'tenant1'}],
                    'orgVdcs': [{'id': VDC_ID, 'name': 'vdc1',
                                 'ovdcNetworkName': 'net1'}]
                },
                'eventSet': [{
                    'name': 'ControlPlaneUp',
                    'occurredAt': '2024-01-31T10:00:00Z'
                }]
            },
            'cpi': {'version': '1.5.0'},
            'csi': {'version': '1.5.0'}
        }
    }
    return DefinedEntity(name=CLUSTER_NAME,
                         entity=contents,
                         id=CLUSTER_ID,
                         entityType=CLUSTER_TYPE_ID,
                         state='RESOLVED',
                         owner=OpenApiReference(name='admin'),
                         org=OpenApiReference(name='tenant1', id=ORG_ID),
                         etag='"etag-1"')


@pytest.fixture
def compute_policies():
    """Fixture of the VDC compute policies, as read from OpenAPI."""
    return [
        {'id': SIZING_SMALL_ID, 'name': 'TKG small', 'isSizingOnly': True},
        {'id': SIZING_MEDIUM_ID, 'name': 'TKG medium', 'isSizingOnly': True},
        {'id': 'urn:vcloud:vdcComputePolicy:aaaa0000-0000-4000-8000-000000000003',  # noqa: E501
         'name': 'gpu-policy', 'isSizingOnly': False, 'isVgpuPolicy': True},
    ]
