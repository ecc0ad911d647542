# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import itertools
from unittest import mock

from lxml import objectify
import pytest
from pyvcloud.vcd.client import ResourceType
import pyvcloud.vcd.exceptions as vcd_e

import cloud_director_client.cse.cse_util as cse_util
from cloud_director_client.cse.cse_types import CseDefaultStorageClassSettings
from cloud_director_client.exception.exceptions import CseClusterError
from cloud_director_client.exception.exceptions import CseClusterTimeoutError
from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.exception.exceptions import OpenApiRequestError
import cloud_director_client.lib.cloudapi.generic_crud as crud
from cloud_director_client.rde.models import DefinedEntity
from cloud_director_client.rde.models import DefinedEntityType

from conftest import CLUSTER_ID
from conftest import NETWORK_ID
from conftest import OVA_ID
from conftest import SIZING_MEDIUM_ID
from conftest import SIZING_SMALL_ID
from conftest import STORAGE_PROFILE_ID
from conftest import VCD_HOST
from conftest import VDC_ID

OVA_VERSION = 'v1.26.8+vmware.1-tkg.1-b8c57a6c8c98d227f74e7b1a9eef27st'
OVA_UUID = '11112222-3333-4444-5555-666677778888'


def _vapp_template(properties=None, with_vm=True, with_product=True):
    """Build a vApp template resource as pyvcloud reads it."""
    product_section = ''
    if with_product:
        product_section = '<ovf:ProductSection>'
        for key, value in (properties or {}).items():
            product_section += f'<ovf:Property ovf:key="{key}" ' \
                               f'ovf:value="{value}"/>'
        product_section += '</ovf:ProductSection>'
    children = ''
    if with_vm:
        children = f'<Children><Vm name="node">{product_section}</Vm>' \
                   f'</Children>'
    return objectify.fromstring(
        f'<VAppTemplate xmlns="http://www.vmware.com/vcloud/v1.5" '
        f'xmlns:ovf="http://schemas.dmtf.org/ovf/envelope/1" '
        f'name="ubuntu-2004-kube-v1.26.8" '
        f'id="urn:vcloud:vapptemplate:{OVA_UUID}" '
        f'href="{VCD_HOST}/api/vAppTemplate/vappTemplate-{OVA_UUID}">'
        f'{children}</VAppTemplate>')


def _records(*attributes):
    return [mock.Mock(get=attribute.get) for attribute in attributes]


@pytest.fixture
def entity_service():
    return mock.Mock()


@pytest.fixture
def vcd_ke_config_entity():
    return DefinedEntity(name='vcdKeConfig', entity={
        'profiles': [{
            'containerRegistryUrl': 'projects.registry.vmware.com',
            'K8Config': {
                'certificateAuthorities': ['cert-1'],
                'mhc': {
                    'maxUnhealthyNodes': 100,
                    'nodeStartupTimeout': '900',
                    'nodeNotReadyTimeout': '300',
                    'nodeUnknownTimeout': '200'
                }
            }
        }]
    })


def test_get_value_at_path():
    data = {'status': {'vcdKe': {'state': 'provisioned', 'empty': None},
                       'list': [1]}}
    assert cse_util.get_value_at_path(data, 'status.vcdKe.state') == \
        'provisioned'
    assert cse_util.get_value_at_path(data, 'status.vcdKe.empty', '') == ''
    assert cse_util.get_value_at_path(data, 'status.list.x', 'd') == 'd'
    assert cse_util.get_value_at_path(None, 'status') is None


def test_tkg_version_bundle_from_vapp_template():
    vapp_template = _vapp_template({'VENDOR': 'VMware',
                                    'VERSION': OVA_VERSION})

    bundle = cse_util.get_tkg_version_bundle_from_vapp_template(vapp_template)

    assert bundle.kubernetes_version == 'v1.26.8+vmware.1'
    assert bundle.tkr_version == 'v1.26.8---vmware.1-tkg.1'
    assert bundle.tkg_version == 'v2.4.0'
    assert bundle.etcd_version == 'v3.5.6_vmware.20'
    assert bundle.core_dns_version == 'v1.10.1_vmware.7'


@pytest.mark.parametrize('vapp_template, message', [
    (None, 'is None'),
    (_vapp_template(with_vm=False), "doesn't have any child VM"),
    (_vapp_template(with_product=False), 'Product section'),
    (_vapp_template({'VENDOR': 'VMware'}), 'could not find any VERSION'),
    (_vapp_template({'VERSION': 'v1.10.0+vmware.1-tkg.1-abc'}),
     'is not supported'),
])
def test_tkg_version_bundle_errors(vapp_template, message):
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.get_tkg_version_bundle_from_vapp_template(vapp_template)
    assert message in str(excinfo.value)


def test_every_tkg_version_is_complete():
    for ova_id, versions in cse_util.load_tkg_versions().items():
        assert ova_id.startswith('v')
        assert set(versions) == {'tkr', 'tkg', 'etcd', 'coreDns'}


def test_get_vapp_template_by_id(vcd_client):
    cse_util.get_vapp_template_by_id(vcd_client, OVA_ID)
    vcd_client.get_resource.assert_called_once_with(
        f"{VCD_HOST}/api/vAppTemplate/vappTemplate-{OVA_UUID}")


def test_query_vapp_templates(vcd_client):
    vcd_client.get_typed_query.return_value.execute.return_value = iter(
        _records({'name': 'a'}))

    records = cse_util.query_vapp_templates(vcd_client, qfilter='name==a')

    assert len(records) == 1
    args, kwargs = vcd_client.get_typed_query.call_args
    assert args == (ResourceType.ADMIN_VAPP_TEMPLATE.value,)
    assert kwargs['qfilter'] == 'name==a'

    vcd_client.is_sysadmin.return_value = False
    cse_util.query_vapp_templates(vcd_client)
    assert vcd_client.get_typed_query.call_args[0] == \
        (ResourceType.VAPP_TEMPLATE.value,)


def test_get_vapp_template_catalog_name(vcd_client):
    vcd_client.get_typed_query.return_value.execute.return_value = _records(
        {'href': f"{VCD_HOST}/api/vAppTemplate/vappTemplate-"
                 f"00000000-0000-4000-8000-000000000000",
         'catalogName': 'other'},
        {'href': f"{VCD_HOST}/api/vAppTemplate/vappTemplate-{OVA_UUID}",
         'catalogName': 'tkgm-catalog'})

    assert cse_util.get_vapp_template_catalog_name(
        vcd_client, _vapp_template()) == 'tkgm-catalog'
    assert vcd_client.get_typed_query.call_args[1]['qfilter'] == \
        'name==ubuntu-2004-kube-v1.26.8'

    vcd_client.get_typed_query.return_value.execute.return_value = []
    with pytest.raises(CseClusterError):
        cse_util.get_vapp_template_catalog_name(vcd_client, _vapp_template())


def test_get_vdc_id_by_name(vcd_client):
    query = vcd_client.get_typed_query.return_value
    query.execute.return_value = _records(
        {'href': f"{VCD_HOST}/api/vdc/8c9f7d6e-5b4a-4321-9abc-def012345678"})

    assert cse_util.get_vdc_id_by_name(vcd_client, 'vdc1') == VDC_ID
    assert vcd_client.get_typed_query.call_args[1]['equality_filter'] == \
        ('name', 'vdc1')

    query.execute.return_value = []
    with pytest.raises(CseClusterError):
        cse_util.get_vdc_id_by_name(vcd_client, 'vdc1')


def test_get_storage_profiles_by_vdc_id(vcd_client):
    vcd_client.get_typed_query.return_value.execute.return_value = _records(
        {'name': '*',
         'href': f"{VCD_HOST}/api/vdcStorageProfile/"
                 f"bbbb0000-0000-4000-8000-000000000001"})

    assert cse_util.get_storage_profiles_by_vdc_id(vcd_client, VDC_ID) == \
        {'*': STORAGE_PROFILE_ID}
    args, kwargs = vcd_client.get_typed_query.call_args
    assert args == (ResourceType.ADMIN_ORG_VDC_STORAGE_PROFILE.value,)
    assert kwargs['equality_filter'] == (
        'vdc', f"{VCD_HOST}/api/vdc/8c9f7d6e-5b4a-4321-9abc-def012345678")


def test_get_org_vdc_network_id(cloudapi_client, monkeypatch):
    get_all = mock.Mock(return_value=[{'id': NETWORK_ID, 'name': 'net1'}])
    monkeypatch.setattr(crud, 'get_all_inner_entities', get_all)

    assert cse_util.get_org_vdc_network_id(cloudapi_client, 'net1',
                                           VDC_ID) == NETWORK_ID
    config = get_all.call_args[0][1]
    assert config.endpoint == '1.0.0/orgVdcNetworks/'
    assert config.query_parameters == {
        'filter': f"name==net1;ownerRef.id=={VDC_ID}"}

    get_all.return_value = []
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.get_org_vdc_network_id(cloudapi_client, 'net1', VDC_ID)
    assert 'but got 0' in str(excinfo.value)


def test_id_to_names(cloudapi_client, monkeypatch, compute_policies):
    """
    Verifies that every distinct id is resolved once, and unset ids to ''
    """
    get_xml_resource = mock.Mock(return_value={'name': 'gold'})
    monkeypatch.setattr(cse_util, 'get_xml_resource_by_id', get_xml_resource)
    policies_by_id = {policy['id']: policy for policy in compute_policies}
    get_policy = mock.Mock(
        side_effect=lambda _, policy_id: policies_by_id[policy_id])
    monkeypatch.setattr(cse_util, 'get_compute_policy_by_id', get_policy)

    names = cse_util.id_to_names(
        cloudapi_client,
        [SIZING_SMALL_ID, None, SIZING_MEDIUM_ID, SIZING_SMALL_ID, ''],
        [STORAGE_PROFILE_ID, STORAGE_PROFILE_ID])

    assert names == {'': '', None: '', SIZING_SMALL_ID: 'TKG small',
                     SIZING_MEDIUM_ID: 'TKG medium',
                     STORAGE_PROFILE_ID: 'gold'}
    assert get_policy.call_count == 2
    get_xml_resource.assert_called_once_with(
        cloudapi_client.vcd_client, 'vdcStorageProfile', STORAGE_PROFILE_ID)


def test_id_to_names_errors(cloudapi_client, monkeypatch):
    monkeypatch.setattr(cse_util, 'get_xml_resource_by_id',
                        mock.Mock(side_effect=vcd_e.VcdException('denied')))
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.id_to_names(cloudapi_client, [], [STORAGE_PROFILE_ID])
    assert 'could not retrieve Storage Profile' in str(excinfo.value)

    monkeypatch.setattr(cse_util, 'get_compute_policy_by_id',
                        mock.Mock(side_effect=EntityNotFoundError()))
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.id_to_names(cloudapi_client, [SIZING_SMALL_ID], [])
    assert 'could not retrieve Compute Policy' in str(excinfo.value)


def test_get_vcd_ke_config(entity_service, vcd_ke_config_entity):
    entity_service.get_entities_by_name.return_value = [vcd_ke_config_entity]

    config = cse_util.get_vcd_ke_config(entity_service, '1.1.0', True)

    assert config.container_registry_url == \
        'projects.registry.vmware.com/tkg'
    assert config.base64_certificates == ['Y2VydC0x']
    assert config.max_unhealthy_nodes_percentage == 100.0
    assert config.node_startup_timeout == '900'
    assert config.node_not_ready_timeout == '300'
    assert config.node_unknown_timeout == '200'
    entity_service.get_entities_by_name.assert_called_once_with(
        'vmware', 'VCDKEConfig', '1.1.0', 'vcdKeConfig')


def test_get_vcd_ke_config_without_machine_health_check(entity_service,
                                                        vcd_ke_config_entity):  # noqa: E501
    entity_service.get_entities_by_name.return_value = [vcd_ke_config_entity]
    config = cse_util.get_vcd_ke_config(entity_service, '1.1.0', False)
    assert not config.has_machine_health_check()

    del vcd_ke_config_entity.entity['profiles'][0]['K8Config']['mhc']
    config = cse_util.get_vcd_ke_config(entity_service, '1.1.0', True)
    assert not config.has_machine_health_check()


def test_get_vcd_ke_config_errors(entity_service, vcd_ke_config_entity):
    entity_service.get_entities_by_name.side_effect = EntityNotFoundError()
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.get_vcd_ke_config(entity_service, '1.1.0', True)
    assert 'but got 0' in str(excinfo.value)

    entity_service.get_entities_by_name.side_effect = OpenApiRequestError(
        500, 'internal error')
    with pytest.raises(OpenApiRequestError):
        cse_util.get_vcd_ke_config(entity_service, '1.1.0', True)

    entity_service.get_entities_by_name.side_effect = None
    entity_service.get_entities_by_name.return_value = [
        DefinedEntity(entity={'profiles': []})]
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.get_vcd_ke_config(entity_service, '1.1.0', True)
    assert "non-empty 'profiles'" in str(excinfo.value)


def test_cluster_settings_to_internal(cloudapi_client, cluster_settings,
                                      monkeypatch, tkg_bundle, vcd_ke_config):
    monkeypatch.setattr(cse_util, 'get_xml_resource_by_id',
                        mock.Mock(return_value={'name': 'vdc1'}))
    monkeypatch.setattr(cse_util, 'get_vapp_template_by_id',
                        mock.Mock(return_value=_vapp_template()))
    monkeypatch.setattr(cse_util, 'get_tkg_version_bundle_from_vapp_template',
                        mock.Mock(return_value=tkg_bundle))
    monkeypatch.setattr(cse_util, 'get_vapp_template_catalog_name',
                        mock.Mock(return_value='tkgm-catalog'))
    monkeypatch.setattr(cse_util, 'get_org_vdc_network_by_id',
                        mock.Mock(return_value={'name': 'net1'}))
    monkeypatch.setattr(cse_util, 'id_to_names', mock.Mock(return_value={
        '': '', None: '', SIZING_SMALL_ID: 'TKG small',
        SIZING_MEDIUM_ID: 'TKG medium', STORAGE_PROFILE_ID: '*'}))
    get_vcd_ke_config = mock.Mock(return_value=vcd_ke_config)
    monkeypatch.setattr(cse_util, 'get_vcd_ke_config', get_vcd_ke_config)
    entity_service = mock.Mock()
    rde_type = DefinedEntityType(name='CAPVCD', vendor='vmware',
                                 nss='capvcdCluster', version='1.3.0')
    entity_service.get_entity_type.return_value = rde_type
    cloudapi_client.vcd_client.get_vcloud_session.return_value = \
        {'user': 'admin'}
    cluster_settings.default_storage_class = CseDefaultStorageClassSettings(
        storage_profile_id=STORAGE_PROFILE_ID, name='sc-1',
        reclaim_policy='retain', filesystem='xfs')

    internal = cse_util.cluster_settings_to_internal(
        cloudapi_client, entity_service, cluster_settings, 'tenant1')

    assert internal.organization_name == 'tenant1'
    assert internal.vdc_name == 'vdc1'
    assert internal.network_name == 'net1'
    assert internal.kubernetes_template_ova_name == 'ubuntu-2004-kube-v1.26.8'
    assert internal.catalog_name == 'tkgm-catalog'
    assert internal.tkg_version_bundle is tkg_bundle
    assert internal.rde_type is rde_type
    assert internal.control_plane.sizing_policy_name == 'TKG small'
    assert internal.control_plane.placement_policy_name == ''
    assert internal.worker_pools[0].sizing_policy_name == 'TKG medium'
    assert internal.worker_pools[0].storage_profile_name == '*'
    assert internal.default_storage_class.use_delete_reclaim_policy is False
    assert internal.default_storage_class.filesystem == 'xfs'
    assert internal.vcd_ke_config is vcd_ke_config
    assert internal.owner == 'admin'
    assert internal.vcd_url == VCD_HOST
    entity_service.get_entity_type.assert_called_once_with(
        'vmware', 'capvcdCluster', '1.3.0')
    get_vcd_ke_config.assert_called_once_with(entity_service, '1.1.0', False)


def test_cluster_settings_to_internal_missing_vdc(cloudapi_client,
                                                  cluster_settings,
                                                  monkeypatch):
    monkeypatch.setattr(
        cse_util, 'get_xml_resource_by_id',
        mock.Mock(side_effect=vcd_e.EntityNotFoundException('no vdc')))
    with pytest.raises(CseClusterError) as excinfo:
        cse_util.cluster_settings_to_internal(cloudapi_client, mock.Mock(),
                                              cluster_settings, 'tenant1')
    assert f"could not retrieve the VDC with ID '{VDC_ID}'" in \
        str(excinfo.value)


def _cluster_entity(state, auto_repair=False, errors=None):
    return DefinedEntity(id=CLUSTER_ID, entity={
        'spec': {'vcdKe': {'autoRepairOnErrors': auto_repair}},
        'status': {'vcdKe': {'state': state},
                   'capvcd': {'errorSet': errors or []}}
    })


@pytest.fixture
def fake_time(monkeypatch):
    """Fixture of a clock that moves 6 seconds every time it is read."""
    fake = mock.Mock()
    fake.monotonic.side_effect = itertools.count(0, 6)
    monkeypatch.setattr(cse_util, 'time', fake)
    return fake


def test_wait_until_cluster_is_provisioned(entity_service, fake_time):
    provisioned = _cluster_entity('provisioned')
    entity_service.get_entity.side_effect = [
        _cluster_entity('creation_in_progress'),
        _cluster_entity('error', auto_repair=True),
        provisioned]

    assert cse_util.wait_until_cluster_is_provisioned(
        entity_service, CLUSTER_ID, poll_seconds=5) is provisioned
    assert fake_time.sleep.call_args_list == [mock.call(5), mock.call(5)]


def test_wait_until_cluster_fails(entity_service, fake_time):
    """
    Verifies that errors are fatal unless the cluster repairs itself
    """
    entity_service.get_entity.return_value = _cluster_entity(
        'error', errors=[
            {'name': 'ScriptFailure',
             'additionalDetails': {'Detailed Error': 'script failed'}},
            {'name': 'VMError'}])

    with pytest.raises(CseClusterError) as excinfo:
        cse_util.wait_until_cluster_is_provisioned(entity_service,
                                                   CLUSTER_ID)
    assert excinfo.value.cluster_id == CLUSTER_ID
    assert 'script failed,\n' in str(excinfo.value)
    fake_time.sleep.assert_not_called()


def test_wait_until_cluster_times_out(entity_service, fake_time):
    entity_service.get_entity.return_value = _cluster_entity(
        'creation_in_progress')

    with pytest.raises(CseClusterTimeoutError) as excinfo:
        cse_util.wait_until_cluster_is_provisioned(
            entity_service, CLUSTER_ID, timeout_seconds=10)
    assert "latest cluster state obtained was 'creation_in_progress'" in \
        str(excinfo.value)
    assert entity_service.get_entity.call_count == 2
