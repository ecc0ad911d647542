# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from typing import Optional

from pyvcloud.vcd import client as vcd_client
import requests

from cloud_director_client.common.utils.core_utils import extract_id_from_href
from cloud_director_client.common.utils.core_utils import str_to_bool
from cloud_director_client.config.client_config import ClientConfig
from cloud_director_client.lib.cloudapi import cloudapi_client as cloud_api_client  # noqa: E501
from cloud_director_client.logging.logger import CLIENT_CLOUDAPI_WIRE_LOGGER
from cloud_director_client.logging.logger import CLIENT_LOGGER
from cloud_director_client.logging.logger import CLIENT_PYVCLOUD_WIRELOG_FILEPATH  # noqa: E501
from cloud_director_client.logging.logger import NULL_LOGGER


def _new_vcd_client(host: str, api_version: Optional[str], verify: bool,
                    log_wire: bool):
    if not verify:
        requests.packages.urllib3.disable_warnings()
    log_filename = None
    if log_wire:
        log_filename = CLIENT_PYVCLOUD_WIRELOG_FILEPATH

    return vcd_client.Client(
        uri=host,
        api_version=api_version,
        verify_ssl_certs=verify,
        log_file=log_filename,
        log_requests=log_wire,
        log_headers=log_wire,
        log_bodies=log_wire)


def connect_vcd_client(config: ClientConfig):
    """Log in to VCD with the credentials of the config.

    :param ClientConfig config: validated client config

    :return: logged in pyvcloud client

    :rtype: pyvcloud.vcd.client.Client
    """
    log_wire = str_to_bool(config.get_value_at('vcd.log'))
    client = _new_vcd_client(config.get_value_at('vcd.host'),
                             config.get_value_at('vcd.api_version'),
                             config.get_value_at('vcd.verify'),
                             log_wire)
    credentials = vcd_client.BasicLoginCredentials(
        config.get_value_at('vcd.username'),
        config.get_value_at('vcd.org'),
        config.get_value_at('vcd.password'))
    client.set_credentials(credentials)
    CLIENT_LOGGER.info(f"Connected to VCD {config.get_value_at('vcd.host')} "
                       f"as {config.get_value_at('vcd.username')}@"
                       f"{config.get_value_at('vcd.org')}")
    return client


def connect_vcd_user_via_token(host: str,
                               auth_token: str,
                               is_jwt_token: bool,
                               api_version: Optional[str] = None,
                               verify_ssl_certs: bool = True,
                               log_wire: bool = False):
    """Rehydrate a VCD session from an existing token.

    :rtype: pyvcloud.vcd.client.Client
    """
    client = _new_vcd_client(host, api_version, verify_ssl_certs, log_wire)
    client.rehydrate_from_token(auth_token, is_jwt_token)
    return client


def get_cloudapi_client_from_vcd_client(client: vcd_client.Client,
                                        logger_debug=NULL_LOGGER,
                                        logger_wire=NULL_LOGGER,
                                        config: Optional[ClientConfig] = None):
    """Build an OpenAPI client sharing the session of a pyvcloud client.

    :param pyvcloud.vcd.client.Client client: logged in client
    :param logging.Logger logger_debug:
    :param logging.Logger logger_wire: logger for OpenAPI wire logs, the
        config can turn it on with 'client.log_wire'
    :param ClientConfig config: optional config for page size, task polling
        and entity state waits

    :rtype: cloud_director_client.lib.cloudapi.cloudapi_client.CloudApiClient
    """
    token = client.get_access_token()
    is_jwt = True
    if not token:
        token = client.get_xvcloud_authorization_token()
        is_jwt = False

    extra_kwargs = {}
    if config is not None:
        if str_to_bool(config.get_value_at('client.log_wire')):
            logger_wire = CLIENT_CLOUDAPI_WIRE_LOGGER
        extra_kwargs['default_page_size'] = \
            config.get_value_at('client.default_page_size')
        extra_kwargs['task_poll_seconds'] = \
            config.get_value_at('client.task_poll_seconds')
        extra_kwargs['state_wait_timeout_seconds'] = \
            config.get_value_at('client.state_wait_timeout_seconds')
        extra_kwargs['state_wait_delay_seconds'] = \
            config.get_value_at('client.state_wait_delay_seconds')

    return cloud_api_client.CloudApiClient(
        base_url=client.get_cloudapi_uri(),
        token=token,
        is_jwt_token=is_jwt,
        api_version=client.get_api_version(),
        logger_debug=logger_debug,
        logger_wire=logger_wire,
        verify_ssl=client._verify_ssl_certs,
        is_sys_admin=client.is_sysadmin(),
        vcd_client=client,
        **extra_kwargs)


def get_xml_resource_by_id(client: vcd_client.Client, resource_type: str,
                           resource_id: str):
    """Read a legacy XML API resource, e.g. 'org' or 'vdc', by its id.

    :param str resource_type: path of the resource under /api
    :param str resource_id: uuid or URN of the resource

    :rtype: lxml.objectify.ObjectifiedElement
    """
    uuid = extract_id_from_href(resource_id).split(':')[-1]
    return client.get_resource(f"{client.get_api_uri()}/{resource_type}/{uuid}")  # noqa: E501


def get_vcd_url(client: vcd_client.Client) -> str:
    """Get the base url of VCD, e.g. https://vcd.vmware.com."""
    api_uri = client.get_api_uri()
    if api_uri.endswith('/api'):
        api_uri = api_uri[:-len('/api')]
    return api_uri
