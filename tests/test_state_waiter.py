# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from unittest import mock

import pytest
import requests

from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.exception.exceptions import EntityStateError
from cloud_director_client.exception.exceptions import EntityStateTimeoutError
from cloud_director_client.exception.exceptions import GenericCrudError
from cloud_director_client.exception.exceptions import OpenApiConnectionError  # noqa: E501
from cloud_director_client.lib.cloudapi.state_waiter import get_status_phase
from cloud_director_client.lib.cloudapi.state_waiter import wait_for_entity_state  # noqa: E501

URL = 'https://vcd.example.com/cloudapi/1.0.0/ipSpaces/urn:1'


def _client(*get_item_results):
    client = mock.Mock()
    client.get_api_version.return_value = '37.2'
    client.state_wait_timeout_seconds = 3600
    client.state_wait_delay_seconds = 5
    client.get_item.side_effect = list(get_item_results)
    return client


def test_get_status_phase():
    assert get_status_phase({'status': {'phase': 'ready'}}) == 'ready'
    assert get_status_phase({'state': 'REALIZED'}) == 'REALIZED'
    assert get_status_phase({'status': 'ignored', 'state': 'x'}) == 'x'
    assert get_status_phase(None) == ''


def test_reaches_target_state(no_sleep):
    client = _client({'status': {'phase': 'pending'}},
                     {'status': {'phase': 'Pending'}},
                     {'status': {'phase': 'ready'}})

    entity = wait_for_entity_state(client, 'IP Space', URL, ['PENDING'],
                                   ['READY'], delay=1, poll_interval=2,
                                   min_timeout=1)

    assert entity == {'status': {'phase': 'ready'}}
    assert client.get_item.call_count == 3
    client.get_item.assert_called_with(URL, '37.2')
    assert no_sleep.call_args_list == [mock.call(1), mock.call(2),
                                       mock.call(2)]


def test_missing_entity_is_deleted(no_sleep):
    """
    Verifies that a 404 during the wait means the entity is DELETED
    """
    not_found = GenericCrudError('IP Space', '1.0.0/ipSpaces/', 'gone')
    not_found.__cause__ = EntityNotFoundError()
    client = _client({'status': {'phase': 'deleting'}}, not_found)

    entity = wait_for_entity_state(client, 'IP Space', URL, ['DELETING'],
                                   ['DELETED'], api_version='37.0', delay=0)

    assert entity is None
    client.get_item.assert_called_with(URL, '37.0')


def test_error_state_is_fatal(no_sleep):
    client = _client({'status': {'phase': 'error'}})
    with pytest.raises(EntityStateError) as excinfo:
        wait_for_entity_state(client, 'IP Space', URL, ['PENDING', 'ERROR'],
                              ['READY'], delay=0)
    assert excinfo.value.last_state == 'ERROR'


def test_unexpected_state(no_sleep):
    client = _client({'status': {'phase': 'updating'}})
    with pytest.raises(EntityStateError) as excinfo:
        wait_for_entity_state(client, 'IP Space', URL, ['PENDING'],
                              ['READY'], delay=0)
    assert "unexpected state 'UPDATING'" in str(excinfo.value)


def test_read_error(no_sleep):
    client = _client(CloudDirectorClientError('connection refused'))
    with pytest.raises(EntityStateError) as excinfo:
        wait_for_entity_state(client, 'IP Space', URL, ['PENDING'],
                              ['READY'], delay=0)
    assert not isinstance(excinfo.value, EntityStateTimeoutError)
    assert 'connection refused' in str(excinfo.value)


def test_timeout(no_sleep):
    client = _client({'status': {'phase': 'pending'}})
    with pytest.raises(EntityStateTimeoutError) as excinfo:
        wait_for_entity_state(client, 'IP Space', URL, ['PENDING'],
                              ['READY'], timeout=0, delay=0)
    assert excinfo.value.last_state == 'PENDING'
    assert 'timeout of 0 seconds reached after 1 attempts' in \
        str(excinfo.value)


def test_defaults_come_from_the_client(no_sleep):
    """
    Verifies that timeout and delays configured on the client are used
    """
    client = _client({'status': {'phase': 'pending'}},
                     {'status': {'phase': 'ready'}})
    client.state_wait_delay_seconds = 2

    wait_for_entity_state(client, 'IP Space', URL, ['PENDING'], ['READY'],
                          min_timeout=1)
    assert no_sleep.call_args_list == [mock.call(2), mock.call(2)]

    client = _client({'status': {'phase': 'pending'}})
    client.state_wait_timeout_seconds = 0
    with pytest.raises(EntityStateTimeoutError) as excinfo:
        wait_for_entity_state(client, 'IP Space', URL, ['PENDING'],
                              ['READY'])
    assert 'timeout of 0 seconds' in str(excinfo.value)


def test_connection_error(cloudapi_client, monkeypatch, no_sleep):
    """
    Verifies that a VCD that can't be reached ends the wait with an error
    """
    monkeypatch.setattr(requests, 'request', mock.Mock(
        side_effect=requests.ConnectionError('connection refused')))

    with pytest.raises(EntityStateError) as excinfo:
        wait_for_entity_state(cloudapi_client, 'IP Space', URL, ['PENDING'],
                              ['READY'], delay=0)

    assert 'connection refused' in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, OpenApiConnectionError)
    assert isinstance(excinfo.value.__cause__.__cause__,
                      requests.ConnectionError)
