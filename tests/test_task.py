# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from unittest import mock

from lxml import objectify
import pytest

from cloud_director_client.exception.exceptions import TaskError
from cloud_director_client.lib.cloudapi.task import Task

TASK_HREF = 'https://vcd.example.com/api/task/4f5e6d7c'


def _task_xml(status, children=''):
    return objectify.fromstring(
        f'<Task xmlns="http://www.vmware.com/vcloud/v1.5" '
        f'status="{status}" href="{TASK_HREF}">{children}</Task>')


def test_wait_task_completion(no_sleep):
    client = mock.Mock()
    client.get_resource.side_effect = [_task_xml('queued'),
                                       _task_xml('running'),
                                       _task_xml('success')]
    task = Task(client, TASK_HREF)

    task.wait_task_completion(delay=2)

    assert task.status == 'success'
    assert client.get_resource.call_count == 3
    no_sleep.assert_called_with(2)


def test_wait_inspect_task_completion_calls_back(no_sleep):
    client = mock.Mock()
    client.get_resource.side_effect = [_task_xml('running'),
                                       _task_xml('success')]
    inspection = mock.Mock()

    Task(client, TASK_HREF).wait_inspect_task_completion(inspection, 0)

    assert inspection.call_count == 2
    first_call, last_call = inspection.call_args_list
    assert first_call[0][1:2] == (1,)
    assert first_call[0][3:] == (True, False)
    assert last_call[0][3:] == (False, True)


def test_failed_task(no_sleep):
    """
    Verifies that error and aborted tasks raise with their description
    """
    client = mock.Mock()
    client.get_resource.return_value = _task_xml(
        'error', '<Error message="quota exceeded"/>')
    with pytest.raises(TaskError) as excinfo:
        Task(client, TASK_HREF).wait_task_completion()
    assert 'quota exceeded' in str(excinfo.value)

    client.get_resource.return_value = _task_xml(
        'aborted', '<Description>aborted by user</Description>')
    with pytest.raises(TaskError) as excinfo:
        Task(client, TASK_HREF).wait_task_completion()
    assert 'aborted by user' in str(excinfo.value)


def test_empty_task():
    with pytest.raises(TaskError):
        Task(mock.Mock(), '').refresh()


def test_refresh_error_is_wrapped():
    client = mock.Mock()
    client.get_resource.side_effect = RuntimeError('connection reset')
    with pytest.raises(TaskError) as excinfo:
        Task(client, TASK_HREF).refresh()
    assert 'connection reset' in str(excinfo.value)


def test_owner_id_and_result():
    client = mock.Mock()
    client.get_resource.return_value = _task_xml(
        'success',
        '<Owner href="https://vcd.example.com/api/vdc/8c9f7d6e"/>'
        '<Result><ResultContent>{"a": 1}</ResultContent></Result>')
    task = Task(client, TASK_HREF)

    assert task.owner_id == '8c9f7d6e'
    assert task.get_result_content() == '{"a": 1}'


def test_task_progress():
    client = mock.Mock()
    client.get_resource.return_value = _task_xml(
        'running', '<Progress>40</Progress>')
    assert Task(client, TASK_HREF).get_task_progress() == '40'

    client.get_resource.return_value = _task_xml('error')
    with pytest.raises(TaskError):
        Task(client, TASK_HREF).get_task_progress()
