# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from datetime import datetime
from datetime import timedelta
import time

from cloud_director_client.common.constants.shared_constants import DEFAULT_STATE_WAIT_MIN_TIMEOUT_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DELETED_STATE  # noqa: E501
from cloud_director_client.common.constants.shared_constants import ERROR_STATE  # noqa: E501
from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import EntityStateError
from cloud_director_client.exception.exceptions import EntityStateTimeoutError
from cloud_director_client.exception.exceptions import is_not_found_error
from cloud_director_client.logging.logger import NULL_LOGGER


def get_status_phase(entity):
    """Read the state of an entity from 'status.phase', or 'state'."""
    if not entity:
        return ''
    status = entity.get('status')
    if isinstance(status, dict):
        return status.get('phase') or ''
    return entity.get('state') or ''


def wait_for_entity_state(client,
                          entity_label,
                          url,
                          pending_states,
                          target_states,
                          api_version=None,
                          timeout=None,
                          delay=None,
                          poll_interval=None,
                          min_timeout=DEFAULT_STATE_WAIT_MIN_TIMEOUT_SEC,
                          state_getter=get_status_phase,
                          logger_debug=NULL_LOGGER):
    """Poll an entity until its state becomes one of `target_states`.

    A missing entity (HTTP 404 or not found) is reported as state DELETED,
    so waiting for a deletion means waiting for DELETED. States are compared
    upper cased.

    :param CloudApiClient client: client used for GET requests
    :param str entity_label: friendly name of the entity for messages
    :param str url: absolute url of the entity
    :param list pending_states: states in which polling goes on
    :param list target_states: states that end the wait
    :param str api_version: API version of the GET requests, defaults to
        the API version of the client
    :param int timeout: seconds before giving up, defaults to
        client.state_wait_timeout_seconds (1 hour)
    :param int delay: seconds to wait before the first poll, defaults to
        client.state_wait_delay_seconds (5 seconds)
    :param int poll_interval: seconds between polls, defaults to
        client.state_wait_delay_seconds (5 seconds)
    :param int min_timeout: minimum number of seconds between polls
    :param callable state_getter: reads the state out of the entity
    :param logging.Logger logger_debug:

    :return: the entity in its target state, None if it was deleted

    :rtype: dict

    :raises EntityStateError: if the entity reaches ERROR or an unexpected
        state, or if it can't be read
    :raises EntityStateTimeoutError: if the timeout is reached
    """
    pending = [state.upper() for state in pending_states]
    target = [state.upper() for state in target_states]
    if api_version is None:
        api_version = client.get_api_version()
    if timeout is None:
        timeout = client.state_wait_timeout_seconds
    if delay is None:
        delay = client.state_wait_delay_seconds
    if poll_interval is None:
        poll_interval = client.state_wait_delay_seconds
    interval = max(poll_interval, min_timeout)
    end_time = datetime.now() + timedelta(seconds=timeout)

    logger_debug.debug(f"Waiting for {entity_label} at {url} to reach "
                       f"states {target}")
    if delay:
        time.sleep(delay)

    step = 0
    state = ''
    while True:
        step += 1
        entity = None
        try:
            entity = client.get_item(url, api_version)
            state = str(state_getter(entity)).upper()
        except CloudDirectorClientError as err:
            if not is_not_found_error(err) and '404' not in str(err):
                raise EntityStateError(
                    f"error retrieving {entity_label} {url} state: {err}",
                    last_state=state) from err
            state = DELETED_STATE

        logger_debug.debug(f"{entity_label} {url} state at step {step} is "
                           f"'{state}'")
        if state == ERROR_STATE:
            raise EntityStateError(
                f"{entity_label} {url} is in an {ERROR_STATE} state",
                last_state=state)
        if state in target:
            return entity
        if state not in pending:
            raise EntityStateError(
                f"unexpected state '{state}' for {entity_label} {url}, "
                f"expected one of {pending + target}",
                last_state=state)

        if datetime.now() + timedelta(seconds=interval) > end_time:
            raise EntityStateTimeoutError(
                f"error waiting entity {entity_label} state to transition "
                f"from '{','.join(pending)}' to '{','.join(target)}': "
                f"timeout of {timeout} seconds reached after {step} "
                "attempts",
                last_state=state)
        time.sleep(interval)
