# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from copy import deepcopy
import json
import logging
import math

import requests

from cloud_director_client.common.constants.shared_constants import ContentType  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_OPENAPI_PAGE_SIZE  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_STATE_WAIT_DELAY_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_STATE_WAIT_TIMEOUT_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_TASK_POLL_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import HttpRequestHeader  # noqa: E501
from cloud_director_client.common.constants.shared_constants import HttpResponseHeader  # noqa: E501
from cloud_director_client.common.constants.shared_constants import MAX_LEGACY_TOKEN_LENGTH  # noqa: E501
from cloud_director_client.common.constants.shared_constants import MINIMUM_OPENAPI_VERSION  # noqa: E501
from cloud_director_client.common.constants.shared_constants import PaginationKey  # noqa: E501
from cloud_director_client.common.constants.shared_constants import RequestMethod  # noqa: E501
from cloud_director_client.common.utils.core_utils import copy_or_new_query_params  # noqa: E501
from cloud_director_client.exception.exception_handler import handle_openapi_exception  # noqa: E501
from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.exception.exceptions import OpenApiRequestError
from cloud_director_client.exception.exceptions import TaskError
from cloud_director_client.lib.cloudapi.api_version import ApiVersionNegotiator  # noqa: E501
from cloud_director_client.lib.cloudapi.constants import ResponseKeys
from cloud_director_client.lib.cloudapi.task import Task
from cloud_director_client.logging.logger import NULL_LOGGER


def find_rel_link(rel_name, headers):
    """Find the url of a link with a given relation in the Link header.

    VCD can merge several relations in one link, e.g. rel="lastPage nextPage"
    when the next page is also the last one.

    Sample Link header:
    <https://HOST/cloudapi/1.0.0/auditTrail?pageSize=25&page=7>;rel="lastPage";type="application/json",
    <https://HOST/cloudapi/1.0.0/auditTrail?pageSize=25&page=2>;rel="nextPage";type="application/json"

    :param str rel_name: relation to look for, e.g. 'nextPage'
    :param dict headers: response headers

    :return: url of the link or None if there is no such link

    :rtype: str
    """  # noqa: E501
    if not headers:
        return None
    unparsed_links = headers.get(HttpResponseHeader.LINK.value)
    if not unparsed_links:
        return None
    for link in requests.utils.parse_header_links(unparsed_links):
        rel = link.get(ResponseKeys.REL.value, '')
        if rel_name in rel.split():
            return link.get(ResponseKeys.URL.value)
    return None


class CloudApiClient(object):
    """REST based client for the VCD OpenAPI (/cloudapi) endpoints.

    Asynchronous operations answered with HTTP 202 are tracked through the
    XML task referenced by the Location header, using the pyvcloud client.
    """

    def __init__(self,
                 base_url: str,
                 token: str,
                 api_version: str,
                 logger_debug: logging.Logger = NULL_LOGGER,
                 logger_wire: logging.Logger = NULL_LOGGER,
                 verify_ssl: bool = True,
                 is_jwt_token: bool = False,
                 is_sys_admin: bool = False,
                 vcd_client=None,
                 supported_versions=None,
                 default_page_size: int = DEFAULT_OPENAPI_PAGE_SIZE,
                 task_poll_seconds: int = DEFAULT_TASK_POLL_SEC,
                 state_wait_timeout_seconds: int = DEFAULT_STATE_WAIT_TIMEOUT_SEC,  # noqa: E501
                 state_wait_delay_seconds: int = DEFAULT_STATE_WAIT_DELAY_SEC):
        if not base_url.endswith('/'):
            base_url += '/'
        self._base_url = base_url

        self._headers = {}
        if is_jwt_token or len(token) > MAX_LEGACY_TOKEN_LENGTH:
            self._headers[HttpRequestHeader.AUTHORIZATION.value] = \
                f"Bearer {token}"
            self._headers[HttpRequestHeader.X_VMWARE_VCLOUD_TOKEN_TYPE.value] = 'Bearer'  # noqa: E501
        else:
            self._headers[HttpRequestHeader.X_VCLOUD_AUTHORIZATION.value] = \
                token

        self._verify_ssl = verify_ssl
        self.LOGGER = logger_debug
        self.LOGGER_WIRE = logger_wire
        self.is_sys_admin = is_sys_admin
        self._api_version = api_version
        self._vcd_client = vcd_client
        self._default_page_size = default_page_size
        self._task_poll_seconds = task_poll_seconds
        # Defaults of the entity state waits made with this client
        self.state_wait_timeout_seconds = state_wait_timeout_seconds
        self.state_wait_delay_seconds = state_wait_delay_seconds

        fetcher = None
        if vcd_client is not None:
            fetcher = vcd_client.get_supported_versions_list
        self.version_negotiator = ApiVersionNegotiator(
            client_api_version=api_version,
            supported_versions=supported_versions,
            supported_versions_fetcher=fetcher,
            logger_debug=logger_debug)

    @property
    def vcd_client(self):
        return self._vcd_client

    def get_api_version(self):
        return self._api_version

    def build_endpoint(self, *parts):
        """Build an absolute OpenAPI url.

        build_endpoint('1.0.0/', 'entityTypes/') returns
        https://<vcd fqdn>/cloudapi/1.0.0/entityTypes/

        :rtype: str
        """
        return self._base_url + "".join(parts)

    def is_supported(self):
        """Check if VCD supports OpenAPI at all.

        :rtype: bool
        """
        return self.version_negotiator.vcd_max_version_is(
            f">= {MINIMUM_OPENAPI_VERSION}")

    def _ensure_openapi_supported(self):
        if not self.is_supported():
            raise CloudDirectorClientError(
                "OpenAPI is not supported on this VCD version")

    def _build_headers(self, api_version, additional_headers=None,
                       content_type=None):
        headers = deepcopy(self._headers)
        headers[HttpRequestHeader.ACCEPT.value] = \
            f"{ContentType.JSON.value};version={api_version}"
        if additional_headers:
            headers.update(additional_headers)
        if content_type:
            headers[HttpRequestHeader.CONTENT_TYPE.value] = content_type
        elif HttpRequestHeader.CONTENT_TYPE.value not in headers:
            headers[HttpRequestHeader.CONTENT_TYPE.value] = \
                ContentType.JSON.value
        return headers

    @handle_openapi_exception
    def _perform_request(self,
                         method: RequestMethod,
                         url: str,
                         api_version: str,
                         query_params=None,
                         payload=None,
                         additional_headers=None,
                         content_type=None):
        """Make a request to VCD at a /cloudapi endpoint.

        :param RequestMethod method: HTTP verb
        :param str url: absolute url of the resource
        :param str api_version: API version sent in the Accept header
        :param dict query_params: query parameters of the request
        :param object payload: JSON serializable body, or a dict of form
            fields if the content type is url encoded.
        :param dict additional_headers: request specific headers
        :param str content_type: content type of the body of the request

        :return: the response

        :rtype: requests.Response

        :raises OpenApiRequestError: if the response status is not 2xx
        :raises OpenApiConnectionError: if VCD could not be reached
        """
        headers = self._build_headers(api_version, additional_headers,
                                      content_type)
        data = None
        if payload is not None:
            if content_type and 'json' not in content_type:
                data = payload
            else:
                data = json.dumps(payload, indent=2)

        self.LOGGER_WIRE.debug(f"Request uri : {method.value.upper()} {url}")
        response = requests.request(
            method.value,
            url,
            headers=headers,
            params=query_params,
            data=data,
            verify=self._verify_ssl)

        self.LOGGER_WIRE.debug("Request headers :"
                               f" {response.request.headers}")
        self.LOGGER_WIRE.debug(f"Request body : {response.request.body}")

        self.LOGGER_WIRE.debug(f"Response status code: {response.status_code}")
        self.LOGGER_WIRE.debug(f"Response headers : {response.headers}")
        self.LOGGER_WIRE.debug(f"Response body : {response.text}")

        response.raise_for_status()
        return response

    @staticmethod
    def _decode_body(response):
        if response.text:
            return json.loads(response.text)
        return None

    def _task_from_response(self, response):
        task_href = response.headers.get(HttpResponseHeader.LOCATION.value)
        if not task_href:
            raise TaskError("unexpected empty task HREF")
        return Task(self._vcd_client, task_href, logger_debug=self.LOGGER)

    def _wait_for_task(self, task):
        self.LOGGER.debug("Asynchronous task detected, tracking task with "
                          f"HREF: {task.href}")
        try:
            task.wait_task_completion(delay=self._task_poll_seconds)
        except TaskError as err:
            raise TaskError(f"error waiting completion of task "
                            f"({task.href}): {err}") from err

    def get_all_items(self, url, api_version, query_params=None,
                      headers=None):
        """Retrieve all items of an OpenAPI collection, crawling all pages.

        Pages are followed through the 'nextPage' link of the Link header.
        Some endpoints don't send that link, in which case page numbers are
        computed from 'resultTotal', 'page' and 'pageSize'.

        :param str url: absolute url of the collection
        :param str api_version: API version to use
        :param dict query_params: query parameters, 'pageSize' defaults to
            128
        :param dict headers: additional request headers

        :return: the items of all pages

        :rtype: list
        """
        self._ensure_openapi_supported()
        params = copy_or_new_query_params(query_params)
        params.setdefault(PaginationKey.PAGE_SIZE.value,
                          str(self._default_page_size))

        items = []
        page_url = url
        while page_url:
            response = self._perform_request(RequestMethod.GET, page_url,
                                             api_version,
                                             query_params=params,
                                             additional_headers=headers)
            page = self._decode_body(response) or {}
            # Some endpoints answer with a plain list instead of pages
            if isinstance(page, list):
                items.extend(page)
                break
            items.extend(page.get(PaginationKey.VALUES.value) or [])

            next_page_url = find_rel_link(PaginationKey.NEXT_PAGE.value,
                                          response.headers)
            if next_page_url:
                page_url = next_page_url
                # next page link already carries all query parameters
                params = {}
                continue

            page_number = page.get(PaginationKey.PAGE_NUMBER.value) or 0
            page_size = page.get(PaginationKey.PAGE_SIZE.value) or 0
            result_total = page.get(PaginationKey.RESULT_TOTAL.value) or 0
            if page_number and page_size and \
                    page_number < math.ceil(result_total / page_size):
                params = dict(params)
                params[PaginationKey.PAGE_NUMBER.value] = str(page_number + 1)
            else:
                page_url = None
        return items

    def get_item_with_headers(self, url, api_version, query_params=None,
                              headers=None):
        """Retrieve a single item and the response headers.

        VCD answers with HTTP 403 when the user is not authorized to see an
        entity, or when it does not exist. Both are reported as
        EntityNotFoundError.

        :return: decoded body and response headers

        :rtype: tuple

        :raises EntityNotFoundError: on HTTP 403 and 404
        """
        self._ensure_openapi_supported()
        try:
            response = self._perform_request(RequestMethod.GET, url,
                                             api_version,
                                             query_params=query_params,
                                             additional_headers=headers)
        except OpenApiRequestError as err:
            if err.status_code == requests.codes.forbidden:
                raise EntityNotFoundError(message=err.message,
                                          minor_error_code=err.minor_error_code,  # noqa: E501
                                          stack_trace=err.stack_trace,
                                          status_code=err.status_code) from err
            raise
        return self._decode_body(response), response.headers

    def get_item(self, url, api_version, query_params=None, headers=None):
        body, _ = self.get_item_with_headers(url, api_version,
                                             query_params=query_params,
                                             headers=headers)
        return body

    def post_item(self, url, api_version, payload, query_params=None,
                  headers=None):
        """Create an item, synchronously or asynchronously.

        If VCD answers with HTTP 202, the task is tracked to completion and
        the created item is retrieved with the id of the task owner.

        :param str url: absolute url of the collection
        :param str api_version: API version to use
        :param object payload: JSON serializable item
        :param dict query_params: query parameters
        :param dict headers: additional request headers

        :return: the created item

        :rtype: dict
        """
        self._ensure_openapi_supported()
        response = self._perform_request(RequestMethod.POST, url, api_version,
                                         query_params=query_params,
                                         payload=payload,
                                         additional_headers=headers)
        if response.status_code == requests.codes.accepted:
            task = self._task_from_response(response)
            self._wait_for_task(task)
            # The task owner is the created item. Its href points to the
            # XML API, so the id is used to read it back from OpenAPI.
            try:
                return self.get_item(url + task.owner_id, api_version,
                                     headers=headers)
            except CloudDirectorClientError as err:
                raise CloudDirectorClientError(
                    f"error retrieving item after creation: {err}") from err
        return self._decode_body(response)

    def post_item_async(self, url, api_version, payload, query_params=None,
                        headers=None):
        """Start an asynchronous creation and return its task.

        :rtype: Task

        :raises CloudDirectorClientError: if the endpoint did not answer
            with a task
        """
        self._ensure_openapi_supported()
        response = self._perform_request(RequestMethod.POST, url, api_version,
                                         query_params=query_params,
                                         payload=payload,
                                         additional_headers=headers)
        if response.status_code != requests.codes.accepted:
            raise CloudDirectorClientError(
                "POST request expected async task (HTTP response 202), got "
                f"{response.status_code}")
        return self._task_from_response(response)

    def post_url_encoded(self, url, api_version, data, headers=None):
        """POST form fields, e.g. to OAuth token endpoints.

        :param dict data: form fields

        :return: decoded body of the response

        :rtype: dict
        """
        self._ensure_openapi_supported()
        response = self._perform_request(
            RequestMethod.POST, url, api_version, payload=data,
            additional_headers=headers,
            content_type=ContentType.URL_ENCODED.value)
        return self._decode_body(response)

    def put_item_with_headers(self, url, api_version, payload,
                              query_params=None, headers=None):
        """Update an item, synchronously or asynchronously.

        If VCD answers with HTTP 202, the task is tracked to completion and
        the item is read again from the same url.

        :return: the updated item and the response headers

        :rtype: tuple
        """
        self._ensure_openapi_supported()
        response = self._perform_request(RequestMethod.PUT, url, api_version,
                                         query_params=query_params,
                                         payload=payload,
                                         additional_headers=headers)
        if response.status_code == requests.codes.accepted:
            task = self._task_from_response(response)
            self._wait_for_task(task)
            # query parameters are not used for retrieval
            try:
                return self.get_item_with_headers(url, api_version,
                                                  headers=headers)
            except CloudDirectorClientError as err:
                raise CloudDirectorClientError(
                    f"error retrieving item after updating: {err}") from err
        return self._decode_body(response), response.headers

    def put_item(self, url, api_version, payload, query_params=None,
                 headers=None):
        body, _ = self.put_item_with_headers(url, api_version, payload,
                                             query_params=query_params,
                                             headers=headers)
        return body

    def put_item_async(self, url, api_version, payload, query_params=None,
                       headers=None):
        self._ensure_openapi_supported()
        response = self._perform_request(RequestMethod.PUT, url, api_version,
                                         query_params=query_params,
                                         payload=payload,
                                         additional_headers=headers)
        if response.status_code != requests.codes.accepted:
            raise CloudDirectorClientError(
                "PUT request expected async task (HTTP response 202), got "
                f"{response.status_code}")
        return self._task_from_response(response)

    def delete_item(self, url, api_version, query_params=None, headers=None):
        """Delete an item and wait for the deletion task if there is one."""
        self._ensure_openapi_supported()
        response = self._perform_request(RequestMethod.DELETE, url,
                                         api_version,
                                         query_params=query_params,
                                         additional_headers=headers)
        if response.status_code == requests.codes.accepted:
            self._wait_for_task(self._task_from_response(response))
