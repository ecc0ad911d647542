# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""API version negotiation between the client, VCD and OpenAPI endpoints.

VCD advertises the API versions it supports at /api/versions. Every OpenAPI
endpoint has a minimum API version it was introduced in, and possibly a few
elevated versions that add fields to its payloads. The negotiator picks the
version to send in the Accept header of each request.
"""

import operator
import re

import semantic_version

from cloud_director_client.exception.exceptions import ApiVersionError
from cloud_director_client.lib.cloudapi.constants import ENDPOINT_ELEVATED_API_VERSIONS  # noqa: E501
from cloud_director_client.lib.cloudapi.constants import ENDPOINT_MIN_API_VERSIONS  # noqa: E501
from cloud_director_client.logging.logger import NULL_LOGGER

_CONSTRAINT_PATTERN = re.compile(r'^\s*(<=|>=|!=|==|=|<|>)\s*(\S+)\s*$')

_OPERATORS = {
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
    '=': operator.eq,
    '==': operator.eq,
    '!=': operator.ne,
}


def parse_version(version) -> semantic_version.Version:
    """Parse a VCD API version like '37.2' into a comparable version.

    :param str version: API version

    :rtype: semantic_version.Version

    :raises ApiVersionError: if the version can't be parsed
    """
    try:
        return semantic_version.Version.coerce(str(version).strip())
    except ValueError as err:
        raise ApiVersionError(
            f"error evaluating version '{version}': {err}") from err


def version_matches(version, constraint: str) -> bool:
    """Check a version against a constraint like '>= 37.1'.

    Several constraints separated by commas must all be satisfied, e.g.
    '>= 36.0, < 38.0'.

    :param str version: version to check
    :param str constraint: constraint to evaluate

    :rtype: bool

    :raises ApiVersionError: if the constraint or the versions are invalid
    """
    parsed_version = parse_version(version)
    for part in constraint.split(','):
        match = _CONSTRAINT_PATTERN.match(part)
        if not match:
            raise ApiVersionError(
                f"error evaluating version constraint '{constraint}'")
        op, other = match.groups()
        if not _OPERATORS[op](parsed_version, parse_version(other)):
            return False
    return True


class ApiVersionNegotiator:
    """Pick API versions for requests based on what VCD supports.

    Supported versions are either given upfront or retrieved lazily with
    `supported_versions_fetcher`, once per negotiator.
    """

    def __init__(self, client_api_version: str,
                 supported_versions=None,
                 supported_versions_fetcher=None,
                 logger_debug=NULL_LOGGER):
        self._client_api_version = str(client_api_version)
        self._supported_versions = None
        if supported_versions is not None:
            self._supported_versions = [str(v) for v in supported_versions]
        self._supported_versions_fetcher = supported_versions_fetcher
        self.LOGGER = logger_debug

    @property
    def client_api_version(self) -> str:
        return self._client_api_version

    def get_supported_versions(self) -> list:
        """Get the API versions VCD supports.

        :rtype: list

        :raises ApiVersionError: if the versions can't be determined
        """
        if self._supported_versions is None:
            if self._supported_versions_fetcher is None:
                raise ApiVersionError(
                    "could not retrieve supported versions: no source of "
                    "supported versions was configured")
            self._supported_versions = \
                [str(v) for v in self._supported_versions_fetcher()]
            self.LOGGER.debug("Supported API versions: "
                              f"{self._supported_versions}")
        return self._supported_versions

    def max_supported_version(self) -> str:
        versions = self.get_supported_versions()
        if not versions:
            raise ApiVersionError(
                f"could not find max supported version in {versions}")
        return max(versions, key=parse_version)

    def validate_api_version(self):
        """Ensure that the client API version is supported by VCD.

        :raises ApiVersionError: if it is not
        """
        versions = self.get_supported_versions()
        client_version = parse_version(self._client_api_version)
        if not any(parse_version(v) == client_version for v in versions):
            raise ApiVersionError(
                f"API version {self._client_api_version} is not supported: "
                f"supported versions = {versions}")

    def vcd_max_version_is(self, constraint: str) -> bool:
        """Check the maximum VCD API version against a constraint."""
        return version_matches(self.max_supported_version(), constraint)

    def client_version_is(self, constraint: str) -> bool:
        """Check the client API version against a constraint."""
        return version_matches(self._client_api_version, constraint)

    def get_specific_api_version_on_condition(self, constraint: str,
                                              wanted_api_version: str,
                                              fallback_api_version=None):
        """Return an API version depending on the maximum VCD API version.

        :param str constraint: constraint for the maximum VCD API version,
            e.g. '>= 37.1'
        :param str wanted_api_version: version to return if it matches
        :param str fallback_api_version: version to return otherwise,
            defaults to the client API version

        :rtype: str
        """
        if self.vcd_max_version_is(constraint):
            return wanted_api_version
        return fallback_api_version or self._client_api_version

    def check_endpoint_compatibility(self, endpoint: str) -> str:
        """Get the API version to use with an endpoint.

        :param str endpoint: endpoint key, e.g. '1.0.0/entityTypes/'

        :return: the client API version if it is higher than the minimum
            version of the endpoint, the minimum version otherwise.

        :rtype: str

        :raises ApiVersionError: if the endpoint is unknown, or if VCD is
            too old for it.
        """
        min_version = ENDPOINT_MIN_API_VERSIONS.get(endpoint)
        if not min_version:
            raise ApiVersionError(
                f"minimum API version for endpoint '{endpoint}' is not "
                "defined")

        if self.vcd_max_version_is(f"< {min_version}"):
            raise ApiVersionError(
                f"endpoint '{endpoint}' requires API version to support at "
                f"least '{min_version}'. Maximum supported version in this "
                f"instance: '{self.max_supported_version()}'")

        if self.client_version_is(f"> {min_version}"):
            return self._client_api_version
        return min_version

    def get_highest_elevated_version(self, endpoint: str) -> str:
        """Get the highest elevated API version usable with an endpoint.

        Elevated versions are tried from highest to lowest. A version is
        picked when VCD supports it and the client API version is not above
        it. If none qualifies, the result of check_endpoint_compatibility is
        returned.

        :param str endpoint: endpoint key, e.g. '1.0.0/entityTypes/'

        :rtype: str

        :raises ApiVersionError: if the endpoint is unknown, or if VCD is
            too old for it.
        """
        try:
            min_version = self.check_endpoint_compatibility(endpoint)
        except ApiVersionError as err:
            raise ApiVersionError(
                f"error getting minimum required API version: {err}") from err

        elevated_versions = ENDPOINT_ELEVATED_API_VERSIONS.get(endpoint)
        if not elevated_versions:
            self.LOGGER.debug("No elevated API versions are defined for "
                              f"endpoint '{endpoint}'. Using minimum "
                              f"'{min_version}'")
            return min_version

        for version in sorted(elevated_versions, key=parse_version,
                              reverse=True):
            if self.vcd_max_version_is(f">= {version}") and \
                    not self.client_version_is(f"> {version}"):
                self.LOGGER.debug(f"Will use elevated version '{version}' "
                                  f"for endpoint '{endpoint}'")
                return version
            self.LOGGER.debug(f"Skipped elevated version '{version}' for "
                              f"endpoint '{endpoint}'")

        self.LOGGER.debug("No elevated API versions are supported for "
                          f"endpoint '{endpoint}'. Will use '{min_version}'")
        return min_version
