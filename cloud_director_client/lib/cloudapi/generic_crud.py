# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Generic CRUD operations over OpenAPI endpoints.

Every operation takes a CrudConfig that names the entity (for errors), the
endpoint key (e.g. '1.0.0/vdcs/%s/computePolicies') and the parameters that
populate it. The API version is negotiated per endpoint, then a single HTTP
round trip is made. Responses are decoded into the `entity_type` given by
the caller, a dataclasses_json class, or returned as plain dicts.
"""

from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from dataclasses import is_dataclass
from typing import Dict, List, Optional

from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import CrudConfigError
from cloud_director_client.exception.exceptions import EndpointBuildError
from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.exception.exceptions import GenericCrudError
from cloud_director_client.lib.cloudapi.cloudapi_client import CloudApiClient  # noqa: E501

_PLACEHOLDER = '%s'


@dataclass
class CrudConfig:
    """Settings of a generic CRUD call.

    :param str entity_label: friendly entity name used in error messages
    :param str endpoint: endpoint key as found in ENDPOINT_MIN_API_VERSIONS
    :param list endpoint_params: values replacing '%s' placeholders of the
        endpoint, left to right. Extra values are appended to the endpoint.
    :param dict query_parameters: query parameters, usually filters
    :param dict additional_header: extra request headers, usually tenant
        context
    :param str override_api_version: API version to use instead of the
        negotiated one
    :param bool skip_elevated_api_version: negotiate the minimum version of
        the endpoint instead of the highest elevated one
    """

    entity_label: str
    endpoint: str
    endpoint_params: Optional[List[str]] = None
    query_parameters: Optional[Dict[str, str]] = None
    additional_header: Dict[str, str] = field(default_factory=dict)
    override_api_version: Optional[str] = None
    skip_elevated_api_version: bool = False

    def validate(self):
        """Check the configuration before any request is made.

        :raises ValueError: if entity_label or endpoint is missing, these are
            programming errors.
        :raises CrudConfigError: if one of the endpoint params is empty,
            usually an id that the caller did not set.
        """
        if not self.entity_label:
            raise ValueError("'entity_label' must always be specified when "
                             "initializing CrudConfig")
        if not self.endpoint:
            raise ValueError("'endpoint' must always be specified when "
                             "initializing CrudConfig")
        if self.endpoint_params is not None:
            for param in self.endpoint_params:
                if not param:
                    raise CrudConfigError(
                        "endpointParams were specified but they contain "
                        f"empty value \"\" for {self.entity_label}. "
                        f"{self.endpoint_params}")


def url_from_endpoint(endpoint: str, endpoint_params=None) -> str:
    """Populate the placeholders of an endpoint.

    url_from_endpoint('1.0.0/vdcs/%s/computePolicies', ['urn:1']) returns
    '1.0.0/vdcs/urn:1/computePolicies' and
    url_from_endpoint('1.0.0/entityTypes/', ['urn:2']) returns
    '1.0.0/entityTypes/urn:2'.

    :param str endpoint: endpoint with '%s' placeholders
    :param list endpoint_params: values replacing placeholders left to
        right, the remaining values are appended as they are.

    :rtype: str

    :raises EndpointBuildError: if there are fewer params than placeholders
    """
    endpoint_params = endpoint_params or []
    placeholder_count = endpoint.count(_PLACEHOLDER)
    if len(endpoint_params) < placeholder_count:
        raise EndpointBuildError(
            f"endpoint '{endpoint}' has unpopulated placeholders")

    for param in endpoint_params:
        if placeholder_count > 0:
            endpoint = endpoint.replace(_PLACEHOLDER, param, 1)
            placeholder_count -= 1
        else:
            endpoint += param
    return endpoint


def _drop_unset_fields(entity, payload):
    for entity_field in fields(entity):
        if entity_field.name not in payload:
            continue
        value = getattr(entity, entity_field.name)
        if value is None:
            del payload[entity_field.name]
        elif is_dataclass(value):
            _drop_unset_fields(value, payload[entity_field.name])
    return payload


def to_payload(entity):
    """Convert an entity to a JSON serializable payload.

    dataclasses_json entities are converted with to_dict. Their unset (None)
    fields are left out of the payload, free form values such as the
    contents of a DefinedEntity are sent as they are, nulls included.
    """
    if hasattr(entity, 'to_dict'):
        return _drop_unset_fields(entity, entity.to_dict())
    return entity


def from_payload(payload, entity_type=None):
    """Decode a JSON payload into `entity_type`, or keep it as it is."""
    if entity_type is None or payload is None:
        return payload
    return entity_type.from_dict(payload)


def _resolve_api_version(client: CloudApiClient, config: CrudConfig):
    if config.override_api_version:
        return config.override_api_version
    negotiator = client.version_negotiator
    if config.skip_elevated_api_version:
        return negotiator.check_endpoint_compatibility(config.endpoint)
    return negotiator.get_highest_elevated_version(config.endpoint)


def _prepare(client: CloudApiClient, config: CrudConfig, operation: str):
    """Validate config, negotiate API version and build the request url.

    :return: (api_version, url)

    :rtype: tuple
    """
    config.validate()
    try:
        api_version = _resolve_api_version(client, config)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error getting API version for {operation}entity "
            f"'{config.entity_label}': {err}") from err

    try:
        exact_endpoint = url_from_endpoint(config.endpoint,
                                           config.endpoint_params)
    except EndpointBuildError as err:
        params = ",".join(config.endpoint_params or [])
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error building endpoint '{config.endpoint}' with given params "
            f"'{params}' for entity '{config.entity_label}': {err}") from err

    return api_version, client.build_endpoint(exact_endpoint)


def create_inner_entity(client: CloudApiClient, config: CrudConfig, entity,
                        entity_type=None):
    """Create an entity with a POST to the endpoint.

    :param CloudApiClient client:
    :param CrudConfig config:
    :param object entity: entity to create
    :param type entity_type: dataclasses_json class to decode the created
        entity into, None to get a dict.

    :return: the created entity
    """
    api_version, url = _prepare(client, config, 'creating ')
    try:
        created = client.post_item(url, api_version, to_payload(entity),
                                   query_params=config.query_parameters,
                                   headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error creating entity of type '{config.entity_label}': "
            f"{err}") from err
    return from_payload(created, entity_type)


def create_inner_entity_async(client: CloudApiClient, config: CrudConfig,
                              entity):
    """Start the creation of an entity and return its task, unfinished.

    :rtype: cloud_director_client.lib.cloudapi.task.Task
    """
    api_version, url = _prepare(client, config, 'creating ')
    try:
        return client.post_item_async(url, api_version, to_payload(entity),
                                      query_params=config.query_parameters,
                                      headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error creating entity of type '{config.entity_label}': "
            f"{err}") from err


def update_inner_entity_with_headers(client: CloudApiClient,
                                     config: CrudConfig, entity,
                                     entity_type=None):
    """Update an entity with a PUT and return it with the response headers.

    :rtype: tuple
    """
    api_version, url = _prepare(client, config, 'updating ')
    try:
        updated, headers = client.put_item_with_headers(
            url, api_version, to_payload(entity),
            query_params=config.query_parameters,
            headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error updating entity of type '{config.entity_label}': "
            f"{err}") from err
    return from_payload(updated, entity_type), headers


def update_inner_entity(client: CloudApiClient, config: CrudConfig, entity,
                        entity_type=None):
    updated, _ = update_inner_entity_with_headers(client, config, entity,
                                                  entity_type)
    return updated


def get_inner_entity_with_headers(client: CloudApiClient, config: CrudConfig,
                                  entity_type=None):
    """Retrieve a single entity and the response headers, e.g. ETag.

    :rtype: tuple

    :raises GenericCrudError: caused by EntityNotFoundError if the entity
        does not exist
    """
    api_version, url = _prepare(client, config, '')
    try:
        entity, headers = client.get_item_with_headers(
            url, api_version, query_params=config.query_parameters,
            headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error retrieving entity of type '{config.entity_label}': "
            f"{err}") from err
    return from_payload(entity, entity_type), headers


def get_inner_entity(client: CloudApiClient, config: CrudConfig,
                     entity_type=None):
    entity, _ = get_inner_entity_with_headers(client, config, entity_type)
    return entity


def get_all_inner_entities(client: CloudApiClient, config: CrudConfig,
                           entity_type=None) -> list:
    """Retrieve all entities of an endpoint, following all pages.

    :rtype: list
    """
    api_version, url = _prepare(client, config, '')
    try:
        entities = client.get_all_items(url, api_version,
                                        query_params=config.query_parameters,
                                        headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            "error retrieving all entities of type "
            f"'{config.entity_label}': {err}") from err
    return [from_payload(entity, entity_type) for entity in entities]


def delete_entity_by_id(client: CloudApiClient, config: CrudConfig):
    """Delete the entity the endpoint and its params point to."""
    api_version, url = _prepare(client, config, 'deleting ')
    try:
        client.delete_item(url, api_version,
                           query_params=config.query_parameters,
                           headers=config.additional_header)
    except CloudDirectorClientError as err:
        raise GenericCrudError(
            config.entity_label, config.endpoint,
            f"error deleting {config.entity_label}: {err}") from err


def create_outer_entity(client: CloudApiClient, wrap, config: CrudConfig,
                        entity, entity_type=None):
    """Create an entity and wrap it, e.g. in a class holding the client.

    :param callable wrap: called with the created inner entity
    """
    if entity is None:
        raise CrudConfigError(f"entity config '{config.entity_label}' "
                              "cannot be empty for create operation")
    return wrap(create_inner_entity(client, config, entity, entity_type))


def update_outer_entity(client: CloudApiClient, wrap, config: CrudConfig,
                        entity, entity_type=None):
    if entity is None:
        raise CrudConfigError(f"entity config '{config.entity_label}' "
                              "cannot be empty for update operation")
    return wrap(update_inner_entity(client, config, entity, entity_type))


def get_outer_entity(client: CloudApiClient, wrap, config: CrudConfig,
                     entity_type=None):
    return wrap(get_inner_entity(client, config, entity_type))


def get_all_outer_entities(client: CloudApiClient, wrap, config: CrudConfig,
                           entity_type=None) -> list:
    return [wrap(entity) for entity in
            get_all_inner_entities(client, config, entity_type)]


def one_or_error(key, name, entities):
    """Return the only entity of a list.

    :raises EntityNotFoundError: if the list is empty
    :raises CloudDirectorClientError: if there is more than one entity
    """
    if len(entities) > 1:
        raise CloudDirectorClientError(
            f"got more than one entity by {key} '{name}' {len(entities)}")
    if not entities:
        raise EntityNotFoundError(
            message=f"got zero entities by {key} '{name}'")
    return entities[0]


def _field_value(entity, field_name):
    if isinstance(entity, dict):
        if field_name not in entity:
            raise KeyError(field_name)
        return entity[field_name]
    if not hasattr(entity, field_name):
        raise KeyError(field_name)
    return getattr(entity, field_name)


def local_filter(entities, field_name, expected_value, entity_label):
    """Filter entities on the client side by a string field.

    Used where the endpoint does not support a server side filter.

    :rtype: list
    """
    if not entities:
        raise CloudDirectorClientError("zero entities provided for filtering")
    filtered = []
    for entity in entities:
        if entity is None:
            raise CloudDirectorClientError(
                f"given entity for {entity_label} is empty")
        try:
            value = _field_value(entity, field_name)
        except KeyError:
            raise CloudDirectorClientError(
                f"the entity {entity_label} does not have the field "
                f"'{field_name}'")
        if value is not None and not isinstance(value, str):
            raise CloudDirectorClientError(
                f"field '{field_name}' is not string type, it has type "
                f"'{type(value).__name__}'")
        if value == expected_value:
            filtered.append(entity)
    return filtered


def local_filter_one_or_error(entities, field_name, expected_value,
                              entity_label):
    if not field_name or not expected_value:
        raise CloudDirectorClientError(
            "expected field name and value must be specified to filter "
            f"{entity_label}")
    return one_or_error(field_name, expected_value,
                        local_filter(entities, field_name, expected_value,
                                     entity_label))
