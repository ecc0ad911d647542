# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import functools
import json
import time
from typing import List, Optional

from cloud_director_client.common.constants.shared_constants import HttpRequestHeader  # noqa: E501
from cloud_director_client.common.constants.shared_constants import HttpResponseHeader  # noqa: E501
from cloud_director_client.common.utils.core_utils import copy_or_new_query_params  # noqa: E501
from cloud_director_client.common.utils.core_utils import query_parameter_filter_and  # noqa: E501
from cloud_director_client.common.utils.core_utils import should_do_slow_search
from cloud_director_client.exception.exceptions import ApiVersionError
from cloud_director_client.exception.exceptions import CloudDirectorClientError
from cloud_director_client.exception.exceptions import EntityNotFoundError
from cloud_director_client.lib.cloudapi.cloudapi_client import CloudApiClient  # noqa: E501
from cloud_director_client.lib.cloudapi.constants import CloudApiResource
from cloud_director_client.lib.cloudapi.constants import CloudApiVersion
import cloud_director_client.lib.cloudapi.generic_crud as crud
from cloud_director_client.logging.logger import CLIENT_LOGGER as LOGGER
from cloud_director_client.logging.logger import NULL_LOGGER
import cloud_director_client.rde.constants as rde_constants
from cloud_director_client.rde.models import DefinedEntity
from cloud_director_client.rde.models import DefinedEntityType
from cloud_director_client.rde.models import TenantContext

_V1 = CloudApiVersion.VERSION_1_0_0.value

ENTITY_TYPE_LABEL = 'Runtime Defined Entity type'
ENTITY_LABEL = 'Runtime Defined Entity'


def handle_entity_service_exception(func):
    """Decorate to log the errors of entity service methods.

    Errors are logged with the client logger and re-raised as they are.

    :param method func: decorated function

    :return: reference to the function that executes the decorated function
        and logs exceptions raised by it.
    """
    @functools.wraps(func)
    def exception_handler_wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except CloudDirectorClientError as error:
            LOGGER.error(f"{func.__name__}: {error}")
            raise
        return result
    return exception_handler_wrapper


def raise_error_if_rde_not_supported(cloudapi_client: CloudApiClient):
    """Raise ApiVersionError if VCD doesn't support Runtime Defined Entities."""  # noqa: E501
    if not cloudapi_client.version_negotiator.vcd_max_version_is(
            f">= {rde_constants.RDE_MIN_API_VERSION}"):
        raise ApiVersionError(
            "Runtime Defined Entities require VCD API version "
            f"{rde_constants.RDE_MIN_API_VERSION} or above")


def split_entity_type_id(entity_type_id: str):
    """Get vendor, nss and version out of an entity type id.

    urn:vcloud:type:vmware:capvcdCluster:1.2.0 gives
    ('vmware', 'capvcdCluster', '1.2.0').

    :rtype: tuple

    :raises CloudDirectorClientError: if the id is malformed
    """
    parts = entity_type_id.split(':')
    if len(parts) != 6 or parts[2] != 'type':
        raise CloudDirectorClientError(
            f"'{entity_type_id}' is not a valid {ENTITY_TYPE_LABEL} ID")
    return parts[3], parts[4], parts[5]


class DefinedEntityService:
    """Manages the lifecycle of Runtime Defined Entities (RDE).

    Entities are JSON documents stored by VCD, each one instance of an
    entity type. Entities created through the API start in PRE_CREATED
    state and must be resolved to be validated against the type schema.
    """

    def __init__(self, cloudapi_client: CloudApiClient,
                 logger_debug=NULL_LOGGER):
        raise_error_if_rde_not_supported(cloudapi_client)
        self._cloudapi_client = cloudapi_client
        self.LOGGER = logger_debug

    @property
    def cloudapi_client(self):
        return self._cloudapi_client

    @handle_entity_service_exception
    def list_entity_types(self, query_params=None) -> List[DefinedEntityType]:  # noqa: E501
        config = crud.CrudConfig(
            entity_label=ENTITY_TYPE_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITY_TYPES.value,
            query_parameters=query_params)
        return crud.get_all_inner_entities(self._cloudapi_client, config,
                                           DefinedEntityType)

    @handle_entity_service_exception
    def get_entity_type(self, vendor: str, nss: str,
                        version: str) -> DefinedEntityType:
        """Get the unique entity type identified by vendor, nss and version.

        :raises EntityNotFoundError: if there is no such type
        :raises CloudDirectorClientError: if more than one type matches
        """
        query_params = query_parameter_filter_and(
            f"vendor=={vendor};nss=={nss};version=={version}")
        entity_types = self.list_entity_types(query_params)
        if not entity_types:
            raise EntityNotFoundError(
                message=f"could not find the {ENTITY_TYPE_LABEL} with "
                        f"vendor {vendor}, namespace {nss} and version "
                        f"{version}")
        if len(entity_types) > 1:
            raise CloudDirectorClientError(
                f"found more than 1 {ENTITY_TYPE_LABEL} with vendor {vendor}, "
                f"namespace {nss} and version {version}")
        return entity_types[0]

    @handle_entity_service_exception
    def get_entity_type_by_id(self, entity_type_id: str) -> DefinedEntityType:
        config = crud.CrudConfig(
            entity_label=ENTITY_TYPE_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITY_TYPES.value,
            endpoint_params=[entity_type_id])
        return crud.get_inner_entity(self._cloudapi_client, config,
                                     DefinedEntityType)

    @handle_entity_service_exception
    def get_all_entities(self, vendor: str, nss: str, version: str,
                         query_params=None) -> List[DefinedEntity]:
        """List the entities of a type.

        Listed entities don't carry an ETag, use get_entity to update them.

        :param str vendor: vendor of the entity type
        :param str nss: nss of the entity type
        :param str version: version of the entity type
        :param dict query_params: query parameters, usually a filter

        :rtype: list
        """
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES_TYPES.value,
            endpoint_params=[f"{vendor}/{nss}/{version}"],
            query_parameters=copy_or_new_query_params(query_params))
        return crud.get_all_inner_entities(self._cloudapi_client, config,
                                           DefinedEntity)

    @handle_entity_service_exception
    def get_entities_by_name(self, vendor: str, nss: str, version: str,
                             name: str) -> List[DefinedEntity]:
        """List the entities of a type with the given name.

        Names that can't be used in a FIQL filter are searched on the
        client side, over every entity of the type.

        :raises EntityNotFoundError: if no entity has that name
        """
        slow_search, query_params = should_do_slow_search('name', name)
        if slow_search:
            entities = self.get_all_entities(vendor, nss, version)
            if entities:
                entities = crud.local_filter(entities, 'name', name,
                                             ENTITY_LABEL)
        else:
            entities = self.get_all_entities(vendor, nss, version,
                                             query_params)
        if not entities:
            raise EntityNotFoundError(
                message=f"could not find the {ENTITY_LABEL} with name "
                        f"'{name}'")
        return entities

    @handle_entity_service_exception
    def get_entity(self, entity_id: str) -> DefinedEntity:
        """Get an entity by id, with the ETag needed to update it.

        :rtype: DefinedEntity

        :raises GenericCrudError: caused by EntityNotFoundError if the entity
            does not exist
        """
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES.value,
            endpoint_params=[entity_id])
        entity, headers = crud.get_inner_entity_with_headers(
            self._cloudapi_client, config, DefinedEntity)
        entity.etag = headers.get(HttpResponseHeader.ETAG.value)
        return entity

    @handle_entity_service_exception
    def create_entity(self, entity_type_id: str, entity: DefinedEntity,
                      tenant_context: Optional[TenantContext] = None,
                      poll_tries=rde_constants.PRE_CREATED_POLL_TRIES,
                      poll_interval=rde_constants.PRE_CREATED_POLL_SEC) -> DefinedEntity:  # noqa: E501
        """Create an entity of the given type.

        The creation task stays unfinished until the entity is resolved, so
        it is not waited for. The created entity is searched by name instead,
        until it shows up in PRE_CREATED state.

        :param str entity_type_id: id of the entity type
        :param DefinedEntity entity: entity to create, its `entity` contents
            are mandatory
        :param TenantContext tenant_context: organization to create the
            entity in, None for the organization of the session
        :param int poll_tries: times the created entity is searched
        :param int poll_interval: seconds between searches

        :return: the created entity, in PRE_CREATED state

        :rtype: DefinedEntity

        :raises CloudDirectorClientError: if the creation fails or the
            created entity can't be found
        """
        if not entity_type_id:
            raise CloudDirectorClientError(
                f"ID of the {ENTITY_TYPE_LABEL} is empty")
        if entity.entityType and entity.entityType != entity_type_id:
            raise CloudDirectorClientError(
                f"ID of the {ENTITY_TYPE_LABEL} '{entity_type_id}' doesn't "
                f"match with the one to create '{entity.entityType}'")
        if not entity.entity:
            raise CloudDirectorClientError("the entity JSON is empty")
        vendor, nss, version = split_entity_type_id(entity_type_id)

        headers = {}
        if tenant_context is not None:
            headers = tenant_context.to_headers()
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITY_TYPES.value,
            endpoint_params=[entity_type_id],
            additional_header=headers)
        task = crud.create_inner_entity_async(self._cloudapi_client, config,
                                              entity)
        self.LOGGER.debug(f"Creation of {ENTITY_LABEL} '{entity.name}' "
                          f"started with task {task.href}")
        return self._poll_pre_created_entity(vendor, nss, version,
                                             entity.name, poll_tries,
                                             poll_interval)

    def _poll_pre_created_entity(self, vendor, nss, version, name, tries,
                                 interval):
        last_error = None
        for attempt in range(tries):
            try:
                entities = self.get_entities_by_name(vendor, nss, version,
                                                     name)
            except CloudDirectorClientError as err:
                last_error = err
                entities = []
            # Same named entities can't be told apart, the first one that
            # is still pre created is taken.
            for entity in entities:
                if entity.state == rde_constants.RdeState.PRE_CREATED.value:
                    return entity
            self.LOGGER.debug(f"{ENTITY_LABEL} '{name}' not found in "
                              f"{rde_constants.RdeState.PRE_CREATED.value} "
                              f"state, attempt {attempt + 1} of {tries}")
            time.sleep(interval)
        raise CloudDirectorClientError(
            "could not create RDE, failed during retrieval after creation: "
            f"{last_error}")

    @handle_entity_service_exception
    def resolve_entity(self, entity_id: str) -> DefinedEntity:
        """Resolve an entity, validating its contents against its type.

        :return: the entity in RESOLVED or RESOLUTION_ERROR state

        :rtype: DefinedEntity
        """
        if not entity_id:
            raise CloudDirectorClientError(
                f"ID of the receiver {ENTITY_LABEL} is empty")
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES_RESOLVE.value,
            endpoint_params=[entity_id])
        return crud.create_inner_entity(self._cloudapi_client, config, None,
                                        DefinedEntity)

    @handle_entity_service_exception
    def update_entity(self, entity: DefinedEntity) -> DefinedEntity:
        """Update an entity, guarded by its ETag.

        When `entity` has no name, the current name is kept. When it has no
        ETag, the current one is used.

        :param DefinedEntity entity: new state of the entity, with its id

        :return: the updated entity with its new ETag

        :rtype: DefinedEntity

        :raises CloudDirectorClientError: if the id is missing, or the update
            fails, e.g. because the ETag is outdated
        """
        if not entity.id:
            raise CloudDirectorClientError(
                f"ID of the receiver {ENTITY_LABEL} is empty")
        if not entity.name or not entity.etag:
            current = self.get_entity(entity.id)
            entity.name = entity.name or current.name
            entity.etag = entity.etag or current.etag

        headers = {}
        if entity.etag:
            headers[HttpRequestHeader.IF_MATCH.value] = entity.etag
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES.value,
            endpoint_params=[entity.id],
            additional_header=headers)
        updated, response_headers = crud.update_inner_entity_with_headers(
            self._cloudapi_client, config, entity, DefinedEntity)
        updated.etag = response_headers.get(HttpResponseHeader.ETAG.value)
        return updated

    @handle_entity_service_exception
    def delete_entity(self, entity_id: str):
        if not entity_id:
            raise CloudDirectorClientError(
                f"ID of the receiver {ENTITY_LABEL} is empty")
        config = crud.CrudConfig(
            entity_label=ENTITY_LABEL,
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES.value,
            endpoint_params=[entity_id])
        crud.delete_entity_by_id(self._cloudapi_client, config)

    @handle_entity_service_exception
    def invoke_behavior(self, entity_id: str, behavior_id: str,
                        arguments: Optional[dict] = None,
                        metadata: Optional[dict] = None):
        """Invoke a behavior of an entity and wait for its result.

        :param str entity_id: id of the entity
        :param str behavior_id: id of the behavior, e.g.
            urn:vcloud:behavior-interface:getFullEntity:cse:capvcd:1.0.0
        :param dict arguments: arguments of the invocation
        :param dict metadata: metadata of the invocation

        :return: result of the behavior, decoded if it is JSON

        :raises TaskError: if the invocation task fails
        """
        payload = {}
        if arguments:
            payload[rde_constants.BehaviorInvocationKey.ARGUMENTS.value] = arguments  # noqa: E501
        if metadata:
            payload[rde_constants.BehaviorInvocationKey.METADATA.value] = metadata  # noqa: E501
        config = crud.CrudConfig(
            entity_label=f"{ENTITY_LABEL} behavior",
            endpoint=_V1 + CloudApiResource.RDE_ENTITIES_BEHAVIORS_INVOCATIONS.value,  # noqa: E501
            endpoint_params=[entity_id, behavior_id])
        task = crud.create_inner_entity_async(self._cloudapi_client, config,
                                              payload)
        task.wait_task_completion()
        result = task.get_result_content()
        try:
            return json.loads(result)
        except ValueError:
            # plain text results are returned as they are
            return result
