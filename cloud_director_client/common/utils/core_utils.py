# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Basic utility methods to perform data transformation and validation."""

import re

from cloud_director_client.common.constants.shared_constants import QueryParameterKey  # noqa: E501


_type_to_string = {
    str: 'string',
    int: 'number',
    bool: 'true/false',
    dict: 'mapping',
    list: 'sequence',
}

# Characters that can't be used safely in a server side FIQL filter value
_UNSAFE_FILTER_VALUE_CHARACTERS = [',', ';', ' ', '+', '*']

_UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}')


class NullPrinter:
    """Callback object which does nothing."""

    def general(self, msg):
        pass

    def info(self, msg):
        pass

    def error(self, msg):
        pass


def get_duplicate_items_in_list(items):
    """Find duplicate entries in a list.

    :param list items: list of items with possible duplicates.

    :return: the items that occur more than once in input list. Each duplicated
        item will be mentioned only once in the returned list.

    :rtype: list
    """
    seen = set()
    duplicates = []
    if items:
        for item in items:
            if item in seen:
                if item not in duplicates:
                    duplicates.append(item)
            else:
                seen.add(item)
    return duplicates


def check_keys_and_value_types(dikt, ref_dict, location='dictionary',
                               excluded_keys=None,
                               msg_update_callback=NullPrinter()):
    """Compare a dictionary with a reference dictionary.

    The method ensures that  all keys and value types are the same in the
    dictionaries.

    :param dict dikt: the dictionary to check for validity
    :param dict ref_dict: the dictionary to check against
    :param str location: where this check is taking place, so error messages
        can be more descriptive.
    :param list excluded_keys: list of str, representing the list of key which
        if missing won't raise an exception.
    :param NullPrinter msg_update_callback: Callback object.
    :raises KeyError: if @dikt has missing or invalid keys
    :raises TypeError: if the value of a property in @dikt does not match with
        the value of the same property in @ref_dict
    """
    if excluded_keys is None:
        excluded_keys = []
    ref_keys = set(ref_dict.keys())
    keys = set(dikt.keys())

    missing_keys = ref_keys - keys - set(excluded_keys)

    if missing_keys:
        msg_update_callback.error(
            f"Missing keys in {location}: {missing_keys}")
    bad_value = False
    for k in ref_keys:
        if k not in keys:
            continue
        value_type = type(ref_dict[k])
        if not isinstance(dikt[k], value_type):
            msg_update_callback.error(
                f"{location} key '{k}': value type should be "
                f"'{_type_to_string[value_type]}'")
            bad_value = True

    if missing_keys:
        raise KeyError(f"Missing and/or invalid key in {location}")
    if bad_value:
        raise TypeError(f"Incorrect type for property value(s) in {location}")


def str_to_bool(s):
    """Convert string boolean values to bool.

    The conversion is case insensitive.

    :param s: input string

    :return: True if val is 'true' otherwise False
    """
    return str(s).lower() == 'true'


def extract_id_from_href(href):
    """Extract id from an href.

    'https://vmware.com/api/admin/user/123456' will return 123456

    :param str href: an href

    :return: id
    """
    if not href:
        return None
    if '/' in href:
        return href.split('/')[-1]
    return href


def extract_uuid_from_urn(urn):
    """Extract the uuid part of a VCD URN.

    'urn:vcloud:org:a93c9db9-7471-3192-8d09-a8f7eeda85f9' will return
    'a93c9db9-7471-3192-8d09-a8f7eeda85f9'
    """
    if not urn:
        return None
    return urn.split(':')[-1]


def extract_uuid(text):
    """Extract the last uuid found in a URN or an href.

    'https://vcd.vmware.com/api/vAppTemplate/vappTemplate-<uuid>' and
    'urn:vcloud:vapptemplate:<uuid>' will both return '<uuid>'

    :return: the uuid, or None if there is none
    """
    if not text:
        return None
    matches = _UUID_PATTERN.findall(str(text).lower())
    if not matches:
        return None
    return matches[-1]


def copy_or_new_query_params(query_params):
    """Return a shallow copy of the query parameters, or an empty dict."""
    if not query_params:
        return {}
    return dict(query_params)


def query_parameter_filter_and(filter_expression, query_params=None):
    """AND a FIQL filter with the filter already present in query params.

    The supplied query parameters are not mutated.

    :param str filter_expression: e.g. 'name==foo'
    :param dict query_params: existing query parameters

    :return: new query parameters
    :rtype: dict
    """
    new_params = copy_or_new_query_params(query_params)
    existing_filter = new_params.get(QueryParameterKey.FILTER.value)
    if not existing_filter:
        new_params[QueryParameterKey.FILTER.value] = filter_expression
    else:
        new_params[QueryParameterKey.FILTER.value] = \
            f"{existing_filter};{filter_expression}"
    return new_params


def should_do_slow_search(filter_key, filter_value):
    """Check if a value can't be looked up with a server side filter.

    FIQL filters break on some characters. For such values the caller has to
    retrieve everything and filter on the client side.

    :param str filter_key: field to filter on
    :param str filter_value: value to look for

    :return: (True, None) if a client side search is needed, (False,
        query params with the filter) otherwise.
    :rtype: tuple
    """
    if any(c in filter_value for c in _UNSAFE_FILTER_VALUE_CHARACTERS):
        return True, None
    return False, {
        QueryParameterKey.FILTER.value: f"{filter_key}=={filter_value}",
        QueryParameterKey.FILTER_ENCODED.value: 'true'
    }
