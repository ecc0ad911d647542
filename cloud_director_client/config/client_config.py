# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""
Client Config object allows for thread safe access to the inner dictionary.

The inner dictionary must follow the following constraints.
* Each value should be of basic type, dict or list. The dictionary can be a
    nested dictionary.
* To access any node in the nested dictionary, dot-notation joined key should
    be used.

E.g.
config = {
    vcd : {
        host: vcd.vmware.com,
        verify: True
    },
    client: {
        default_page_size: 128
    }
}

To access the host, use key : "vcd.host"
To access the page size, use key : "client.default_page_size"
"""

from copy import deepcopy
import re
import threading
from typing import Dict, List, Union

import yaml

from cloud_director_client.common.utils.core_utils import check_keys_and_value_types  # noqa: E501
from cloud_director_client.common.utils.core_utils import NullPrinter
from cloud_director_client.config.config_constants import CONFIG_FILE_HEADER
from cloud_director_client.config.config_constants import OPTIONAL_VCD_KEYS
from cloud_director_client.config.config_constants import SAMPLE_CLIENT_CONFIG
from cloud_director_client.config.config_constants import SAMPLE_VCD_CONFIG
from cloud_director_client.exception.exceptions import ConfigValidationError
from cloud_director_client.logging.logger import NULL_LOGGER


_INDEX_PATTERN = re.compile(r'^\[(\d+)\]$')


def _get_element(node: Union[List, Dict], fragment: str, key: str):
    """Get the child of a config node.

    List items are addressed by '[n]' fragments, e.g. 'hosts.[0].name'.

    :raises KeyError: if the child does not exist
    :raises TypeError: if the node is neither a dict nor a list
    """
    if isinstance(node, dict):
        if fragment not in node:
            raise KeyError(f"Key fragment '{fragment}' of key '{key}' not "
                           "found.")
        return node[fragment]
    if isinstance(node, list):
        match = _INDEX_PATTERN.match(fragment)
        if not match:
            raise KeyError(f"Invalid key fragment '{fragment}' of key "
                           f"'{key}'. Expected index in [n] format.")
        index = int(match.group(1))
        if index >= len(node):
            raise KeyError(f"Out of bound index '{index}' in key fragment "
                           f"'{fragment}' of key '{key}'.")
        return node[index]
    raise TypeError(f"For key fragment '{fragment}' of key '{key}'. "
                    f"Expected dictionary/list, received '{type(node)}'.")


class ClientConfig:
    def __init__(self, config: dict):
        self._lock = threading.Lock()
        self._config = config

    def get_value_at(self, key: str) -> Union[bool, Dict, float, int, List, str]:  # noqa: E501
        """Get a value by its dot-notation key, e.g. 'vcd.host'."""
        with self._lock:
            element = self._config
            for fragment in key.split("."):
                element = _get_element(element, fragment, key)
        return element

    def set_value_at(self, key: str, value: object):
        """Set a value by its dot-notation key and return the old value."""
        tokens = key.split(".")
        with self._lock:
            parent = self._config
            for fragment in tokens[:-1]:
                parent = _get_element(parent, fragment, key)
            if not isinstance(parent, dict):
                raise ValueError(
                    f"Expected dictionary but found '{type(parent)}' for "
                    f"key fragment '{tokens[-1]}' in key '{key}'")
            old_value = parent.get(tokens[-1])
            parent[tokens[-1]] = value
        return old_value

    def to_dict(self) -> dict:
        with self._lock:
            return deepcopy(self._config)


def get_validated_config(config_file_name,
                         logger_debug=NULL_LOGGER,
                         msg_update_callback=NullPrinter()) -> ClientConfig:
    """Read the config file and check for validity.

    Ensures that all required properties exist and that all values are of the
    expected type. Missing optional properties get their default values.

    :param str config_file_name: path to config file.
    :param logging.Logger logger_debug: logger to log with.
    :param NullPrinter msg_update_callback: Callback object.

    :return: client config

    :rtype: ClientConfig

    :raises ConfigValidationError: if the file is not valid YAML, if
        properties are missing, or if value types are incorrect.
    """
    msg_update_callback.info(f"Validating config file '{config_file_name}'")
    try:
        with open(config_file_name) as config_file:
            config = yaml.safe_load(config_file) or {}
    except yaml.YAMLError as err:
        raise ConfigValidationError(
            f"Config file '{config_file_name}' is not valid YAML: {err}") \
            from err
    if not isinstance(config, dict):
        raise ConfigValidationError(
            f"Config file '{config_file_name}' should contain a mapping")

    try:
        check_keys_and_value_types(config, SAMPLE_VCD_CONFIG,
                                   location='config file',
                                   msg_update_callback=msg_update_callback)
        check_keys_and_value_types(config['vcd'], SAMPLE_VCD_CONFIG['vcd'],
                                   location="config file 'vcd' section",
                                   excluded_keys=OPTIONAL_VCD_KEYS,
                                   msg_update_callback=msg_update_callback)
        client_section = config.get('client') or {}
        check_keys_and_value_types(client_section,
                                   SAMPLE_CLIENT_CONFIG['client'],
                                   location="config file 'client' section",
                                   excluded_keys=list(SAMPLE_CLIENT_CONFIG['client'].keys()),  # noqa: E501
                                   msg_update_callback=msg_update_callback)
    except (KeyError, TypeError) as err:
        raise ConfigValidationError(str(err)) from err

    config['vcd'].setdefault('api_version', None)
    config['vcd'].setdefault('log', False)
    config['client'] = {**SAMPLE_CLIENT_CONFIG['client'], **client_section}
    if config['client']['default_page_size'] <= 0:
        raise ConfigValidationError(
            "config file 'client' section key 'default_page_size' should be "
            "a positive number")

    msg_update_callback.general(
        f"Config file '{config_file_name}' is valid")
    logger_debug.info(f"Config file '{config_file_name}' is valid")
    return ClientConfig(config)


def generate_sample_config(output_file_name=None) -> str:
    """Generate a sample config file text.

    If output config file name is provided, config is dumped into the file.

    :param str output_file_name: name of the file to write the sample to.

    :return: sample config

    :rtype: str
    """
    sample_config_text = CONFIG_FILE_HEADER + '\n'
    sample_config_text += yaml.safe_dump(SAMPLE_VCD_CONFIG, default_flow_style=False) + '\n'  # noqa: E501
    sample_config_text += yaml.safe_dump(SAMPLE_CLIENT_CONFIG, default_flow_style=False)  # noqa: E501

    if output_file_name:
        with open(output_file_name, 'w') as output_file:
            output_file.write(sample_config_text)
    return sample_config_text
