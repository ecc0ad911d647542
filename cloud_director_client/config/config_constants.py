# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from cloud_director_client.common.constants.shared_constants import DEFAULT_OPENAPI_PAGE_SIZE  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_STATE_WAIT_DELAY_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_STATE_WAIT_TIMEOUT_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import DEFAULT_TASK_POLL_SEC  # noqa: E501

CONFIG_FILE_HEADER = "\
# Configuration file of cloud-director-client.\n\
#\n\
# 'vcd' section holds the connection settings to VMware Cloud Director.\n\
#   'org' is the organization to log in to, use 'System' for provider\n\
#   administrators. 'api_version' is optional, when missing the highest\n\
#   API version supported by VCD is used.\n\
# 'client' section is optional, missing keys get default values.\n\
#   'log_wire' turns on logging of all OpenAPI requests and responses to\n\
#   ~/.vcd-client-logs/cloudapi-wire.log. Sensitive values are redacted.\n"

SAMPLE_VCD_CONFIG = {
    'vcd': {
        'host': 'vcd.vmware.com',
        'org': 'System',
        'username': 'administrator',
        'password': 'my_secret_password',
        'api_version': '37.2',
        'verify': True,
        'log': False
    }
}

# keys of 'vcd' section that can be left out
OPTIONAL_VCD_KEYS = ['api_version', 'log']

SAMPLE_CLIENT_CONFIG = {
    'client': {
        'default_page_size': DEFAULT_OPENAPI_PAGE_SIZE,
        'task_poll_seconds': DEFAULT_TASK_POLL_SEC,
        'state_wait_timeout_seconds': DEFAULT_STATE_WAIT_TIMEOUT_SEC,
        'state_wait_delay_seconds': DEFAULT_STATE_WAIT_DELAY_SEC,
        'log_wire': False
    }
}
