# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

"""Loggers of the client.

Log files live in ~/.vcd-client-logs and rotate at 8MB, keeping 10 old
files. Every handler redacts tokens and passwords.

    vcd-client-info.log    client messages, INFO and above
    vcd-client-debug.log   client messages, DEBUG and above
    cloudapi-wire.log      OpenAPI requests and responses
    pyvcloud-wire.log      XML API requests and responses, written by pyvcloud
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from cloud_director_client.common.utils.init_utils import run_once
from cloud_director_client.security.security import RedactingFilter

_MAX_BYTES = 2**23
_BACKUP_COUNT = 10

_DATE_FORMAT = '%y-%m-%d %H:%M:%S'
INFO_LOG_FORMATTER = logging.Formatter(
    fmt='%(asctime)s | %(levelname)s :: %(message)s', datefmt=_DATE_FORMAT)
DEBUG_LOG_FORMATTER = logging.Formatter(
    fmt='%(asctime)s | %(module)s:%(lineno)s - %(funcName)s | '
        '%(levelname)s :: %(message)s',
    datefmt=_DATE_FORMAT)

LOGS_DIR_NAME = Path.home() / '.vcd-client-logs'

CLIENT_LOGGER_NAME = 'cloud_director_client.client'
CLIENT_INFO_LOG_FILEPATH = f"{LOGS_DIR_NAME}/vcd-client-info.log"
CLIENT_DEBUG_LOG_FILEPATH = f"{LOGS_DIR_NAME}/vcd-client-debug.log"
CLIENT_LOGGER = logging.getLogger(CLIENT_LOGGER_NAME)

# Only written when a CloudApiClient is given this logger, see
# 'client.log_wire' in the config file
CLIENT_CLOUDAPI_WIRE_LOGGER_NAME = 'cloud_director_client.cloudapi-wire'
CLIENT_CLOUDAPI_WIRE_LOG_FILEPATH = f"{LOGS_DIR_NAME}/cloudapi-wire.log"
CLIENT_CLOUDAPI_WIRE_LOGGER = logging.getLogger(CLIENT_CLOUDAPI_WIRE_LOGGER_NAME)  # noqa: E501

# pyvcloud opens this file itself, see 'vcd.log' in the config file
CLIENT_PYVCLOUD_WIRELOG_FILEPATH = f"{LOGS_DIR_NAME}/pyvcloud-wire.log"

NULL_LOGGER = logging.getLogger('cloud_director_client.null-logger')


@run_once
def setup_log_file_directory():
    """Create directory for log files."""
    Path(LOGS_DIR_NAME).mkdir(parents=True, exist_ok=True)


def _add_file_handler(logger, filepath, level, formatter, redacting_filter):
    handler = RotatingFileHandler(filepath, maxBytes=_MAX_BYTES,
                                  backupCount=_BACKUP_COUNT, delay=True)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(redacting_filter)
    logger.addHandler(handler)


@run_once
def configure_all_file_loggers():
    """Attach the rotating file handlers to the client loggers."""
    setup_log_file_directory()
    redacting_filter = RedactingFilter()

    CLIENT_LOGGER.setLevel(logging.DEBUG)
    _add_file_handler(CLIENT_LOGGER, CLIENT_INFO_LOG_FILEPATH, logging.INFO,
                      INFO_LOG_FORMATTER, redacting_filter)
    _add_file_handler(CLIENT_LOGGER, CLIENT_DEBUG_LOG_FILEPATH,
                      logging.DEBUG, DEBUG_LOG_FORMATTER, redacting_filter)

    CLIENT_CLOUDAPI_WIRE_LOGGER.setLevel(logging.DEBUG)
    _add_file_handler(CLIENT_CLOUDAPI_WIRE_LOGGER,
                      CLIENT_CLOUDAPI_WIRE_LOG_FILEPATH, logging.DEBUG,
                      DEBUG_LOG_FORMATTER, redacting_filter)


@run_once
def configure_null_logger():
    """Make NULL_LOGGER drop everything."""
    NULL_LOGGER.addHandler(logging.NullHandler())
    NULL_LOGGER.propagate = False
