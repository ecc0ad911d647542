# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import cloud_director_client.logging.logger
from cloud_director_client.logging.logger import configure_null_logger

cloud_director_client.logging.logger.configure_all_file_loggers()
configure_null_logger()
