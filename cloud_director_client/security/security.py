# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from collections.abc import Mapping
import logging
from numbers import Number
import re

REDACTED = '[REDACTED]'

# Keys compared in lower case. Besides the session headers, cluster RDEs
# carry the API token of the cluster owner and the CAPI YAML Secret carries
# it again as refreshToken.
SENSITIVE_KEYS = frozenset([
    'authorization',
    'x-vcloud-authorization',
    'x-vmware-vcloud-access-token',
    'apitoken',
    'api_token',
    'refreshtoken',
    'refresh_token',
    'kubeconfig',
    'secret',
    'password',
])

# key: value, 'key': 'value', "key": "value" and YAML `key: value` lines.
# The value runs until the next quote, comma, closing brace or line end.
_KEY_VALUE_PATTERN = re.compile(
    r"((?:" + "|".join(re.escape(key) for key in sorted(SENSITIVE_KEYS)) +
    r")[\"']?:\s+[{\[]*[\"']?)([^'\",}\n]+)",
    flags=re.IGNORECASE)
_BEARER_PATTERN = re.compile(r"(Bearer\s+)([^\s'\",}]+)", flags=re.IGNORECASE)


class RedactingFilter(logging.Filter):
    """Filter to hide tokens and passwords in log records.

    Handlers of the client loggers carry it, so wire logs of requests and
    responses are safe to share.
    """

    def filter(self, record):
        """Redact the message and the arguments of a record.

        :param logging.LogRecord record:

        :return: always True, records are never dropped

        :rtype: bool
        """
        record.msg = self.redact(record.msg)
        if record.args:
            record.args = self.redact(record.args)
        return True

    def redact(self, obj):
        """Redact sensitive values in an object.

        Mappings keep their structure, with the values of sensitive keys
        replaced at any depth. Lists and tuples become tuples. Numbers and
        None are returned as they are, anything else is redacted as text.

        :param object obj:

        :rtype: object
        """
        if obj is None or isinstance(obj, Number):
            return obj
        if isinstance(obj, Mapping):
            return {key: REDACTED if str(key).lower() in SENSITIVE_KEYS
                    else self.redact(value)
                    for key, value in obj.items()}
        if isinstance(obj, (list, tuple)):
            return tuple(self.redact(item) for item in obj)
        text = _KEY_VALUE_PATTERN.sub(r"\1" + REDACTED, str(obj))
        return _BEARER_PATTERN.sub(r"\1" + REDACTED, text)
