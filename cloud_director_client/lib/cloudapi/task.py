# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from datetime import datetime
import time

from cloud_director_client.common.constants.shared_constants import DEFAULT_TASK_POLL_SEC  # noqa: E501
from cloud_director_client.common.constants.shared_constants import TASK_IN_PROGRESS_STATUSES  # noqa: E501
from cloud_director_client.common.constants.shared_constants import TaskStatus  # noqa: E501
from cloud_director_client.exception.exceptions import TaskError
from cloud_director_client.logging.logger import NULL_LOGGER


class Task:
    """A VCD task, tracked through its href.

    Tasks are XML resources, they are read with the pyvcloud client that
    owns the session.
    """

    def __init__(self, vcd_client, href: str, logger_debug=NULL_LOGGER):
        self._client = vcd_client
        self._href = href
        self._resource = None
        self.LOGGER = logger_debug

    @property
    def href(self):
        return self._href

    @property
    def resource(self):
        return self._resource

    @property
    def status(self):
        if self._resource is None:
            return None
        return self._resource.get('status')

    @property
    def owner_id(self):
        """Id of the entity the task is working on.

        :rtype: str
        """
        if self._resource is None:
            self.refresh()
        owner = getattr(self._resource, 'Owner', None)
        if owner is None:
            raise TaskError(f"task {self._href} has no owner")
        owner_id = owner.get('id')
        if not owner_id:
            owner_id = owner.get('href', '').rstrip('/').split('/')[-1]
        return owner_id

    def get_description(self):
        description = getattr(self._resource, 'Description', None)
        if description is not None and description.text:
            return description.text
        error = getattr(self._resource, 'Error', None)
        if error is not None:
            return error.get('message', '')
        return ''

    def refresh(self):
        """Read the latest state of the task from VCD.

        :return: task XML resource

        :rtype: lxml.objectify.ObjectifiedElement

        :raises TaskError: if the task is empty or can't be read
        """
        if not self._href:
            raise TaskError("cannot refresh, object is empty")
        try:
            self._resource = self._client.get_resource(self._href)
        except Exception as err:
            raise TaskError(f"error retrieving task: {err}") from err
        return self._resource

    def wait_inspect_task_completion(self, inspection_func=None,
                                     delay=DEFAULT_TASK_POLL_SEC):
        """Wait for the task to finish, calling back on every refresh.

        :param callable inspection_func: optional callable with signature
            (task, how_many_times, elapsed, first, last). `elapsed` is a
            datetime.timedelta.
        :param int delay: seconds to sleep between refreshes

        :raises TaskError: if the task finishes with status error or aborted
        """
        if not self._href:
            raise TaskError("cannot refresh, object is empty")

        how_many_times = 0
        start_time = datetime.now()
        while True:
            how_many_times += 1
            elapsed = datetime.now() - start_time
            self.refresh()
            status = self.status

            if status not in TASK_IN_PROGRESS_STATUSES:
                if inspection_func:
                    inspection_func(self, how_many_times, elapsed,
                                    how_many_times == 1,
                                    status in (TaskStatus.ERROR.value,
                                               TaskStatus.SUCCESS.value))
                if status in (TaskStatus.ERROR.value,
                              TaskStatus.ABORTED.value):
                    raise TaskError("task did not complete successfully: "
                                    f"{self.get_description()}")
                self.LOGGER.debug(f"Task {self._href} finished with status "
                                  f"'{status}'")
                return

            if inspection_func:
                inspection_func(self, how_many_times, elapsed,
                                how_many_times == 1, False)
            time.sleep(delay)

    def wait_task_completion(self, delay=DEFAULT_TASK_POLL_SEC):
        self.wait_inspect_task_completion(None, delay)

    def get_result_content(self) -> str:
        """Get the result content of a finished task, e.g. of a behavior.

        :rtype: str
        """
        if self._resource is None:
            self.refresh()
        result = getattr(self._resource, 'Result', None)
        if result is None:
            return ''
        content = getattr(result, 'ResultContent', None)
        if content is None or content.text is None:
            return ''
        return str(content.text)

    def get_task_progress(self) -> str:
        """Get the progress percentage of the task.

        :rtype: str

        :raises TaskError: if the task failed
        """
        self.refresh()
        if self.status == TaskStatus.ERROR.value:
            raise TaskError("task did not complete successfully: "
                            f"{self.get_description()}")
        progress = getattr(self._resource, 'Progress', None)
        if progress is None or progress.text is None:
            return '0'
        return str(progress.text)
