# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

import importlib
import importlib.resources as pkg_resources


def get_package_file_contents(package_path: str, filename: str) -> str:
    """Get file content from a package.

    :param str package_path: dotted path of the package holding the file
    :param str filename: name of file to be read
    """
    out_module = importlib.import_module(package_path)
    with pkg_resources.open_text(out_module, filename) as out_file:
        out = out_file.read()
    return out
