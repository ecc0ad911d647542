#!/usr/bin/env python

# cloud-director-client
# Copyright (c) 2024 VMware, Inc. All Rights Reserved.
# SPDX-License-Identifier: BSD-2-Clause

from setuptools import find_namespace_packages
from setuptools import setup

setup(
    name='cloud-director-client',
    version='1.0.0',
    description='OpenAPI, Runtime Defined Entity and Container Service '
                'Extension cluster client for VMware Cloud Director',
    license='BSD-2-Clause',
    python_requires='>=3.7',
    packages=find_namespace_packages(include=['cloud_director_client*']),
    package_data={
        'cloud_director_client.cse.templates': ['tkg_versions.json'],
        'cloud_director_client.cse.templates.v4_1': ['*.tmpl'],
    },
    install_requires=[
        'dataclasses-json>=0.5.8',
        'PyYAML>=5.4.1',
        'pyvcloud>=23.0.4',
        'requests>=2.25.1',
        'semantic_version>=2.8.5',
    ],
    extras_require={
        'test': [
            'lxml>=4.6.3',
            'pytest>=6.2.4',
        ],
    },
)
