#!/usr/bin/env python3

# Copyright 2023 NVIDIA Corporation
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from setuptools import find_packages, setup

setup(
    name="pgarray",
    version="0.1.0",
    description="pgarray - Partitioned global address space block arrays",
    author="NVIDIA Corporation",
    license="Apache 2.0",
    classifiers=[
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.9",
    extras_require={
        "test": [
            "coverage",
            "mypy>=0.961",
            "pytest-cov",
            "pytest-mock",
            "pytest",
        ]
    },
    packages=find_packages(
        where=".",
        include=[
            "pgarray",
            "pgarray.*",
        ],
    ),
    include_package_data=True,
    install_requires=[
        "colorama",
        "numpy>=1.22",
        "typing_extensions",
    ],
    zip_safe=False,
)
