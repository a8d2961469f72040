# Copyright Red Hat
#
# synclink/__init__.py - Hard link tree synchroniser package initialisation
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Synclink top-level package.
"""
from ._synclink import *  # noqa: F401, F403
from ._synclink import __all__  # noqa: F401

__version__ = "0.1.0"
