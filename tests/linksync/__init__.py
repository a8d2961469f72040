# Copyright Red Hat
#
# tests/linksync/__init__.py - Hard link tree synchroniser core tests
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
