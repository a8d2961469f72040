# Copyright Red Hat
#
# tests/__init__.py - Hard link tree synchroniser test package
#
# This file is part of the synclink project.
#
# SPDX-License-Identifier: Apache-2.0
import logging

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)


class MockArgs(object):
    source = None
    dest = None
    debug = None
    verbose = 0
    version = False
    keep_snapshots = False
    workdir = None
    compression = None
    sort_algorithm = None
    one_file_system = None
    quiet = True
    program = "synclink"
