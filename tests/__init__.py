# Copyright Red Hat
#
# tests/__init__.py - Bootspec test package initialisation
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
from os.path import join, abspath
from os import environ, getcwd, geteuid, getegid, makedirs
import logging
import shutil
import errno

import bootspec

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

# Root of the testing directory
TESTS_ROOT = abspath("./tests")

# Location of the test ESP data (loader.conf and entries)
ESP_ROOT_TEST = TESTS_ROOT

# Location of the temporary sandbox for test data
SANDBOX_PATH = join(TESTS_ROOT, "sandbox")

# Test sandbox functions

def rm_sandbox():
    """Remove the test sandbox at SANDBOX_PATH.
    """
    try:
        shutil.rmtree(SANDBOX_PATH)
    except OSError as e:
        if e.errno != errno.ENOENT:
            raise


def mk_sandbox():
    """Create a new test sandbox at SANDBOX_PATH.
    """
    makedirs(SANDBOX_PATH)


def reset_sandbox():
    """Reset the test sandbox at SANDBOX_PATH by removing it and
        re-creating the directory.
    """
    rm_sandbox()
    mk_sandbox()


def mk_esp_sandbox():
    """Copy the test loader configuration and entries into the sandbox
        and return the path of the sandbox ESP root.
    """
    reset_sandbox()
    esp_sandbox = join(SANDBOX_PATH, "esp")
    makedirs(esp_sandbox)
    shutil.copytree(join(ESP_ROOT_TEST, "loader"), join(esp_sandbox, "loader"))
    return esp_sandbox


def reset_bootspec_config():
    """Reset the active bootspec configuration to the default values.
    """
    bootspec.set_bootspec_config(bootspec.BootSpecConfig())
    bootspec.set_debug_mask(0)


def set_mock_path():
    """Set the PATH environment variable to tests/bin to include mock
        binaries used in the bootspec test suite.
    """
    os_path = environ['PATH']
    os_path = join(getcwd(), "tests/bin") + ":" + os_path
    environ['PATH'] = os_path


def write_efi_var(efivars_path, name, value,
                  vendor="4a67b082-0a4c-41cf-b6c7-440b29bb8c4f"):
    """Write a boot loader string variable in efivarfs format (four
        attribute bytes followed by a NUL-terminated UTF-16LE string).
    """
    var_path = join(efivars_path, "%s-%s" % (name, vendor))
    data = b"\x07\x00\x00\x00" + (value + "\0").encode("utf-16-le")
    with open(var_path, "wb") as f:
        f.write(data)
    return var_path

# Test predicates

def have_root():
    """Return ``True`` if the test suite is running as the root user,
        and ``False`` otherwise.
    """
    return geteuid() == 0 and getegid() == 0


__all__ = [
    'TESTS_ROOT', 'ESP_ROOT_TEST', 'SANDBOX_PATH',
    'rm_sandbox', 'mk_sandbox', 'reset_sandbox', 'mk_esp_sandbox',
    'reset_bootspec_config', 'set_mock_path', 'write_efi_var',
    'have_root'
]

# vim: set et ts=4 sw=4 :
