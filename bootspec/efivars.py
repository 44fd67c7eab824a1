# Copyright Red Hat
#
# bootspec/efivars.py - Bootspec EFI boot loader variables
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""The ``bootspec.efivars`` module reads the EFI variables that a Boot
Loader Interface compatible boot manager (for e.g. systemd-boot) uses
to communicate with the running system.

Variables are read from the efivarfs file system (normally mounted at
``/sys/firmware/efi/efivars``; see ``bootspec.set_efivars_path()``).
A variable that does not exist, including on systems that were not
booted via EFI, is reported as ``None``.
"""
from os.path import join as path_join
from typing import Optional
import logging

from bootspec import (
    BootSpecError,
    BOOTSPEC_DEBUG_EFI,
    get_efivars_path,
)

#: The vendor GUID of the boot loader interface variables.
LOADER_VENDOR_GUID = "4a67b082-0a4c-41cf-b6c7-440b29bb8c4f"

#: The boot loader entry to use for the next boot only.
EFI_VAR_ENTRY_ONESHOT = "LoaderEntryOneShot"
#: The boot loader entry to use by default.
EFI_VAR_ENTRY_DEFAULT = "LoaderEntryDefault"

#: The length of the attribute header preceding efivarfs data.
_EFI_ATTR_LEN = 4

# Module logging configuration
_log = logging.getLogger(__name__)
_log.set_debug_mask(BOOTSPEC_DEBUG_EFI)

_log_debug = _log.debug
_log_debug_efi = _log.debug_masked
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class EfiVariableError(BootSpecError):
    """Bootspec exception indicating that an EFI variable exists but
    could not be read or decoded.
    """

    @staticmethod
    def read_failed(name, err):
        return EfiVariableError(f'Failed to read EFI var "{name}": {err}')

    @staticmethod
    def malformed(name):
        return EfiVariableError(f'EFI var "{name}" has malformed contents')


def efi_variable_path(name: str, vendor: str = LOADER_VENDOR_GUID) -> str:
    """Return the efivarfs path of the variable ``name``.

    :param name: The variable name.
    :param vendor: The variable vendor GUID.
    :rtype: str
    """
    return path_join(get_efivars_path(), f"{name}-{vendor}")


def read_efi_variable(name: str, vendor: str = LOADER_VENDOR_GUID) -> Optional[bytes]:
    """Return the raw data of an EFI variable without its attribute
    header, or ``None`` if the variable is not set.

    :param name: The variable name.
    :param vendor: The variable vendor GUID.
    :rtype: bytes
    :raises: ``EfiVariableError`` if the variable cannot be read.
    """
    var_path = efi_variable_path(name, vendor)
    try:
        with open(var_path, "rb") as f:
            data = f.read()
    except FileNotFoundError:
        _log_debug_efi("EFI var '%s' is not set", name)
        return None
    except OSError as e:
        _log_error('Failed to read EFI var "%s": %s', name, e)
        raise EfiVariableError.read_failed(name, e) from e

    if len(data) < _EFI_ATTR_LEN:
        raise EfiVariableError.malformed(name)
    return data[_EFI_ATTR_LEN:]


def get_loader_variable(name: str) -> Optional[str]:
    """Return the value of the boot loader string variable ``name``,
    or ``None`` if the variable is not set.

    Boot loader string variables are NUL-terminated UTF-16LE strings.

    :param name: The variable name (for e.g. ``LoaderEntryDefault``).
    :rtype: str
    :raises: ``EfiVariableError`` if the variable cannot be read or
             decoded.
    """
    data = read_efi_variable(name)
    if data is None:
        return None
    if len(data) % 2:
        raise EfiVariableError.malformed(name)
    try:
        value = data.decode("utf-16-le")
    except UnicodeDecodeError as e:
        raise EfiVariableError.malformed(name) from e
    value = value.split("\0", 1)[0]
    _log_debug_efi("Read EFI var '%s': '%s'", name, value)
    return value


__all__ = [
    "LOADER_VENDOR_GUID",
    "EFI_VAR_ENTRY_ONESHOT",
    "EFI_VAR_ENTRY_DEFAULT",
    "EfiVariableError",
    "efi_variable_path",
    "read_efi_variable",
    "get_loader_variable",
]

# vim: set et ts=4 sw=4 :
