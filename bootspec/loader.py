# Copyright Red Hat
#
# bootspec/loader.py - Bootspec boot loader configuration
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""The ``bootspec.loader`` module reads the boot loader configuration
stored on an EFI System Partition and assembles it, together with the
boot entries found on the partition and the boot loader EFI variables,
into a ``BootConfig`` object.

The loader configuration file (``loader/loader.conf``) uses the same
``key value`` syntax as boot entries. The ``default``, ``timeout``, and
``editor`` keys are recognised.
"""
from os.path import join as path_join
import logging

from bootspec import *
from bootspec.bootloader import (
    ENTRIES_PATH,
    find_entries,
    select_default_entry,
    uniquify_titles,
)
from bootspec.efivars import (
    EFI_VAR_ENTRY_DEFAULT,
    EFI_VAR_ENTRY_ONESHOT,
    get_loader_variable,
)
from bootspec.esp import EspNotFoundError, find_esp

#: The path to the loader configuration file relative to the ESP
LOADER_CONF_PATH = "loader/loader.conf"

#: Map loader configuration keys to ``BootConfig`` attribute names
LOADER_KEY_MAP = {
    "default": "default_pattern",
    "timeout": "timeout",
    "editor": "editor",
}

# Module logging configuration
_log = logging.getLogger(__name__)
_log.set_debug_mask(BOOTSPEC_DEBUG_LOADER)

_log_debug = _log.debug
_log_debug_loader = _log.debug_masked
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class BootConfig(object):
    """Class representing the boot configuration of an ESP: the loader
    settings, the boot loader variables, the sorted list of boot
    entries, and the index of the default entry.
    """

    default_pattern = None
    timeout = None
    editor = None

    entry_oneshot = None
    entry_default = None

    entries = None
    default_entry = None

    def __init__(self):
        self.entries = []

    def __repr__(self):
        cstr = "BootConfig(default_pattern=%s, timeout=%s, editor=%s, " % (
            repr(self.default_pattern),
            repr(self.timeout),
            repr(self.editor),
        )
        cstr += "entry_oneshot=%s, entry_default=%s, " % (
            repr(self.entry_oneshot),
            repr(self.entry_default),
        )
        cstr += "entries=%d, default_entry=%s)" % (
            len(self.entries),
            self.default_entry,
        )
        return cstr

    @property
    def default_boot_entry(self):
        """The selected default ``BootEntry``, or ``None``.

        :rtype: BootEntry
        """
        if self.default_entry is None:
            return None
        return self.entries[self.default_entry]


def read_loader_conf(path, config=None):
    """Read the loader configuration file at ``path``.

    :param path: The path to a ``loader.conf`` file.
    :param config: A ``BootConfig`` to update, or ``None`` to create a
                   new one.
    :returns: The updated ``BootConfig``.
    :rtype: BootConfig
    :raises: ``BootSpecFileError`` if the file cannot be read.
    """
    config = config if config is not None else BootConfig()
    _log_debug_loader("Reading loader configuration from '%s'", path)

    for line, key, value in read_key_value_file(path):
        if key not in LOADER_KEY_MAP:
            _log_info('%s:%d: Unknown line "%s"', path, line, key)
            continue
        setattr(config, LOADER_KEY_MAP[key], value)

    return config


def load_boot_config(esp_path, get_variable=None):
    """Load the boot configuration of the ESP mounted at ``esp_path``.

    :param esp_path: The ESP mount point.
    :param get_variable: A function returning the value of a boot
                         loader variable or ``None`` if it is not set,
                         or ``None`` to read EFI variables.
    :returns: A new ``BootConfig``.
    :rtype: BootConfig
    :raises: ``BootSpecError`` if the configuration cannot be loaded.
    """
    get_variable = get_variable or get_loader_variable

    conf_path = path_join(esp_path, LOADER_CONF_PATH)
    try:
        config = read_loader_conf(conf_path)
    except BootSpecError as e:
        _log_error('Failed to read boot config from "%s": %s', conf_path, e)
        raise

    entries_path = path_join(esp_path, ENTRIES_PATH)
    try:
        config.entries = find_entries(entries_path)
    except BootSpecError as e:
        _log_error('Failed to read boot entries from "%s": %s', entries_path, e)
        raise

    uniquify_titles(config.entries)

    config.entry_oneshot = get_variable(EFI_VAR_ENTRY_ONESHOT)
    config.entry_default = get_variable(EFI_VAR_ENTRY_DEFAULT)

    config.default_entry = select_default_entry(
        config.entries,
        entry_oneshot=config.entry_oneshot,
        entry_default=config.entry_default,
        default_pattern=config.default_pattern,
    )
    _log_debug("Loaded boot configuration: %s", repr(config))
    return config


def load_esp_config(esp_path=None, get_variable=None):
    """Locate the ESP and load its boot configuration.

    :param esp_path: An explicit ESP mount point, or ``None`` to
                     search the configured candidate mount points.
    :param get_variable: A boot loader variable lookup function, as
                         for ``load_boot_config()``.
    :returns: A new ``BootConfig``.
    :rtype: BootConfig
    :raises: ``EspNotFoundError`` if no ESP could be located, or
             ``BootSpecError`` if the configuration cannot be loaded.
    """
    found = find_esp(esp_path)
    if not found:
        raise EspNotFoundError("Could not find an EFI System Partition (ESP).")
    (esp_path, _) = found
    return load_boot_config(esp_path, get_variable=get_variable)


__all__ = [
    "LOADER_CONF_PATH",
    "LOADER_KEY_MAP",
    "BootConfig",
    "read_loader_conf",
    "load_boot_config",
    "load_esp_config",
]

# vim: set et ts=4 sw=4 :
