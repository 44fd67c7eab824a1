# Copyright Red Hat
#
# bootspec/config.py - Bootspec persistent configuration
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""The ``bootspec.config`` module defines classes, constants and
functions for reading persistent (on-disk) configuration for the
bootspec library.

Users of the module can load configuration data, and make it the
active ``BootSpecConfig`` for the package.
"""
from configparser import ConfigParser, ParsingError
from os.path import isabs
import logging

from bootspec import *


class BootSpecConfigError(BootSpecError):
    """Base class for bootspec configuration errors."""

    pass


# Module logging configuration
_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#
# Constants for configuration sections and options: to add a new option,
# create a new _CFG_* constant giving the name of the option and add a
# hook to _read_bootspec_config() to set the value when read.
#
_CFG_SECT_GLOBAL = "global"
_CFG_SECT_ESP = "esp"
_CFG_SECT_EFI = "efi"
_CFG_ESP_PATH = "esp_path"
_CFG_ESP_CANDIDATES = "candidates"
_CFG_EFIVARS_PATH = "efivars_path"


def _read_bootspec_config(path=None):
    """Read bootspec persistent configuration values from the defined
    path and return them as a ``BootSpecConfig`` object.

    :param path: the configuration file to read, or None to read the
                 default config file path.

    :rtype: BootSpecConfig
    """
    path = path or DEFAULT_BOOTSPEC_CONFIG_PATH
    _log_debug("reading bootspec configuration from '%s'", path)
    cfg = ConfigParser()
    try:
        cfg.read(path)
    except ParsingError as e:
        _log_error("Failed to parse configuration file '%s': %s", path, e)
        raise BootSpecConfigError(
            "Failed to parse configuration file '%s'" % path
        ) from e

    bc = BootSpecConfig()

    if not cfg.has_section(_CFG_SECT_GLOBAL):
        raise ValueError("Missing 'global' section in %s" % path)

    if cfg.has_option(_CFG_SECT_GLOBAL, _CFG_ESP_PATH):
        _log_debug("Found global.esp_path")
        esp_path = cfg.get(_CFG_SECT_GLOBAL, _CFG_ESP_PATH)
        if not isabs(esp_path):
            raise BootSpecConfigError(
                "global.esp_path must be an absolute path: %s" % esp_path
            )
        bc.esp_path = esp_path

    if cfg.has_section(_CFG_SECT_ESP):
        if cfg.has_option(_CFG_SECT_ESP, _CFG_ESP_CANDIDATES):
            _log_debug("Found esp.candidates")
            candidates = cfg.get(_CFG_SECT_ESP, _CFG_ESP_CANDIDATES).split()
            bad = [c for c in candidates if not isabs(c)]
            if bad or not candidates:
                raise BootSpecConfigError(
                    "Invalid esp.candidates value in %s: %s" % (path, " ".join(bad))
                )
            bc.esp_candidates = candidates

    if cfg.has_section(_CFG_SECT_EFI):
        if cfg.has_option(_CFG_SECT_EFI, _CFG_EFIVARS_PATH):
            _log_debug("Found efi.efivars_path")
            bc.efivars_path = cfg.get(_CFG_SECT_EFI, _CFG_EFIVARS_PATH)

    _log_debug("read configuration: %s", repr(bc))
    return bc


def load_bootspec_config(path=None):
    """Load bootspec persistent configuration values from the defined
    path and make them the active configuration.

    :param path: the configuration file to read, or None to read the
                 default config file path

    :rtype: BootSpecConfig
    """
    bc = _read_bootspec_config(path=path)
    set_bootspec_config(bc)
    return bc


__all__ = [
    "BootSpecConfigError",
    # Configuration file handling
    "load_bootspec_config",
]

# vim: set et ts=4 sw=4 :
