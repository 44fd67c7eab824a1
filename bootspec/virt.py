# Copyright Red Hat
#
# bootspec/virt.py - Bootspec container detection
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``bootspec.virt`` module contains functions and constants
needed to determine whether bootspec is running inside a container.

Block devices are normally not accessible from within a container, and
the container manager is trusted to have set up the ESP correctly: ESP
verification skips its partition table checks when a container is
detected.

Detection first looks for the marker files left by common container
managers, and then asks the systemd service manager for its detected
virtualization technology over the system D-Bus.
"""
import logging
from os.path import exists

import dbus

from bootspec import BOOTSPEC_DEBUG_ESP

# Module logging configuration
_log = logging.getLogger(__name__)
_log.set_debug_mask(BOOTSPEC_DEBUG_ESP)

_log_debug = _log.debug
_log_debug_virt = _log.debug_masked
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

#: Files whose presence indicates that we are running in a container.
CONTAINER_MARKERS = [
    "/run/systemd/container",
    "/run/.containerenv",
    "/.dockerenv",
]

#: systemd virtualization identifiers that denote a container.
CONTAINER_VIRT_IDS = [
    "openvz",
    "lxc",
    "lxc-libvirt",
    "systemd-nspawn",
    "docker",
    "podman",
    "rkt",
    "wsl",
    "proot",
    "pouch",
]

# Constants for the systemd DBus service

#: The DBus name of the systemd service manager
_SYSTEMD_SERVICE = "org.freedesktop.systemd1"
#: The path to the systemd manager object
_SYSTEMD_PATH = "/org/freedesktop/systemd1"
#: The DBus name of the systemd manager interface
_MANAGER_IFACE = "org.freedesktop.systemd1.Manager"
#: The DBus properties interface
_DBUS_PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"


def systemd_virtualization() -> str:  # pragma: no cover
    """Return the virtualization technology detected by the systemd
    service manager, or the empty string if none was detected.

    :rtype: str
    """
    bus = dbus.SystemBus()
    _log_debug_virt("Connecting to %s at %s via system bus", _SYSTEMD_SERVICE, _SYSTEMD_PATH)
    proxy = bus.get_object(_SYSTEMD_SERVICE, _SYSTEMD_PATH, introspect=False)
    props = dbus.Interface(proxy, _DBUS_PROPERTIES_IFACE)
    return str(props.Get(_MANAGER_IFACE, "Virtualization"))


def detect_container() -> bool:
    """Return ``True`` if bootspec is running inside a container, or
    ``False`` otherwise.

    :rtype: bool
    """
    for marker in CONTAINER_MARKERS:
        if exists(marker):
            _log_debug("Found container marker '%s'", marker)
            return True

    try:
        virt = systemd_virtualization()
    except dbus.DBusException as e:
        _log_debug("Could not query systemd virtualization: %s", e)
        return False

    if virt in CONTAINER_VIRT_IDS:
        _log_debug("Detected container virtualization '%s'", virt)
        return True
    return False


__all__ = [
    "CONTAINER_MARKERS",
    "CONTAINER_VIRT_IDS",
    "systemd_virtualization",
    "detect_container",
]

# vim: set et ts=4 sw=4 :
