# Copyright Red Hat
#
# bootspec/esp.py - Bootspec EFI System Partition verification
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""The ``bootspec.esp`` module provides functions to verify that a
mount point is an EFI System Partition (ESP), and to locate the ESP
among the conventional mount points.

A path is accepted as an ESP if it is the root of a mounted FAT file
system. When running with root privileges outside of a container the
underlying block device is also probed with ``blkid`` to confirm that
it is a ``vfat`` file system on a GPT partition carrying the ESP
partition type GUID. The partition number, offset, size and UUID found
by the probe are returned in an ``EspIdentity`` object.
"""
from errno import EACCES
from os import geteuid, major, minor, stat
from os.path import join as path_join, realpath
from subprocess import run, PIPE, DEVNULL, CalledProcessError, TimeoutExpired
from typing import Callable, Dict, Optional, Tuple
from uuid import UUID
import logging
import re

from bootspec import (
    BootSpecError,
    BOOTSPEC_DEBUG_ESP,
    get_esp_candidates,
    get_esp_path,
)
from bootspec.virt import detect_container

#: The GPT partition type GUID of an EFI System Partition.
ESP_PART_TYPE_GUID = "c12a7328-f81f-11d2-ba4b-00a0c93ec93b"

#: File system types reported for FAT file systems.
FAT_FS_TYPES = ("vfat", "msdos")

#: Pattern for forming block device paths from device numbers.
DEV_BLOCK_PATTERN = "/dev/block/%u:%u"

#: The blkid command
_BLKID = "blkid"

#: The blkid timeout in seconds
_BLKID_TIMEOUT = 10

#: blkid exit status: no file system or partition table identified
_BLKID_EXIT_NOTFOUND = 2
#: blkid exit status: ambiguous probe result
_BLKID_EXIT_AMBIGUOUS = 8

#: The mount table of the current process
_MOUNTINFO = "/proc/self/mountinfo"

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

# Module logging configuration
_log = logging.getLogger(__name__)
_log.set_debug_mask(BOOTSPEC_DEBUG_ESP)

_log_debug = _log.debug
_log_debug_esp = _log.debug_masked
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class EspError(BootSpecError):
    """Bootspec exception indicating that a path is not a valid EFI
    System Partition, or that it could not be verified.
    """

    @staticmethod
    def fs_type_failed(path, err):
        return EspError(f'Failed to check file system type of "{path}": {err}')

    @staticmethod
    def not_fat(path):
        return EspError(
            f'File system "{path}" is not a FAT EFI System Partition (ESP) file system.'
        )

    @staticmethod
    def stat_failed(path, err):
        return EspError(f'Failed to determine block device node of "{path}": {err}')

    @staticmethod
    def invalid_device(path):
        return EspError(f'Block device node of "{path}" is invalid.')

    @staticmethod
    def not_mount_root(path):
        return EspError(
            f'Directory "{path}" is not the root of the EFI System '
            "Partition (ESP) file system."
        )

    @staticmethod
    def probe_failed(path, err):
        return EspError(f'Failed to probe file system "{path}": {err}')

    @staticmethod
    def ambiguous(path):
        return EspError(f'File system "{path}" is ambiguous.')

    @staticmethod
    def no_label(path):
        return EspError(f'File system "{path}" does not contain a label.')

    @staticmethod
    def missing_value(path, what):
        return EspError(f'Failed to probe {what} "{path}".')

    @staticmethod
    def not_vfat(path):
        return EspError(f'File system "{path}" is not FAT.')

    @staticmethod
    def not_gpt(path):
        return EspError(f'File system "{path}" is not on a GPT partition table.')

    @staticmethod
    def wrong_part_type(path):
        return EspError(
            f'File system "{path}" has wrong type for an EFI System Partition (ESP).'
        )

    @staticmethod
    def invalid_uuid(path, value):
        return EspError(f'Partition "{path}" has invalid UUID "{value}".')

    @staticmethod
    def invalid_field(field, value):
        return EspError(f'Failed to parse {field} field: "{value}".')


class EspNotFoundError(EspError):
    """Bootspec exception indicating that no ESP could be located."""

    pass


class EspIdentity(object):
    """The partition identity of a verified EFI System Partition.

    All values are zero when partition verification was skipped
    (unprivileged callers, or when running in a container).
    """

    part_number = 0
    part_start = 0
    part_size = 0
    part_uuid = UUID(int=0)

    def __init__(self, part_number=0, part_start=0, part_size=0, part_uuid=None):
        self.part_number = part_number
        self.part_start = part_start
        self.part_size = part_size
        self.part_uuid = part_uuid or UUID(int=0)

    def __str__(self):
        return "part_number=%d, part_start=%d, part_size=%d, part_uuid=%s" % (
            self.part_number,
            self.part_start,
            self.part_size,
            self.part_uuid,
        )

    def __repr__(self):
        return (
            'EspIdentity(part_number=%d, part_start=%d, part_size=%d, part_uuid=UUID("%s"))'
            % (self.part_number, self.part_start, self.part_size, self.part_uuid)
        )

    def __eq__(self, other):
        if not isinstance(other, EspIdentity):
            return False
        return (
            self.part_number == other.part_number
            and self.part_start == other.part_start
            and self.part_size == other.part_size
            and self.part_uuid == other.part_uuid
        )

    def is_null(self):
        """Return ``True`` if this identity carries no partition data.

        :rtype: bool
        """
        return self == EspIdentity()


def _unescape_mount_field(field):
    """Decode the octal escapes used for white space in mountinfo."""
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), field)


def _fs_type(path: str) -> Optional[str]:
    """Return the type of the file system containing ``path``.

    :raises: ``OSError`` if ``path`` or the mount table cannot be read.
    """
    stat(path)
    real_path = realpath(path)
    mount_point = None
    fs_type = None
    with open(_MOUNTINFO, "r") as mounts:
        for line in mounts:
            fields = line.split()
            if "-" not in fields[6:]:
                continue
            sep = fields.index("-", 6)
            where = _unescape_mount_field(fields[4])
            if not (
                where == "/"
                or real_path == where
                or real_path.startswith(where.rstrip("/") + "/")
            ):
                continue
            # Later entries for the same mount point are stacked on top.
            if mount_point is None or len(where) >= len(mount_point):
                mount_point = where
                fs_type = fields[sep + 1]
    _log_debug_esp("File system type of '%s' is '%s'", path, fs_type)
    return fs_type


def _log_access_error(msg, path, err):
    """Log a failure to access ``path``: permission errors are expected
    for unprivileged callers and are only logged at debug level.
    """
    if geteuid() != 0 and err.errno == EACCES:
        _log_debug(msg, path, err)
    else:
        _log_error(msg, path, err)


def probe_device(device: str) -> Dict[str, str]:
    """Probe the block device ``device`` with ``blkid`` and return the
    file system and partition attributes found as a dictionary.

    :param device: The path to a block device.
    :returns: A dictionary mapping blkid attribute names to values.
    :rtype: dict
    :raises: ``EspError`` if the device cannot be probed.
    """
    try:
        p = run(
            [_BLKID, "-p", "-o", "export", "--", device],
            stdin=DEVNULL,
            stdout=PIPE,
            stderr=PIPE,
            check=True,
            timeout=_BLKID_TIMEOUT,
        )
    except CalledProcessError as err:
        if err.returncode == _BLKID_EXIT_AMBIGUOUS:
            raise EspError.ambiguous(device) from err
        if err.returncode == _BLKID_EXIT_NOTFOUND:
            raise EspError.no_label(device) from err
        raise EspError.probe_failed(device, err) from err
    except (OSError, TimeoutExpired) as err:
        raise EspError.probe_failed(device, err) from err

    decoded_output = p.stdout.decode("utf8", errors="replace")
    _log_debug_esp("parsing blkid out: %s", decoded_output)
    attrs = {}
    for line in decoded_output.splitlines():
        if "=" in line:
            (name, value) = line.split("=", 1)
            attrs[name.strip()] = value.strip()
    return attrs


def _parse_uint(field, value, maximum):
    if not (value.isascii() and value.isdigit()) or int(value) > maximum:
        raise EspError.invalid_field(field, value)
    return int(value)


def _verify_partition(path, device, probe):
    """Probe ``device`` and check that it holds an ESP, returning the
    ``EspIdentity`` of the partition.
    """
    try:
        attrs = probe(device)
    except EspError as e:
        _log_error("%s", e)
        raise
    except OSError as e:
        _log_error('Failed to open file system "%s": %s', path, e)
        raise EspError.probe_failed(path, e) from e

    def lookup(key, what):
        if key not in attrs:
            _log_error('Failed to probe %s "%s"', what, path)
            raise EspError.missing_value(path, what)
        return attrs[key]

    checks = [
        ("TYPE", "file system type", "vfat", EspError.not_vfat),
        ("PART_ENTRY_SCHEME", "partition scheme", "gpt", EspError.not_gpt),
        (
            "PART_ENTRY_TYPE",
            "partition type UUID",
            ESP_PART_TYPE_GUID,
            EspError.wrong_part_type,
        ),
    ]
    for key, what, expected, error in checks:
        if lookup(key, what) != expected:
            err = error(path)
            _log_error("%s", err)
            raise err

    value = lookup("PART_ENTRY_UUID", "partition entry UUID")
    try:
        part_uuid = UUID(value)
    except ValueError as e:
        raise EspError.invalid_uuid(path, value) from e

    part_number = _parse_uint(
        "PART_ENTRY_NUMBER", lookup("PART_ENTRY_NUMBER", "partition number"), _U32_MAX
    )
    part_start = _parse_uint(
        "PART_ENTRY_OFFSET", lookup("PART_ENTRY_OFFSET", "partition offset"), _U64_MAX
    )
    part_size = _parse_uint(
        "PART_ENTRY_SIZE", lookup("PART_ENTRY_SIZE", "partition size"), _U64_MAX
    )

    return EspIdentity(
        part_number=part_number,
        part_start=part_start,
        part_size=part_size,
        part_uuid=part_uuid,
    )


def verify_esp(
    path: str,
    searching: bool = False,
    probe: Optional[Callable[[str], Dict[str, str]]] = None,
) -> Optional[EspIdentity]:
    """Verify that ``path`` is the mount point of an EFI System
    Partition.

    In search mode (``searching=True``) a ``path`` that does not exist
    or that is not a FAT file system is not an error: ``None`` is
    returned so that the caller may try another candidate.

    Partition table checks are skipped inside a container or when the
    caller is not root: in this case a zero-valued ``EspIdentity`` is
    returned.

    :param path: The mount point to verify.
    :param searching: ``True`` if ``path`` is one of several candidates.
    :param probe: A function returning the blkid attributes of a block
                  device, or ``None`` to use ``probe_device()``.
    :returns: An ``EspIdentity``, or ``None`` if ``path`` is not an ESP
              candidate in search mode.
    :rtype: EspIdentity
    :raises: ``EspError`` if ``path`` is not a valid ESP.
    """
    probe = probe or probe_device

    try:
        fs_type = _fs_type(path)
    except FileNotFoundError as e:
        if searching:
            _log_debug_esp("ESP candidate '%s' does not exist", path)
            return None
        _log_access_error('Failed to check file system type of "%s": %s', path, e)
        raise EspError.fs_type_failed(path, e) from e
    except OSError as e:
        _log_access_error('Failed to check file system type of "%s": %s', path, e)
        raise EspError.fs_type_failed(path, e) from e

    if fs_type not in FAT_FS_TYPES:
        if searching:
            _log_debug_esp("ESP candidate '%s' is not FAT (%s)", path, fs_type)
            return None
        err = EspError.not_fat(path)
        _log_error("%s", err)
        raise err

    try:
        st = stat(path)
    except OSError as e:
        _log_access_error('Failed to determine block device node of "%s": %s', path, e)
        raise EspError.stat_failed(path, e) from e

    if major(st.st_dev) == 0:
        err = EspError.invalid_device(path)
        _log_error("%s", err)
        raise err

    parent = path_join(path, "..")
    try:
        st2 = stat(parent)
    except OSError as e:
        _log_access_error(
            'Failed to determine block device node of parent of "%s": %s', path, e
        )
        raise EspError.stat_failed(parent, e) from e

    if st.st_dev == st2.st_dev:
        err = EspError.not_mount_root(path)
        _log_error("%s", err)
        raise err

    # Block devices are not accessible in a container, or without
    # privileges: trust the environment to have set up the ESP.
    if detect_container() or geteuid() != 0:
        _log_debug("Skipping partition checks for '%s'", path)
        return EspIdentity()

    device = DEV_BLOCK_PATTERN % (major(st.st_dev), minor(st.st_dev))
    esp_id = _verify_partition(path, device, probe)
    _log_debug("Verified ESP at '%s': %s", path, esp_id)
    return esp_id


def find_esp(
    path: Optional[str] = None,
    probe: Optional[Callable[[str], Dict[str, str]]] = None,
) -> Optional[Tuple[str, EspIdentity]]:
    """Locate the EFI System Partition.

    If ``path`` (or the configured ``esp_path``) is set only that path
    is verified, and any verification error is raised. Otherwise each
    of the configured ESP candidate mount points is tried in turn.

    :param path: An explicit ESP mount point, or ``None`` to search.
    :param probe: A function returning the blkid attributes of a block
                  device, or ``None`` to use ``probe_device()``.
    :returns: A ``(path, EspIdentity)`` tuple, or ``None`` if no
              candidate mount point is an ESP.
    :rtype: tuple
    :raises: ``EspError`` if verification fails.
    """
    path = path or get_esp_path()
    if path:
        return (path, verify_esp(path, searching=False, probe=probe))

    for candidate in get_esp_candidates():
        esp_id = verify_esp(candidate, searching=True, probe=probe)
        if esp_id is None:
            continue
        _log_debug("Found ESP at '%s'", candidate)
        return (candidate, esp_id)

    _log_debug("No ESP found in %s", ", ".join(get_esp_candidates()))
    return None


__all__ = [
    "ESP_PART_TYPE_GUID",
    "FAT_FS_TYPES",
    "EspError",
    "EspNotFoundError",
    "EspIdentity",
    "probe_device",
    "verify_esp",
    "find_esp",
]

# vim: set et ts=4 sw=4 :
