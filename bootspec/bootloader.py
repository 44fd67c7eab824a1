# Copyright Red Hat
#
# bootspec/bootloader.py - Bootspec BLS boot entries
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""The ``bootspec.bootloader`` module defines the ``BootEntry`` class
representing an individual on-disk boot loader entry, together with
functions to discover the entries stored in a directory, give each
entry an unambiguous display title, and select the entry that should
be booted by default.

Boot entries are normally read from ``loader/entries`` on the EFI
System Partition. Entry files use the Boot Loader Specification
``key value`` syntax: the recognised keys and the ``BootEntry``
attribute that each one sets are available in the ``KEY_MAP``
dictionary (a reverse map is also provided in the ``MAP_KEY`` member).

Entries are ordered by comparing their file names with
``bootspec.str_verscmp()``, so that for e.g. ``linux-5.10.conf`` sorts
after ``linux-5.9.conf``.
"""
from os.path import basename, isfile, join as path_join
from os import listdir
from collections import Counter
from fnmatch import fnmatchcase
from functools import cmp_to_key
import logging

from bootspec import *

#: The path to the BLS boot entries directory relative to the ESP
ENTRIES_PATH = "loader/entries"

#: The file name suffix of BLS boot entries.
ENTRY_SUFFIX = ".conf"

#: Map BLS entry keys to ``BootEntry`` attribute names
KEY_MAP = {
    "title": "title",
    "version": "version",
    "machine-id": "machine_id",
    "architecture": "architecture",
    "options": "options",
    "linux": "kernel",
    "efi": "efi",
    "initrd": "initrd",
    "devicetree": "device_tree",
}

#: Map ``BootEntry`` attribute names to BLS entry keys
MAP_KEY = {v: k for k, v in KEY_MAP.items()}

#: BLS keys that may appear more than once in an entry.
MULTI_VALUE_KEYS = ["options", "initrd"]

#: An ordered list of all BLS entry keys.
ENTRY_KEYS = [
    "title",
    "version",
    "machine-id",
    "architecture",
    "linux",
    "efi",
    "initrd",
    "options",
    "devicetree",
]

# Module logging configuration
_log = logging.getLogger(__name__)
_log.set_debug_mask(BOOTSPEC_DEBUG_ENTRY)

_log_debug = _log.debug
_log_debug_entry = _log.debug_masked
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


class BootEntry(object):
    """A class representing a BLS boot entry.

    A ``BootEntry`` holds the literal values of the keys read from an
    entry file (or set through the API), and the ``filename`` used to
    identify and order the entry.

    The ``show_title`` attribute is ``None`` until the entry has been
    passed through ``uniquify_titles()``, and is only set for entries
    whose title would otherwise be ambiguous: use ``display_title`` to
    obtain the label that should be shown for an entry.
    """

    filename = None
    title = None
    show_title = None
    version = None
    machine_id = None
    architecture = None
    options = None
    kernel = None
    efi = None
    initrd = None
    device_tree = None

    def __str(self, quote=False, prefix="", suffix="", tail="\n", sep=" "):
        """Format BootEntry as a string.

        Return a human or machine readable representation of this
        BootEntry.

        :param quote: True if values should be quoted or False otherwise.
        :param prefix: An optional prefix string to be concatenated with
                       with the start of the formatted string.
        :param suffix: An optional suffix string to be concatenated
                       with the end of the formatted string.
        :param tail: A string to be concatenated between subsequent
                     records in the formatted string.
        :param sep: A separator to be inserted between each name and
                    value. Normally either ' ' or '='.
        :returns: A string representation.
        :rtype: string
        """
        be_str = prefix
        key_fmt = ('%s%s"%s"' if quote else "%s%s%s") + tail

        for key in ENTRY_KEYS:
            value = getattr(self, KEY_MAP[key])
            if not value:
                continue
            values = value if key in MULTI_VALUE_KEYS else [value]
            for val in values:
                be_str += key_fmt % (key, sep, val)

        return be_str.rstrip(tail) + suffix

    def __str__(self):
        """Format BootEntry as a human-readable string in BLS notation.

        :returns: a BLS configuration snippet corresponding to this entry.
        :rtype: string
        """
        return self.__str()

    def __repr__(self):
        """Format BootEntry as a machine-readable string.

        :returns: A string in BootEntry constructor-like syntax.
        :rtype: str
        """
        return self.__str(
            quote=True,
            prefix='BootEntry(filename="%s", entry_data={' % self.filename,
            suffix="})",
            tail=", ",
            sep=": ",
        )

    def __eq__(self, other):
        """Test for equality between this BootEntry and another
        object.

        Two entries are equal if they have the same file name and the
        same value for every BLS key.

        :param other: The object to test against.
        :returns: ``True`` if the objects are equal and ``False``
                  otherwise.
        :rtype: bool
        """
        if not isinstance(other, BootEntry):
            return False
        attrs = ["filename"] + list(MAP_KEY.keys())
        return all(getattr(self, a) == getattr(other, a) for a in attrs)

    def __from_file(self, entry_file):
        """Initialise a new BootEntry from on-disk data.

        This method should not be called directly: to build a new
        ``BootEntry`` object from entry file data, use the class
        initialiser with the ``entry_file`` argument.

        :param entry_file: The path to a file containing a BLS boot
                           entry
        :raises: ``BootSpecFileError`` if the file cannot be read.
        """
        entry_data = {}
        _log_debug_entry("Loading BootEntry from '%s'", entry_file)

        for line, bls_key, value in read_key_value_file(entry_file):
            if bls_key not in KEY_MAP:
                _log_info('%s:%d: Unknown line "%s"', entry_file, line, bls_key)
                continue
            attr = KEY_MAP[bls_key]
            if bls_key in MULTI_VALUE_KEYS:
                entry_data.setdefault(attr, []).append(value)
            else:
                entry_data[attr] = value

        self.filename = basename(entry_file)
        for attr, value in entry_data.items():
            setattr(self, attr, value)

    def __init__(
        self,
        filename=None,
        title=None,
        version=None,
        machine_id=None,
        architecture=None,
        options=None,
        kernel=None,
        efi=None,
        initrd=None,
        device_tree=None,
        entry_file=None,
    ):
        """Initialise a new ``BootEntry``.

        If ``entry_file`` is given the entry is read from the named
        file and the remaining arguments must be unset: the
        ``filename`` is taken from the base name of ``entry_file``.

        :param filename: The entry file name (for e.g. ``fedora.conf``).
        :param title: The entry title.
        :param version: The entry version string.
        :param machine_id: The entry machine-id.
        :param architecture: The entry architecture.
        :param options: A list of kernel command line option strings.
        :param kernel: The path of the Linux kernel image.
        :param efi: The path of an EFI program.
        :param initrd: A list of initial ramdisk image paths.
        :param device_tree: The path of a device tree blob.
        :param entry_file: The path to a BLS entry file to load.
        :returns: A new ``BootEntry`` object.
        :rtype: BootEntry
        :raises: ``ValueError`` for invalid arguments or
                 ``BootSpecFileError`` if ``entry_file`` cannot be
                 read.
        """
        self.options = []
        self.initrd = []

        if entry_file:
            if filename:
                raise ValueError("BootEntry() filename and entry_file are exclusive")
            self.__from_file(entry_file)
            return

        if not filename:
            raise ValueError("BootEntry() requires filename or entry_file")

        self.filename = filename
        self.title = title
        self.version = version
        self.machine_id = machine_id
        self.architecture = architecture
        self.options = list(options or [])
        self.kernel = kernel
        self.efi = efi
        self.initrd = list(initrd or [])
        self.device_tree = device_tree

    @property
    def base_title(self):
        """The title of this entry, or its file name if it has none.

        :rtype: str
        """
        return self.title or self.filename

    @property
    def display_title(self):
        """The label to display for this entry: the disambiguated
        ``show_title`` if one has been assigned, or ``base_title``.

        :rtype: str
        """
        return self.show_title or self.base_title


def load_entry(entry_file):
    """Load a single boot entry from ``entry_file``.

    :param entry_file: The path to a BLS entry file.
    :returns: A new ``BootEntry``.
    :rtype: BootEntry
    :raises: ``BootSpecFileError`` if the file cannot be read.
    """
    return BootEntry(entry_file=entry_file)


def _entry_compare(be1, be2):
    return str_verscmp(be1.filename, be2.filename)


def find_entries(entries_path):
    """Load the boot entries found in ``entries_path``.

    Every regular file in ``entries_path`` with a name ending in
    ``ENTRY_SUFFIX`` is loaded as a ``BootEntry``. Hidden files (names
    beginning with ``.``) are ignored. Files that cannot be read are
    logged and skipped. The returned list is sorted by
    comparing entry file names with ``str_verscmp()``.

    :param entries_path: The directory to search for entries.
    :returns: A sorted list of ``BootEntry`` objects.
    :rtype: list
    :raises: ``BootSpecError`` if the directory cannot be listed.
    """
    try:
        entry_files = listdir(entries_path)
    except OSError as e:
        _log_error('Failed to list files in "%s": %s', entries_path, e)
        raise BootSpecError(
            f'Failed to list files in "{entries_path}": {e.strerror or e}'
        ) from e

    _log_debug("Loading boot entries from '%s'", entries_path)
    entries = []
    for entry_file in sorted(entry_files):
        if entry_file.startswith(".") or not entry_file.endswith(ENTRY_SUFFIX):
            continue
        entry_path = path_join(entries_path, entry_file)
        if not isfile(entry_path):
            _log_debug_entry("Skipping non-regular file '%s'", entry_path)
            continue
        try:
            entries.append(BootEntry(entry_file=entry_path))
        except BootSpecFileError as e:
            _log_info("Could not load BootEntry '%s': %s", entry_path, e)
            continue

    entries.sort(key=cmp_to_key(_entry_compare))
    _log_debug("Loaded %d entries", len(entries))
    return entries


def _find_nonunique(entries):
    """Return a list of flags marking the entries in ``entries`` whose
    display title is shared with at least one other entry.
    """
    counts = Counter(be.display_title for be in entries)
    return [counts[be.display_title] > 1 for be in entries]


def uniquify_titles(entries):
    """Assign unambiguous display titles to a list of boot entries.

    Entries sharing a display title are distinguished by appending,
    in turn, the entry version, machine-id, and finally file name to
    the entry's ``base_title``. Each round starts again from the base
    title, so that an entry that is still ambiguous after the first two
    rounds is labelled with its file name alone.

    Entries whose title is already unique are left unchanged.

    :param entries: A list of ``BootEntry`` objects.
    :returns: The same list of entries.
    :rtype: list
    """
    rounds = [
        ("version", lambda be: be.version),
        ("machine-id", lambda be: be.machine_id),
        ("file name", lambda be: be.filename),
    ]
    for name, suffix_fn in rounds:
        nonunique = _find_nonunique(entries)
        if not any(nonunique):
            break
        _log_debug_entry("Adding %s to non-unique titles", name)
        for be, flagged in zip(entries, nonunique):
            suffix = suffix_fn(be)
            if flagged and suffix:
                be.show_title = "%s (%s)" % (be.base_title, suffix)
    return entries


def _casefold_pattern(pattern):
    """Return a lower case ``fnmatch`` pattern equivalent to the shell
    glob ``pattern``, in which a backslash quotes the next character.
    """
    out = ""
    chars = iter(pattern.lower())
    for c in chars:
        if c == "\\":
            c = next(chars, "\\")
            out += "[%s]" % c if c in "*?[" else c
        else:
            out += c
    return out


def select_default_entry(
    entries, entry_oneshot=None, entry_default=None, default_pattern=None
):
    """Select the boot entry that should be booted by default.

    The first of the following rules that matches an entry wins:

    1. The entry whose file name equals ``entry_oneshot``.
    2. The entry whose file name equals ``entry_default``.
    3. The entry whose file name matches the shell glob
       ``default_pattern``, ignoring case. A backslash in the pattern
       quotes the following character.
    4. The last entry in the list.

    Each rule scans ``entries`` from the end of the list, so that when
    several entries match the one sorted last (usually the newest) is
    chosen.

    :param entries: A sorted list of ``BootEntry`` objects.
    :param entry_oneshot: A one-time default entry file name.
    :param entry_default: A persistent default entry file name.
    :param default_pattern: A glob pattern matching entry file names.
    :returns: The index of the default entry, or ``None`` if
              ``entries`` is empty.
    :rtype: int
    """
    indices = range(len(entries) - 1, -1, -1)

    if entry_oneshot:
        for i in indices:
            if entries[i].filename == entry_oneshot:
                _log_debug(
                    'Found default: filename "%s" is matched by LoaderEntryOneShot',
                    entries[i].filename,
                )
                return i

    if entry_default:
        for i in indices:
            if entries[i].filename == entry_default:
                _log_debug(
                    'Found default: filename "%s" is matched by LoaderEntryDefault',
                    entries[i].filename,
                )
                return i

    if default_pattern:
        pattern = _casefold_pattern(default_pattern)
        for i in indices:
            if fnmatchcase(entries[i].filename.lower(), pattern):
                _log_debug(
                    'Found default: filename "%s" is matched by pattern "%s"',
                    entries[i].filename,
                    default_pattern,
                )
                return i

    if not entries:
        _log_debug("Found no default boot entry")
        return None

    _log_debug('Found default: last entry "%s"', entries[-1].filename)
    return len(entries) - 1


__all__ = [
    # Module constants
    "ENTRIES_PATH",
    "ENTRY_SUFFIX",
    "ENTRY_KEYS",
    "MULTI_VALUE_KEYS",
    "KEY_MAP",
    "MAP_KEY",
    # BootEntry object
    "BootEntry",
    # Entry load, title and default selection functions
    "load_entry",
    "find_entries",
    "uniquify_titles",
    "select_default_entry",
]

# vim: set et ts=4 sw=4 :
