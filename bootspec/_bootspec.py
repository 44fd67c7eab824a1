# Copyright Red Hat
#
# bootspec/_bootspec.py - Bootspec package initialisation
#
# SPDX-License-Identifier: GPL-2.0-only
"""This module provides the declarations, classes, and functions exposed
in the main ``bootspec`` module. Users of bootspec should not import this
module directly: it will be imported automatically with the top level
module.
"""
from os.path import exists as path_exists, isabs
import logging

#: The default location of the bootspec tool configuration file.
DEFAULT_BOOTSPEC_CONFIG_PATH = "/etc/bootspec.conf"

#: The mount points searched for an ESP, in order.
DEFAULT_ESP_CANDIDATES = ["/efi", "/boot", "/boot/efi"]

#: The mount point of the efivarfs file system.
DEFAULT_EFIVARS_PATH = "/sys/firmware/efi/efivars"

#: The maximum length of a line in a loader configuration or entry file.
LONG_LINE_MAX = 1024 * 1024

#
# Logging
#

BOOTSPEC_LOG_DEBUG = logging.DEBUG
BOOTSPEC_LOG_INFO = logging.INFO
BOOTSPEC_LOG_WARN = logging.WARNING
BOOTSPEC_LOG_ERROR = logging.ERROR

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Bootspec debugging levels
BOOTSPEC_DEBUG_ENTRY = 1
BOOTSPEC_DEBUG_LOADER = 2
BOOTSPEC_DEBUG_EFI = 4
BOOTSPEC_DEBUG_ESP = 8
BOOTSPEC_DEBUG_ALL = (
    BOOTSPEC_DEBUG_ENTRY | BOOTSPEC_DEBUG_LOADER | BOOTSPEC_DEBUG_EFI | BOOTSPEC_DEBUG_ESP
)

__debug_mask = 0


class BootSpecError(Exception):
    """Base class of all bootspec exceptions."""

    pass


class BootSpecFileError(BootSpecError):
    """Bootspec exception indicating that a loader configuration or
    entry file could not be opened or read.

    The ``path`` attribute names the offending file and ``line`` the
    line number at which reading failed (``None`` for open failures).
    """

    def __init__(self, msg, path=None, line=None):
        super(BootSpecFileError, self).__init__(msg)
        self.path = path
        self.line = line

    @staticmethod
    def open_failed(path, err):
        return BootSpecFileError(
            f'Failed to open "{path}": {err.strerror or err}', path=path
        )

    @staticmethod
    def line_too_long(path, line):
        return BootSpecFileError(f"{path}:{line}: Line too long", path=path, line=line)

    @staticmethod
    def read_failed(path, line, err):
        return BootSpecFileError(
            f"{path}:{line}: Error while reading: {err}", path=path, line=line
        )


class BootSpecLogger(logging.Logger):
    """BootSpecLogger()

    Bootspec logging wrapper class: wrap the Logger.debug() method
    to allow filtering of submodule debug messages by log mask.

    This allows us to selectively control which messages are
    logged in the library without having to tamper with the
    Handler, Filter or Formatter configurations (which belong
    to the client application using the library).
    """

    mask_bits = 0

    def set_debug_mask(self, mask_bits):
        """Set the debug mask for this ``BootSpecLogger``.

        This should normally be set to the ``BOOTSPEC_DEBUG_*`` value
        corresponding to the ``bootspec`` sub-module that this instance
        of ``BootSpecLogger`` belongs to.

        :param mask_bits: The bits to set in this logger's mask.
        :rtype: None
        """
        if mask_bits < 0 or mask_bits > BOOTSPEC_DEBUG_ALL:
            raise ValueError(
                "Invalid BootSpecLogger mask bits: 0x%x"
                % (mask_bits & ~BOOTSPEC_DEBUG_ALL)
            )

        self.mask_bits = mask_bits

    def debug_masked(self, msg, *args, **kwargs):
        """Log a debug message if it passes the current debug mask.

        :param msg: the message to be logged
        :rtype: None
        """
        if self.mask_bits & get_debug_mask():
            self.debug(msg, *args, **kwargs)


logging.setLoggerClass(BootSpecLogger)


def get_debug_mask():
    """Return the current debug mask for the ``bootspec`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    return __debug_mask


def set_debug_mask(mask):
    """Set the debug mask for the ``bootspec`` package.

    :param mask: the logical OR of the ``BOOTSPEC_DEBUG_*``
                 values to log.
    :rtype: None
    """
    global __debug_mask
    if mask < 0 or mask > BOOTSPEC_DEBUG_ALL:
        raise ValueError("Invalid bootspec debug mask: %d" % mask)
    __debug_mask = mask


class BootSpecConfig(object):
    """Class representing bootspec tool configuration values."""

    # Initialise members from global defaults

    esp_path = None
    esp_candidates = DEFAULT_ESP_CANDIDATES
    efivars_path = DEFAULT_EFIVARS_PATH

    def __str__(self):
        """Return a string representation of this ``BootSpecConfig`` in
        bootspec.conf (INI) notation.
        """
        cstr = "[global]\n"
        if self.esp_path:
            cstr += "esp_path = %s\n" % self.esp_path
        cstr += "\n[esp]\n"
        cstr += "candidates = %s\n\n" % " ".join(self.esp_candidates)
        cstr += "[efi]\n"
        cstr += "efivars_path = %s\n" % self.efivars_path
        return cstr

    def __repr__(self):
        """Return a string representation of this ``BootSpecConfig`` in
        BootSpecConfig initialiser notation.
        """
        cstr = "BootSpecConfig(esp_path=%s, " % (
            '"%s"' % self.esp_path if self.esp_path else None
        )
        cstr += "esp_candidates=%s, " % repr(self.esp_candidates)
        cstr += 'efivars_path="%s")' % self.efivars_path
        return cstr

    def __init__(self, esp_path=None, esp_candidates=None, efivars_path=None):
        """Initialise a new ``BootSpecConfig`` object with the supplied
        configuration values, or defaults for any unset arguments.

        :param esp_path: an explicit ESP mount point, or ``None`` to
                         search the candidate list
        :param esp_candidates: the mount points to search for an ESP
        :param efivars_path: the path to the efivarfs mount point
        """
        self.esp_path = esp_path or self.esp_path
        self.esp_candidates = list(esp_candidates or self.esp_candidates)
        self.efivars_path = efivars_path or self.efivars_path


__config = BootSpecConfig()


def set_bootspec_config(config):
    """Set the active configuration to the object ``config`` (which may
    be any class that includes the ``BootSpecConfig`` attributes).

    :param config: a configuration object
    :returns: None
    :raises: TypeError if ``config`` does not appear to have the
             correct attributes.
    """
    global __config

    def has_value(obj, attr):
        return hasattr(obj, attr) and getattr(obj, attr) is not None

    if not (has_value(config, "esp_candidates") and has_value(config, "efivars_path")):
        raise TypeError("config does not appear to be a BootSpecConfig object.")

    __config = config


def get_bootspec_config():
    """Return the active ``BootSpecConfig`` object.

    :rtype: BootSpecConfig
    :returns: the active configuration object
    """
    return __config


def get_esp_path():
    """Return the explicitly configured ESP path, or ``None`` if the
    ESP should be located by searching the candidate mount points.

    :rtype: str
    """
    return __config.esp_path


def set_esp_path(esp_path):
    """Set an explicit ESP mount point.

    :param esp_path: an absolute path, or ``None`` to search the
                     candidate mount points.
    :raises: ValueError if ``esp_path`` is not absolute.
    """
    if esp_path is not None and not isabs(esp_path):
        raise ValueError("esp_path must be an absolute path: %s" % esp_path)
    __config.esp_path = esp_path
    _log_debug("Set ESP path to: %s", esp_path)


def get_esp_candidates():
    """Return the list of mount points searched for an ESP.

    :rtype: list
    """
    return list(__config.esp_candidates)


def set_esp_candidates(candidates):
    """Set the mount points searched for an ESP, in search order.

    :param candidates: a list of absolute paths.
    :raises: ValueError if any candidate is not an absolute path.
    """
    candidates = list(candidates)
    bad = [c for c in candidates if not isabs(c)]
    if bad:
        raise ValueError("ESP candidates must be absolute paths: %s" % ", ".join(bad))
    __config.esp_candidates = candidates
    _log_debug("Set ESP candidates to: %s", candidates)


def get_efivars_path():
    """Return the currently configured efivarfs path.

    :rtype: str
    """
    return __config.efivars_path


def set_efivars_path(efivars_path):
    """Set the location of the efivarfs file system.

    :param efivars_path: the path to the efivarfs mount point.
    :raises: ValueError if ``efivars_path`` is not absolute or does
             not exist.
    """
    if not isabs(efivars_path):
        raise ValueError("efivars_path must be an absolute path: %s" % efivars_path)
    if not path_exists(efivars_path):
        raise ValueError("Path '%s' does not exist" % efivars_path)
    __config.efivars_path = efivars_path
    _log_debug("Set efivars path to: %s", efivars_path)


#
# Version string comparison.
#


def _is_digit(c):
    return "0" <= c <= "9"


def _c_order(c):
    """Return the sort key for a single non-digit-run character.

    End of string and digits sort first, lowercase ASCII letters sort by
    code point, and everything else sorts after all lowercase letters.
    """
    if not c or _is_digit(c):
        return 0
    if "a" <= c <= "z":
        return ord(c)
    return ord(c) + 0x10000


def str_verscmp(s1, s2):
    """Compare two strings, ordering embedded numbers by magnitude.

    Non-digit runs are compared character by character with the
    ordering of ``_c_order()``. Digit runs are compared numerically:
    leading zeros are ignored and a longer run is the larger number.
    Strings that compare equal under these rules are ordered by plain
    code point comparison, so that for e.g. ``"img-009"`` and
    ``"img-9"`` still differ.

    :param s1: The first string to compare.
    :param s2: The second string to compare.
    :returns: A negative, zero, or positive integer.
    :rtype: int
    """
    len1 = len(s1)
    len2 = len(s2)
    i = j = 0

    def char(s, n, pos):
        return s[pos] if pos < n else ""

    while i < len1 or j < len2:
        c1 = char(s1, len1, i)
        c2 = char(s2, len2, j)
        while (c1 and not _is_digit(c1)) or (c2 and not _is_digit(c2)):
            order = _c_order(c1) - _c_order(c2)
            if order:
                return order
            i += 1
            j += 1
            c1 = char(s1, len1, i)
            c2 = char(s2, len2, j)

        while char(s1, len1, i) == "0":
            i += 1
        while char(s2, len2, j) == "0":
            j += 1

        first = 0
        while _is_digit(char(s1, len1, i)) and _is_digit(char(s2, len2, j)):
            if not first:
                first = ord(s1[i]) - ord(s2[j])
            i += 1
            j += 1

        if _is_digit(char(s1, len1, i)):
            return 1
        if _is_digit(char(s2, len2, j)):
            return -1

        if first:
            return first

    return (s1 > s2) - (s1 < s2)


#
# Generic routines for parsing "key value" lines.
#


def blank_or_comment(line):
    """Test whether line is empty of contains a comment.

    Test whether the ``line`` argument is either blank, or a
    whole-line comment.

    :param line: the line of text to be checked.
    :returns: ``True`` if the line is blank or a comment,
              and ``False`` otherwise.
    :rtype: bool
    """
    return not line.strip() or line.lstrip().startswith("#")


def parse_key_value_lines(stream, path):
    """Parse BLS style ``key value`` lines from a text stream.

    Blank lines and whole-line comments are skipped. A line with no
    space separating the key from the value is logged and skipped.

    :param stream: A text file object to read lines from.
    :param path: The path of the file, used in messages.
    :returns: A generator of ``(line_number, key, value)`` tuples.
    :raises: ``BootSpecFileError`` if a line exceeds ``LONG_LINE_MAX``
             characters or the stream cannot be read.
    """
    line = 0
    while True:
        try:
            buf = stream.readline(LONG_LINE_MAX + 1)
        except (OSError, UnicodeDecodeError) as e:
            _log_error("%s:%d: Error while reading: %s", path, line + 1, e)
            raise BootSpecFileError.read_failed(path, line + 1, e) from e
        if not buf:
            return

        line += 1
        if len(buf.rstrip("\n")) > LONG_LINE_MAX:
            _log_error("%s:%d: Line too long", path, line)
            raise BootSpecFileError.line_too_long(path, line)

        if blank_or_comment(buf):
            continue

        (key, sep, value) = buf.strip().partition(" ")
        if not sep:
            _log_warn("%s:%d: Bad syntax", path, line)
            continue

        yield (line, key.strip(), value.strip())


def read_key_value_file(path):
    """Open the file at ``path`` and parse its ``key value`` lines.

    The file is closed when the returned generator is exhausted or
    closed. Bytes that are not valid UTF-8 are replaced with U+FFFD.

    :param path: The path to a loader configuration or entry file.
    :returns: A generator of ``(line_number, key, value)`` tuples.
    :raises: ``BootSpecFileError`` if the file cannot be opened or read.
    """
    try:
        f = open(path, "r", encoding="utf8", errors="replace")
    except OSError as e:
        _log_error('Failed to open "%s": %s', path, e)
        raise BootSpecFileError.open_failed(path, e) from e

    with f:
        yield from parse_key_value_lines(f, path)


__all__ = [
    # bootspec module constants
    "DEFAULT_BOOTSPEC_CONFIG_PATH",
    "DEFAULT_ESP_CANDIDATES",
    "DEFAULT_EFIVARS_PATH",
    "LONG_LINE_MAX",
    # API Classes
    "BootSpecConfig",
    # Path configuration
    "get_esp_path",
    "set_esp_path",
    "get_esp_candidates",
    "set_esp_candidates",
    "get_efivars_path",
    "set_efivars_path",
    # Persistent configuration
    "set_bootspec_config",
    "get_bootspec_config",
    # bootspec exception classes
    "BootSpecError",
    "BootSpecFileError",
    # Bootspec logger class (used by test suite)
    "BootSpecLogger",
    # Debug logging
    "get_debug_mask",
    "set_debug_mask",
    "BOOTSPEC_DEBUG_ENTRY",
    "BOOTSPEC_DEBUG_LOADER",
    "BOOTSPEC_DEBUG_EFI",
    "BOOTSPEC_DEBUG_ESP",
    "BOOTSPEC_DEBUG_ALL",
    # Utility routines
    "str_verscmp",
    "blank_or_comment",
    "parse_key_value_lines",
    "read_key_value_file",
]

# vim: set et ts=4 sw=4
