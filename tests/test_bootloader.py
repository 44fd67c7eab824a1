# Copyright Red Hat
#
# tests/test_bootloader.py - Bootspec boot entry tests.
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
import unittest
import logging
from os import makedirs
from os.path import join

log = logging.getLogger()

from bootspec import *
from bootspec.bootloader import *

from tests import *

ENTRIES_ROOT_TEST = join(ESP_ROOT_TEST, "loader/entries")


def _entries(*filenames, **kwargs):
    """Build a list of in-memory BootEntry objects with the given file
        names and any common attributes in ``kwargs``.
    """
    return [BootEntry(filename=f, **kwargs) for f in filenames]


class BootEntryBasicTests(unittest.TestCase):
    """Tests for the BootEntry class that do not depend on external
        test data.
    """
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)

    def test_BootEntry_no_filename_raises(self):
        with self.assertRaises(ValueError):
            BootEntry(title="title")

    def test_BootEntry_filename_and_entry_file_raises(self):
        with self.assertRaises(ValueError):
            BootEntry(filename="a.conf", entry_file="/boot/a.conf")

    def test_BootEntry_defaults(self):
        be = BootEntry(filename="a.conf")
        self.assertIsNone(be.title)
        self.assertIsNone(be.show_title)
        self.assertEqual(be.options, [])
        self.assertEqual(be.initrd, [])
        self.assertEqual(be.base_title, "a.conf")
        self.assertEqual(be.display_title, "a.conf")

    def test_BootEntry_display_title(self):
        be = BootEntry(filename="a.conf", title="Linux")
        self.assertEqual(be.display_title, "Linux")
        be.show_title = "Linux (1.0)"
        self.assertEqual(be.display_title, "Linux (1.0)")
        self.assertEqual(be.base_title, "Linux")

    def test_BootEntry__str__(self):
        be = BootEntry(filename="a.conf", title="Linux", version="1.0",
                       options=["root=/dev/sda1", "quiet"],
                       kernel="/vmlinuz-1.0",
                       initrd=["/initrd-1.0", "/ucode"])
        xstr = ("title Linux\nversion 1.0\nlinux /vmlinuz-1.0\n"
                "initrd /initrd-1.0\ninitrd /ucode\n"
                "options root=/dev/sda1\noptions quiet")
        self.assertEqual(str(be), xstr)

    def test_BootEntry__repr__(self):
        be = BootEntry(filename="a.conf", title="Linux", efi="/a.efi")
        xrepr = ('BootEntry(filename="a.conf", entry_data={title: "Linux", '
                 'efi: "/a.efi"})')
        self.assertEqual(repr(be), xrepr)

    def test_BootEntry__eq__(self):
        be1 = BootEntry(filename="a.conf", title="Linux")
        be2 = BootEntry(filename="a.conf", title="Linux")
        be3 = BootEntry(filename="b.conf", title="Linux")
        self.assertEqual(be1, be2)
        self.assertNotEqual(be1, be3)
        self.assertNotEqual(be1, "a.conf")


class BootEntryLoadTests(unittest.TestCase):
    """Tests for loading BootEntry objects from the test entries.
    """
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)

    def test_load_entry(self):
        be = load_entry(join(ENTRIES_ROOT_TEST, "fedora-5.10.0.conf"))
        self.assertEqual(be.filename, "fedora-5.10.0.conf")
        self.assertEqual(be.title, "Fedora Linux")
        self.assertEqual(be.version, "5.10.0")
        self.assertEqual(be.machine_id, "611d10b43e0b4bc5a5d8bb2ba8f4ab7e")
        self.assertEqual(be.options, ["root=/dev/mapper/fedora-root ro",
                                      "rhgb quiet"])
        self.assertEqual(
            be.kernel, "/611d10b43e0b4bc5a5d8bb2ba8f4ab7e/5.10.0/linux"
        )
        self.assertEqual(be.initrd, [
            "/611d10b43e0b4bc5a5d8bb2ba8f4ab7e/5.10.0/initrd",
            "/611d10b43e0b4bc5a5d8bb2ba8f4ab7e/5.10.0/microcode",
        ])
        self.assertIsNone(be.efi)
        self.assertIsNone(be.show_title)

    def test_load_entry_unknown_key_and_bad_syntax(self):
        path = join(ENTRIES_ROOT_TEST, "fedora-5.10.0.conf")
        with self.assertLogs("bootspec", level="INFO") as cm:
            load_entry(path)
        output = "\n".join(cm.output)
        self.assertIn('Unknown line "grub_users"', output)
        self.assertIn("Bad syntax", output)

    def test_load_entry_scalar_last_wins(self):
        be = load_entry(join(ENTRIES_ROOT_TEST, "no-title.conf"))
        self.assertIsNone(be.title)
        self.assertEqual(be.architecture, "x64")
        self.assertEqual(be.device_tree, "/dtbs/board-rev2.dtb")
        self.assertEqual(be.display_title, "no-title.conf")

    def test_load_entry_efi(self):
        be = BootEntry(entry_file=join(ENTRIES_ROOT_TEST, "windows.conf"))
        self.assertEqual(be.efi, "/EFI/Microsoft/Boot/bootmgfw.efi")
        self.assertIsNone(be.kernel)
        self.assertEqual(be.options, [])

    def test_load_entry_missing_raises(self):
        with self.assertRaises(BootSpecFileError):
            load_entry(join(ENTRIES_ROOT_TEST, "nonexistent.conf"))


class FindEntriesTests(unittest.TestCase):
    """Tests for boot entry discovery.
    """
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.esp_path = mk_esp_sandbox()
        self.entries_path = join(self.esp_path, ENTRIES_PATH)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        rm_sandbox()

    def test_find_entries(self):
        entries = find_entries(self.entries_path)
        xnames = ["fedora-5.9.0.conf", "fedora-5.10.0.conf",
                  "no-title.conf", "windows.conf"]
        self.assertEqual([be.filename for be in entries], xnames)

    def test_find_entries_skips_bad_files(self):
        # Unreadable entries are skipped
        with open(join(self.entries_path, "long.conf"), "w") as f:
            f.write("title " + "x" * LONG_LINE_MAX + "\n")
        # Directories are not entries
        makedirs(join(self.entries_path, "subdir.conf"))
        # Neither are files without the .conf suffix
        with open(join(self.entries_path, "other.txt"), "w") as f:
            f.write("title Other\n")

        with self.assertLogs("bootspec.bootloader", level="INFO") as cm:
            entries = find_entries(self.entries_path)

        self.assertEqual(len(entries), 4)
        names = [be.filename for be in entries]
        self.assertNotIn("long.conf", names)
        self.assertNotIn("subdir.conf", names)
        self.assertNotIn("other.txt", names)
        output = "\n".join(cm.output)
        self.assertIn("long.conf", output)

    def test_find_entries_skips_hidden_files(self):
        with open(join(self.entries_path, ".fedora-old.conf"), "w") as f:
            f.write("title Old Fedora\n")
        with open(join(self.entries_path, "._windows.conf"), "wb") as f:
            f.write(b"\x00\x05\x16\x07")
        entries = find_entries(self.entries_path)
        xnames = ["fedora-5.9.0.conf", "fedora-5.10.0.conf",
                  "no-title.conf", "windows.conf"]
        self.assertEqual([be.filename for be in entries], xnames)
        self.assertEqual(select_default_entry(entries), 3)

    def test_find_entries_loads_non_utf8(self):
        with open(join(self.entries_path, "latin.conf"), "wb") as f:
            f.write(b"title Syst\xe8me\nversion 1.0\n")
        entries = find_entries(self.entries_path)
        latin = [be for be in entries if be.filename == "latin.conf"]
        self.assertEqual(len(latin), 1)
        self.assertEqual(latin[0].title, "Syst\ufffdme")
        self.assertEqual(latin[0].version, "1.0")

    def test_find_entries_sorted_by_version(self):
        for name in ["linux-10.conf", "linux-9.conf"]:
            with open(join(self.entries_path, name), "w") as f:
                f.write("title Linux\n")
        entries = find_entries(self.entries_path)
        names = [be.filename for be in entries]
        self.assertLess(names.index("linux-9.conf"),
                        names.index("linux-10.conf"))

    def test_find_entries_empty_dir(self):
        empty = join(SANDBOX_PATH, "empty")
        makedirs(empty)
        self.assertEqual(find_entries(empty), [])

    def test_find_entries_missing_dir_raises(self):
        with self.assertRaises(BootSpecError) as cm:
            find_entries(join(SANDBOX_PATH, "nonexistent"))
        self.assertIn("nonexistent", str(cm.exception))
        self.assertNotIsInstance(cm.exception, BootSpecFileError)


class UniquifyTitlesTests(unittest.TestCase):
    """Tests for boot entry title disambiguation.
    """
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)

    def test_uniquify_titles_unique(self):
        entries = [BootEntry(filename="a.conf", title="A"),
                   BootEntry(filename="b.conf", title="B"),
                   BootEntry(filename="c.conf")]
        uniquify_titles(entries)
        self.assertEqual([be.show_title for be in entries], [None] * 3)
        self.assertEqual([be.display_title for be in entries],
                         ["A", "B", "c.conf"])

    def test_uniquify_titles_version(self):
        entries = [
            BootEntry(filename="l-%d.conf" % v, title="Linux",
                      version="%d.0" % v, machine_id="m")
            for v in (1, 2, 3)
        ]
        uniquify_titles(entries)
        self.assertEqual([be.show_title for be in entries],
                         ["Linux (1.0)", "Linux (2.0)", "Linux (3.0)"])

    def test_uniquify_titles_machine_id(self):
        entries = [
            BootEntry(filename="l-a.conf", title="Linux", version="1.0",
                      machine_id="aaaa"),
            BootEntry(filename="l-b.conf", title="Linux", version="1.0",
                      machine_id="bbbb"),
        ]
        uniquify_titles(entries)
        self.assertEqual([be.show_title for be in entries],
                         ["Linux (aaaa)", "Linux (bbbb)"])

    def test_uniquify_titles_filename(self):
        entries = [
            BootEntry(filename="l-a.conf", title="Linux", version="1.0",
                      machine_id="aaaa"),
            BootEntry(filename="l-b.conf", title="Linux", version="1.0",
                      machine_id="aaaa"),
        ]
        uniquify_titles(entries)
        # Each round starts from the base title: only the file name
        # suffix survives.
        self.assertEqual([be.show_title for be in entries],
                         ["Linux (l-a.conf)", "Linux (l-b.conf)"])

    def test_uniquify_titles_partial(self):
        entries = [
            BootEntry(filename="l-1.conf", title="Linux", version="1.0"),
            BootEntry(filename="l-2.conf", title="Linux", version="2.0"),
            BootEntry(filename="w.conf", title="Windows"),
        ]
        uniquify_titles(entries)
        self.assertEqual([be.display_title for be in entries],
                         ["Linux (1.0)", "Linux (2.0)", "Windows"])
        self.assertIsNone(entries[2].show_title)

    def test_uniquify_titles_no_version(self):
        entries = [
            BootEntry(filename="a.conf", title="Linux"),
            BootEntry(filename="b.conf", title="Linux"),
        ]
        uniquify_titles(entries)
        self.assertEqual([be.show_title for be in entries],
                         ["Linux (a.conf)", "Linux (b.conf)"])

    def test_uniquify_titles_test_entries(self):
        entries = uniquify_titles(find_entries(ENTRIES_ROOT_TEST))
        self.assertEqual(
            [be.display_title for be in entries],
            ["Fedora Linux (5.9.0)", "Fedora Linux (5.10.0)",
             "no-title.conf", "Windows Boot Manager"]
        )


class SelectDefaultEntryTests(unittest.TestCase):
    """Tests for default boot entry selection.
    """
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.entries = _entries("a-1.conf", "a-2.conf", "b-1.conf")

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)

    def test_select_default_entry_empty(self):
        self.assertIsNone(select_default_entry([]))
        self.assertIsNone(select_default_entry([], entry_oneshot="a.conf",
                                               default_pattern="*"))

    def test_select_default_entry_last(self):
        self.assertEqual(select_default_entry(self.entries), 2)

    def test_select_default_entry_pattern(self):
        self.assertEqual(
            select_default_entry(self.entries, default_pattern="a-*"), 1
        )

    def test_select_default_entry_pattern_casefold(self):
        self.assertEqual(
            select_default_entry(self.entries, default_pattern="A-*.CONF"), 1
        )

    def test_select_default_entry_pattern_escapes(self):
        entries = _entries("a-1.conf", "a*1.conf", "a-2.conf")
        self.assertEqual(
            select_default_entry(entries, default_pattern=r"A\*?.conf"), 1
        )
        self.assertEqual(
            select_default_entry(entries, default_pattern=r"a\-?.conf"), 2
        )
        # No entry contains a literal "?"
        self.assertEqual(
            select_default_entry(entries, default_pattern=r"a\?1.conf"), 2
        )

    def test_select_default_entry_default(self):
        self.assertEqual(
            select_default_entry(self.entries, entry_default="a-1.conf",
                                 default_pattern="b-*"), 0
        )

    def test_select_default_entry_default_is_exact(self):
        # LoaderEntryDefault is not a pattern and is case sensitive
        self.assertEqual(
            select_default_entry(self.entries, entry_default="A-1.conf"), 2
        )

    def test_select_default_entry_oneshot(self):
        self.assertEqual(
            select_default_entry(self.entries, entry_oneshot="a-2.conf",
                                 entry_default="a-1.conf",
                                 default_pattern="b-*"), 1
        )

    def test_select_default_entry_no_match_falls_through(self):
        self.assertEqual(
            select_default_entry(self.entries, entry_oneshot="x.conf",
                                 entry_default="a-1.conf"), 0
        )
        self.assertEqual(
            select_default_entry(self.entries, entry_oneshot="x.conf",
                                 entry_default="y.conf",
                                 default_pattern="a-*"), 1
        )
        self.assertEqual(
            select_default_entry(self.entries, default_pattern="z-*"), 2
        )

    def test_select_default_entry_prefers_last_match(self):
        entries = _entries("a.conf", "b.conf", "a.conf")
        self.assertEqual(
            select_default_entry(entries, entry_oneshot="a.conf"), 2
        )
        self.assertEqual(
            select_default_entry(entries, entry_default="a.conf"), 2
        )

# vim: set et ts=4 sw=4 :
