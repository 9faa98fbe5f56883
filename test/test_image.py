#!/usr/bin/env python3
# (c) Copyright 2022 Aaron Kimball

import os
import tempfile
import unittest

import dwarf_srctree
import dwarf_srctree.serialize as serialize
from dwarf_srctree.errors import LookupFailure
from dwarf_srctree.image import (IMAGE_SCHEMA_KEY, SERIALIZED_IMAGE_KEY, ProgramImage,
                                 SymbolDescriptor, SymbolTable, load_image, save_image)
from srctree_testcase import *


class TestSymbolTable(unittest.TestCase):

    def test_slots_follow_address_order(self):
        table = SymbolTable([(8, 4), (0, 1), SymbolDescriptor(1, 2), (3, 4)])
        self.assertEqual(len(table), 4)
        self.assertEqual([d.addr for d in table], [0, 1, 3, 8])
        self.assertEqual(table.index_of(3), 2)
        self.assertEqual(table.at(3), SymbolDescriptor(8, 4))

    def test_first_declaration_wins(self):
        table = SymbolTable([(0, 4), (0, 1)])
        self.assertEqual(len(table), 1)
        self.assertEqual(table.at(0).size, 4)

    def test_lookup_failures(self):
        table = SymbolTable([(0, 4), (4, 2)])
        with self.assertRaises(LookupFailure):
            table.index_of(2)
        with self.assertRaises(LookupFailure):
            table.at(2)
        with self.assertRaises(LookupFailure):
            table.at(-1)

    def test_image_length(self):
        image = ProgramImage(b'\x00' * 16, [(0, 4)], 0, 8, length=32)
        self.assertEqual(image.length, 16)
        image = ProgramImage(b'\x00' * 16, SymbolTable([(0, 4)]), 0, 8, length=12)
        self.assertEqual(image.length, 12)
        self.assertEqual(len(image.symbols), 1)


class TestImageFiles(SrcTreeTestCase):

    def __init__(self, methodName='runTest'):
        super().__init__(methodName)

    def _program(self):
        dia = self.new_assembler(lead_in=3)
        unit = dia.begin_unit()
        dia.entry(CU, "saved.c", 0x100, 0x100)
        dia.entry(FUNC, "main", 0x100, 0x40)
        dia.end_children()
        dia.end_unit(unit)
        return dia.finish()

    def test_save_and_load(self):
        image = self._program()
        with tempfile.TemporaryDirectory() as tmpdir:
            filename = os.path.join(tmpdir, "prog.image")
            save_image(image, filename)
            loaded = load_image(filename, self.console_printer.print_q)

        self.assertEqual(loaded.data, image.data)
        self.assertEqual(loaded.length, image.length)
        self.assertEqual(loaded.debug_info_start, 3)
        self.assertEqual(loaded.debug_abbrev_start, image.debug_abbrev_start)
        self.assertEqual(list(loaded.symbols), list(image.symbols))

        tree = self.build(loaded)
        self.assertRanges(tree.runtime_root, [(0x100, 0x140)])

    def test_load_rejects_other_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            filename = os.path.join(tmpdir, "not.image")
            serialize.persist_config_file(filename, 'config', {'dbg.verbose': True})
            with self.assertRaises(ValueError):
                load_image(filename, self.console_printer.print_q)

    def test_load_rejects_newer_schema(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            filename = os.path.join(tmpdir, "future.image")
            serialize.persist_config_file(filename, SERIALIZED_IMAGE_KEY, {IMAGE_SCHEMA_KEY: 99})
            with self.assertRaises(ValueError):
                load_image(filename, self.console_printer.print_q)

    def test_command_line(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            filename = os.path.join(tmpdir, "prog.image")
            dot_file = os.path.join(tmpdir, "prog.dot")
            save_image(self._program(), filename)

            ret = dwarf_srctree.main(['-i', filename, '--pc', '0x110', '--pc', '0x400',
                                      '--list', '--dot', dot_file])
            self.assertEqual(ret, 0)
            self.assertTrue(os.path.exists(dot_file))

    def test_command_line_failures(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(dwarf_srctree.main(['-i', os.path.join(tmpdir, "missing")]), 1)

            # Decodes, but there's no main().
            dia = self.new_assembler()
            unit = dia.begin_unit()
            dia.entry(CU_NO_PC, "lib.c")
            dia.end_children()
            dia.end_unit(unit)
            filename = os.path.join(tmpdir, "lib.image")
            save_image(dia.finish(), filename)
            self.assertEqual(dwarf_srctree.main(['-i', filename]), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
