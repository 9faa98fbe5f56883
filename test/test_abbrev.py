#!/usr/bin/env python3
# (c) Copyright 2022 Aaron Kimball

import unittest

from dwarf_srctree.abbrev import AbbreviationIndex
from dwarf_srctree.errors import BufferOverrun, LookupFailure
from dwarf_srctree.reader import ByteReader

# Two declarations, the end-of-table zero, then unrelated data.
_TABLE = bytes([
    0x01, 0x2e, 0x00,            # code 1: DW_TAG_subprogram, no children
    0x03, 0x0e, 0x11, 0x01,      # DW_AT_name/strp, DW_AT_low_pc/addr
    0x00, 0x00,
    0x02, 0x11, 0x01,            # code 2: DW_TAG_compile_unit, has children
    0x87, 0x40, 0x0e,            # DW_AT_MIPS_linkage_name (two-byte code)/strp
    0x00, 0x00,
    0x00,                        # end of table
    0xAA,
])


class TestAbbreviationIndex(unittest.TestCase):

    def test_scan_records_offsets(self):
        index = AbbreviationIndex.scan(ByteReader(_TABLE))
        self.assertEqual(len(index), 2)
        self.assertEqual([(a.code, a.offset) for a in index], [(1, 0), (2, 9)])
        self.assertIn(1, index)
        self.assertNotIn(0, index)

    def test_scan_stops_at_first_zero_code(self):
        index = AbbreviationIndex.scan(ByteReader(_TABLE))
        self.assertEqual(index.end, 17 + 1)

    def test_scan_from_section_offset(self):
        data = b'\xff\xff\xff' + _TABLE
        index = AbbreviationIndex.scan(ByteReader(data, 3))
        self.assertEqual([a.offset for a in index], [3, 12])

    def test_declarations(self):
        reader = ByteReader(_TABLE)
        index = AbbreviationIndex.scan(reader)
        self.assertEqual(index.lookup(1).declaration(reader),
                         (0x2e, False, [(0x03, 0x0e), (0x11, 0x01)]))
        self.assertEqual(index.lookup(2).declaration(reader),
                         (0x11, True, [(0x2007, 0x0e)]))

    def test_lookup_unknown_code(self):
        index = AbbreviationIndex.scan(ByteReader(_TABLE))
        with self.assertRaises(LookupFailure):
            index.lookup(3)

    def test_unterminated_table_overruns(self):
        with self.assertRaises(BufferOverrun):
            AbbreviationIndex.scan(ByteReader(bytes([0x01, 0x2e, 0x00, 0x03, 0x0e, 0x00])))

    def test_scan_bounded_by_length(self):
        # The end-of-table byte exists in the buffer but lies past the usable length.
        with self.assertRaises(BufferOverrun):
            AbbreviationIndex.scan(ByteReader(_TABLE, length=17))

    def test_empty_table(self):
        index = AbbreviationIndex.scan(ByteReader(b'\x00'))
        self.assertEqual(len(index), 0)
        self.assertEqual(index.end, 1)

    def test_duplicate_code_keeps_first(self):
        table = bytes([0x01, 0x2e, 0x00, 0x00, 0x00,
                       0x01, 0x11, 0x00, 0x00, 0x00,
                       0x00])
        reader = ByteReader(table)
        index = AbbreviationIndex.scan(reader)
        self.assertEqual(len(index), 2)
        self.assertEqual(index.lookup(1).offset, 0)
        self.assertEqual(index.lookup(1).declaration(reader), (0x2e, False, []))
        self.assertEqual([a.offset for a in index.duplicates], [5])


if __name__ == "__main__":
    unittest.main(verbosity=2)
