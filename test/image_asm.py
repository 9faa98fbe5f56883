# (c) Copyright 2022 Aaron Kimball

"""
A tiny stand-in for the program assembler, for building test images.

ImageAssembler emits data items and records a SymbolDescriptor for each one, the way the real
assembler does for the data segment. DebugInfoAssembler lays out a .debug_info section, its
.debug_abbrev table, and then the string table and range lists that the entries point into.
"""

from elftools.dwarf.enums import ENUM_DW_FORM

import dwarf_srctree.forms as forms
from dwarf_srctree.image import ProgramImage


class ImageAssembler(object):

    def __init__(self, byteorder='little'):
        self.data = bytearray()
        self.symbols = []  # (addr, size) for every item emitted with a symbol.
        self._byteorder = byteorder

    def here(self):
        return len(self.data)

    def item(self, value, size, symbol=True):
        addr = len(self.data)
        self.data += value.to_bytes(size, byteorder=self._byteorder)
        if symbol:
            self.symbols.append((addr, size))
        return addr

    def byte(self, value, symbol=True):
        return self.item(value, 1, symbol)

    def half(self, value, symbol=True):
        return self.item(value, 2, symbol)

    def word(self, value, symbol=True):
        return self.item(value, 4, symbol)

    def uleb(self, value, symbol=True):
        """ Emit a ULEB128 value as a single item. """
        addr = len(self.data)
        while True:
            b = value & 0x7F
            value >>= 7
            if value:
                self.data.append(b | 0x80)
            else:
                self.data.append(b)
                break
        if symbol:
            self.symbols.append((addr, len(self.data) - addr))
        return addr

    def raw(self, data):
        """ Emit bytes with no symbols at all. """
        addr = len(self.data)
        self.data += data
        return addr

    def cstring(self, text):
        """ Emit a NUL-terminated string as one item. """
        addr = len(self.data)
        self.data += text.encode('utf-8') + b'\0'
        self.symbols.append((addr, len(self.data) - addr))
        return addr

    def patch_word(self, addr, value):
        self.data[addr:addr + 4] = value.to_bytes(4, byteorder=self._byteorder)

    def image(self, debug_info_start, debug_abbrev_start, length=None):
        return ProgramImage(bytes(self.data), self.symbols, debug_info_start, debug_abbrev_start,
                            length)


class RangeList(object):
    """
    Value for a DW_AT_ranges attribute: (low, high) pairs plus the declared width of each half.
    The (0, 0) terminator is appended unless `terminated` is False.
    """

    def __init__(self, pairs, widths=None, end_widths=(4, 4), terminated=True):
        self.pairs = pairs
        self.widths = widths or [(4, 4)] * len(pairs)
        self.end_widths = end_widths
        self.terminated = terminated


class DebugInfoAssembler(object):
    """
    Builds a program image holding debug info. Use:

        dia = DebugInfoAssembler()
        dia.abbrev(1, DW_TAG_compile_unit, True, [(DW_AT_name, DW_FORM_strp)])
        unit = dia.begin_unit()
        dia.entry(1, "foo.cpp")
        ...
        dia.end_children()
        dia.end_unit(unit)
        image = dia.finish()
    """

    def __init__(self, byteorder='little', lead_in=0):
        self.asm = ImageAssembler(byteorder)
        self._abbrevs = []          # (code, tag, has_children, attr_specs) in table order
        self._decls = {}            # code -> (tag, has_children, attr_specs)
        self._string_fixups = []    # (addr_of_word, text)
        self._range_fixups = []     # (addr_of_word, RangeList)
        for _ in range(lead_in):
            self.asm.byte(0xEE)     # Unrelated data ahead of .debug_info
        self.debug_info_start = self.asm.here()
        self.debug_abbrev_start = None

    def abbrev(self, code, tag, has_children, attr_specs):
        self._abbrevs.append((code, tag, has_children, attr_specs))
        self._decls.setdefault(code, (tag, has_children, attr_specs))

    def begin_unit(self, version=4, addr_size=4):
        start = self.asm.word(0)  # unit_length; patched by end_unit()
        self.asm.half(version)
        self.asm.word(0)          # abbrev offset
        self.asm.byte(addr_size)
        return start

    def end_unit(self, start, length=None):
        if length is None:
            length = self.asm.here() - start - 4
        self.asm.patch_word(start, length)

    def entry(self, code, *values):
        """
        Emit an entry using abbreviation `code`; one value per declared attribute (use None
        for forms that carry no data). Returns the entry's address.
        """
        addr = self.asm.byte(code)
        (tag, has_children, attr_specs) = self._decls[code]
        assert len(values) == len(attr_specs), "one value per attribute"
        for ((attr, form), value) in zip(attr_specs, values):
            self._emit_value(attr, form, value)
        return addr

    def end_children(self):
        self.asm.byte(0)

    def _emit_value(self, attr, form, value):
        asm = self.asm
        if attr in forms.PAYLOADLESS_ATTRIBUTES or form == forms.DW_FORM_flag_present:
            return
        if isinstance(value, str) and form == forms.DW_FORM_strp:
            self._string_fixups.append((asm.word(0), value))
        elif isinstance(value, RangeList):
            self._range_fixups.append((asm.word(0), value))
        elif form == ENUM_DW_FORM["DW_FORM_string"]:
            asm.cstring(value)
        elif form == ENUM_DW_FORM["DW_FORM_udata"]:
            asm.uleb(value)
        elif form in (forms.DW_FORM_block1, forms.DW_FORM_exprloc, forms.DW_FORM_block):
            asm.byte(len(value))
            for b in value:
                asm.byte(b)
        elif form == forms.DW_FORM_block2:
            asm.half(len(value))
            for b in value:
                asm.byte(b)
        elif form == forms.DW_FORM_block4:
            asm.word(len(value))
            for b in value:
                asm.byte(b)
        elif form in forms.FORM_WIDTHS:
            asm.item(value, forms.FORM_WIDTHS[form])
        else:
            raise ValueError(f'test assembler cannot emit {forms.form_name(form)}')

    def _emit_abbrev_table(self):
        asm = self.asm
        for (code, tag, has_children, attr_specs) in self._abbrevs:
            asm.byte(code, symbol=False)
            asm.byte(tag, symbol=False)
            asm.byte(1 if has_children else 0, symbol=False)
            for (attr, form) in attr_specs:
                asm.uleb(attr, symbol=False)
                asm.uleb(form, symbol=False)
            asm.raw(b'\0\0')
        asm.raw(b'\0')  # End of table.

    def finish(self, abbrev_tail=b''):
        """
        Emit .debug_abbrev, then strings and range lists; patch the references to them and
        return the ProgramImage.
        """
        asm = self.asm
        self.debug_abbrev_start = asm.here()
        self._emit_abbrev_table()
        asm.raw(abbrev_tail)

        strings = {}
        for (fixup, text) in self._string_fixups:
            if text not in strings:
                strings[text] = asm.cstring(text)
            asm.patch_word(fixup, strings[text])

        for (fixup, range_list) in self._range_fixups:
            list_addr = asm.here()
            for ((lo, hi), (lo_w, hi_w)) in zip(range_list.pairs, range_list.widths):
                asm.item(lo, lo_w)
                asm.item(hi, hi_w)
            if range_list.terminated:
                (lo_w, hi_w) = range_list.end_widths
                asm.item(0, lo_w)
                asm.item(0, hi_w)
            asm.patch_word(fixup, list_addr)

        return asm.image(self.debug_info_start, self.debug_abbrev_start)
