# (c) Copyright 2022 Aaron Kimball
#
# Decode one (attribute, form) pair of a debugging information entry. We extract names, $PC
# ranges and cross-entry references, and step over everything else without losing our place.

import dwarf_srctree.forms as forms
from dwarf_srctree.errors import MalformedRange, UnsupportedForm
from dwarf_srctree.forms import FormAdvance
from dwarf_srctree.srctree import PCRange


class AttrCursor(object):
    """
    Per-entry decode state that travels alongside the byte cursor: the slot of the symbol
    descriptor describing the next item in the entry, and the $PC base of the enclosing
    compilation unit (for DW_AT_ranges lists).
    """

    def __init__(self, slot, unit_pc_base=0):
        self.slot = slot
        self.unit_pc_base = unit_pc_base

    def __repr__(self):
        return f'AttrCursor(slot={self.slot}, base={self.unit_pc_base:#x})'


class AttributeDecoder(object):
    """
    Interprets attributes against a ProgramImage.

    @param image the ProgramImage being decoded.
    @param segment a ByteReader over the whole data segment, used for out-of-line data (strings,
        range lists); it is only ever forked, never moved.
    """

    def __init__(self, image, segment):
        self._symbols = image.symbols
        self._debug_info_start = image.debug_info_start
        self._segment = segment

    def decode(self, entry, attribute, form, reader, cursor):
        """
        Decode `attribute` (encoded as `form`) at `reader`'s position into `entry`. Afterwards
        `reader` is positioned at the next attribute and `cursor.slot` at its descriptor.
        """
        if attribute in forms.PAYLOADLESS_ATTRIBUTES:
            # Declared in the abbreviation but there is nothing in the entry for it.
            return

        used = True
        if attribute == forms.DW_AT_name:
            if form != forms.DW_FORM_strp:
                raise UnsupportedForm(f'Entry at {entry.addr:#x}: cannot read DW_AT_name ' +
                                      f'encoded as {forms.form_name(form)}')
            str_offset = self._read_value(entry, attribute, form, reader)
            entry.name = self._segment.read_cstring_at(str_offset)
        elif attribute == forms.DW_AT_low_pc:
            if entry.open_range() is not None:
                raise MalformedRange(f'Entry at {entry.addr:#x}: DW_AT_low_pc while an earlier ' +
                                     'range is still open')
            entry.ranges.append(PCRange(self._read_value(entry, attribute, form, reader)))
        elif attribute == forms.DW_AT_high_pc:
            pending = entry.open_range()
            if pending is None:
                raise MalformedRange(f'Entry at {entry.addr:#x}: invalid or inverted PC ranges ' +
                                     '(DW_AT_high_pc without DW_AT_low_pc)')
            value = self._read_value(entry, attribute, form, reader)
            if form == forms.DW_FORM_addr:
                pending.pc_hi = value
            else:
                # Not a raw address; it's an offset from low_pc.
                pending.pc_hi = pending.pc_lo + value
        elif attribute == forms.DW_AT_ranges:
            list_addr = self._read_value(entry, attribute, form, reader)
            self._read_range_list(entry, list_addr, cursor.unit_pc_base)
        elif attribute == forms.DW_AT_specification or attribute == forms.DW_AT_abstract_origin:
            if form not in forms.REFERENCE_FORMS:
                raise UnsupportedForm(f'Entry at {entry.addr:#x}: cannot follow reference ' +
                                      f'encoded as {forms.form_name(form)}')
            value = self._read_value(entry, attribute, form, reader)
            if forms.REFERENCE_FORMS[form]:
                entry.ref_target = value + self._debug_info_start
            else:
                entry.ref_target = value + entry.top_level_addr
        else:
            # Something the profiler doesn't care about.
            used = False

        # Step past any data this attribute holds that wasn't consumed above.
        advance = forms.advance_for_form(form)
        if advance.entry_bytes == FormAdvance.BLOCK:
            length = reader.read_sized(self._symbols.at(cursor.slot).size)
            reader.skip(length)
            cursor.slot += length  # One descriptor per block byte.
        elif advance.entry_bytes == FormAdvance.FIXED and not used:
            reader.skip(self._symbols.at(cursor.slot).size)

        cursor.slot += advance.symbol_slots

    def _read_value(self, entry, attribute, form, reader):
        try:
            width = forms.FORM_WIDTHS[form]
        except KeyError:
            raise UnsupportedForm(
                f'Entry at {entry.addr:#x}: unhandled form {forms.form_name(form)} for ' +
                f'{forms.attr_name(attribute)}') from None
        return reader.read_sized(width)

    def _read_range_list(self, entry, list_addr, unit_pc_base):
        """
        Append the (low, high) pairs of the range list at `list_addr` to the entry. Each half
        of a pair is its own data item with its own declared width. The list ends at (0, 0).
        """
        slot = self._symbols.index_of(list_addr)
        while True:
            if slot + 1 >= len(self._symbols):
                raise MalformedRange(f'Entry at {entry.addr:#x}: range list at {list_addr:#x} ' +
                                     'has no terminating (0, 0) pair')
            lo_sym = self._symbols.at(slot)
            hi_sym = self._symbols.at(slot + 1)
            pc_lo = self._segment.fork(lo_sym.addr).read_sized(lo_sym.size)
            pc_hi = self._segment.fork(hi_sym.addr).read_sized(hi_sym.size)
            if pc_lo == 0 and pc_hi == 0:
                break

            # Range list entries are offsets from the containing compilation unit.
            entry.ranges.append(PCRange(pc_lo + unit_pc_base, pc_hi + unit_pc_base))
            slot += 2
