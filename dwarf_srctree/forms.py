# (c) Copyright 2022 Aaron Kimball
#
# DWARF tag / attribute / form codes used by the decoder, and the table describing how far each
# form moves the entry cursor and the symbol-descriptor cursor.

from elftools.dwarf.enums import ENUM_DW_AT, ENUM_DW_FORM, ENUM_DW_TAG

# Reverse maps (code -> name) for display. The enum dicts also carry a non-int '_default_'.
TAG_NAMES = dict((v, k) for (k, v) in ENUM_DW_TAG.items() if isinstance(v, int))
ATTR_NAMES = dict((v, k) for (k, v) in ENUM_DW_AT.items() if isinstance(v, int))
FORM_NAMES = dict((v, k) for (k, v) in ENUM_DW_FORM.items() if isinstance(v, int))

DW_TAG_class_type = ENUM_DW_TAG['DW_TAG_class_type']
DW_TAG_structure_type = ENUM_DW_TAG['DW_TAG_structure_type']
DW_TAG_compile_unit = ENUM_DW_TAG['DW_TAG_compile_unit']
DW_TAG_subprogram = ENUM_DW_TAG['DW_TAG_subprogram']
DW_TAG_lexical_block = ENUM_DW_TAG['DW_TAG_lexical_block']
DW_TAG_inlined_subroutine = ENUM_DW_TAG['DW_TAG_inlined_subroutine']

DW_AT_name = ENUM_DW_AT['DW_AT_name']
DW_AT_low_pc = ENUM_DW_AT['DW_AT_low_pc']
DW_AT_high_pc = ENUM_DW_AT['DW_AT_high_pc']
DW_AT_ranges = ENUM_DW_AT['DW_AT_ranges']
DW_AT_specification = ENUM_DW_AT['DW_AT_specification']
DW_AT_abstract_origin = ENUM_DW_AT['DW_AT_abstract_origin']
DW_AT_APPLE_optimized = ENUM_DW_AT['DW_AT_APPLE_optimized']

DW_FORM_addr = ENUM_DW_FORM['DW_FORM_addr']
DW_FORM_block2 = ENUM_DW_FORM['DW_FORM_block2']
DW_FORM_block4 = ENUM_DW_FORM['DW_FORM_block4']
DW_FORM_data2 = ENUM_DW_FORM['DW_FORM_data2']
DW_FORM_data4 = ENUM_DW_FORM['DW_FORM_data4']
DW_FORM_block = ENUM_DW_FORM['DW_FORM_block']
DW_FORM_block1 = ENUM_DW_FORM['DW_FORM_block1']
DW_FORM_data1 = ENUM_DW_FORM['DW_FORM_data1']
DW_FORM_flag = ENUM_DW_FORM['DW_FORM_flag']
DW_FORM_strp = ENUM_DW_FORM['DW_FORM_strp']
DW_FORM_ref_addr = ENUM_DW_FORM['DW_FORM_ref_addr']
DW_FORM_ref1 = ENUM_DW_FORM['DW_FORM_ref1']
DW_FORM_ref2 = ENUM_DW_FORM['DW_FORM_ref2']
DW_FORM_ref4 = ENUM_DW_FORM['DW_FORM_ref4']
DW_FORM_sec_offset = ENUM_DW_FORM['DW_FORM_sec_offset']
DW_FORM_exprloc = ENUM_DW_FORM['DW_FORM_exprloc']
DW_FORM_flag_present = ENUM_DW_FORM['DW_FORM_flag_present']

# Tags whose names qualify the names of their children ("Class::method").
CLASS_SCOPE_TAGS = frozenset([DW_TAG_class_type, DW_TAG_structure_type])

# Attributes declared in the abbreviation table that have no item in the entry stream at all.
PAYLOADLESS_ATTRIBUTES = frozenset([DW_AT_APPLE_optimized])

# Byte width of the fixed-size forms we decode values from.
FORM_WIDTHS = {
    DW_FORM_addr: 4,
    DW_FORM_data4: 4,
    DW_FORM_strp: 4,
    DW_FORM_ref_addr: 4,
    DW_FORM_ref4: 4,
    DW_FORM_sec_offset: 4,
    DW_FORM_data2: 2,
    DW_FORM_ref2: 2,
    DW_FORM_data1: 1,
    DW_FORM_ref1: 1,
    DW_FORM_flag: 1,
}

# Forms a reference attribute may use, and whether the value is relative to .debug_info
# (True) or to the unit header (False).
REFERENCE_FORMS = {
    DW_FORM_ref_addr: True,
    DW_FORM_ref1: False,
    DW_FORM_ref2: False,
    DW_FORM_ref4: False,
}


class FormAdvance(object):
    """
    How far one attribute of a given form moves the two decode cursors, beyond whatever
    bytes its decoder consumed itself.

    entry_bytes: FIXED (skip the declared item width if the attribute was not decoded),
                 BLOCK (skip a length-prefixed block), or NONE.
    symbol_slots: descriptor slots to step after the attribute (not counting block contents).
    """

    NONE = 0
    FIXED = 1
    BLOCK = 2

    def __init__(self, entry_bytes, symbol_slots):
        self.entry_bytes = entry_bytes
        self.symbol_slots = symbol_slots

    def __repr__(self):
        return f'FormAdvance(entry={self.entry_bytes}, slots={self.symbol_slots})'


_DEFAULT_ADVANCE = FormAdvance(FormAdvance.FIXED, 1)
_BLOCK_ADVANCE = FormAdvance(FormAdvance.BLOCK, 1)

FORM_ADVANCE = {
    DW_FORM_exprloc: _BLOCK_ADVANCE,
    DW_FORM_block: _BLOCK_ADVANCE,
    DW_FORM_block1: _BLOCK_ADVANCE,
    DW_FORM_block2: _BLOCK_ADVANCE,
    DW_FORM_block4: _BLOCK_ADVANCE,
    DW_FORM_flag_present: FormAdvance(FormAdvance.NONE, 0),
}


def advance_for_form(form):
    return FORM_ADVANCE.get(form, _DEFAULT_ADVANCE)


def tag_name(tag):
    if tag is None:
        return 'None'
    return TAG_NAMES.get(tag, f'DW_TAG_{tag:#x}')


def attr_name(attr):
    return ATTR_NAMES.get(attr, f'DW_AT_{attr:#x}')


def form_name(form):
    return FORM_NAMES.get(form, f'DW_FORM_{form:#x}')
