# (c) Copyright 2022 Aaron Kimball
#
# The loaded program image that debug information is decoded from: the raw data segment,
# the assembler's parallel table of item widths, and the section offsets within it.
# Also saves/restores image snapshots so a source tree can be rebuilt offline.

from sortedcontainers import SortedDict

import dwarf_srctree.serialize as serialize
from dwarf_srctree.errors import LookupFailure

SERIALIZED_IMAGE_KEY = 'image'

IMAGE_SCHEMA_KEY = 'image_schema'
IMAGE_SCHEMA_VER = 1


class SymbolDescriptor(object):
    """
    One item emitted by the assembler into the data segment; records how many bytes wide
    the item at `addr` was declared to be.
    """

    def __init__(self, addr, size):
        self.addr = addr
        self.size = size

    def __repr__(self):
        return f'{self.addr:04x} <len={self.size}>'

    def __eq__(self, other):
        return isinstance(other, SymbolDescriptor) and \
            self.addr == other.addr and self.size == other.size


class SymbolTable(object):
    """
    Address-ordered table of SymbolDescriptors. Descriptors are addressed both by their
    data-segment address and by their position in the table; decoding walks the table by
    position ("slots") in step with the bytes it consumes.
    """

    def __init__(self, descriptors=None):
        self._by_addr = SortedDict()
        for desc in (descriptors or []):
            if isinstance(desc, SymbolDescriptor):
                self.add(desc.addr, desc.size)
            else:
                (addr, size) = desc
                self.add(addr, size)

    def add(self, addr, size):
        if addr in self._by_addr:
            return  # First declaration of an address wins.
        self._by_addr[addr] = SymbolDescriptor(addr, size)

    def __len__(self):
        return len(self._by_addr)

    def __iter__(self):
        return iter(self._by_addr.values())

    def __repr__(self):
        return f'SymbolTable({len(self)} items)'

    def index_of(self, addr):
        """
        Return the slot index of the descriptor at exactly `addr`.
        """
        if addr not in self._by_addr:
            raise LookupFailure(f'No debug data symbol at address {addr:#x}')
        return self._by_addr.index(addr)

    def at(self, slot):
        """
        Return the descriptor in slot `slot`.
        """
        if slot < 0 or slot >= len(self._by_addr):
            raise LookupFailure(f'Debug data symbol slot {slot} is outside symbol table ' +
                                f'(size {len(self._by_addr)})')
        return self._by_addr.peekitem(slot)[1]

    def to_list(self):
        return [[desc.addr, desc.size] for desc in self._by_addr.values()]


class ProgramImage(object):
    """
    A frozen snapshot of the loaded program's data segment.

    @param data the data-segment bytes.
    @param symbols iterable of SymbolDescriptor or (addr, size) pairs, or a SymbolTable.
    @param debug_info_start offset of the first unit header within `data`.
    @param debug_abbrev_start offset of the abbreviation table; .debug_info ends here.
    @param length usable length of `data`; defaults to all of it.
    """

    def __init__(self, data, symbols, debug_info_start, debug_abbrev_start, length=None):
        self.data = bytes(data)
        if length is None:
            length = len(self.data)
        self.length = min(length, len(self.data))
        if isinstance(symbols, SymbolTable):
            self.symbols = symbols
        else:
            self.symbols = SymbolTable(symbols)
        self.debug_info_start = debug_info_start
        self.debug_abbrev_start = debug_abbrev_start

    def __repr__(self):
        return (f'ProgramImage(len={self.length:#x}, .debug_info@{self.debug_info_start:#x}, ' +
                f'.debug_abbrev@{self.debug_abbrev_start:#x}, {len(self.symbols)} symbols)')


def save_image(image, filename):
    """
    Persist a ProgramImage to a snapshot file that load_image() can read back.
    """
    out = {}
    out['data'] = image.data
    out['length'] = image.length
    out['symbols'] = image.symbols.to_list()
    out['debug_info_start'] = image.debug_info_start
    out['debug_abbrev_start'] = image.debug_abbrev_start
    out[IMAGE_SCHEMA_KEY] = IMAGE_SCHEMA_VER

    serialize.persist_config_file(filename, SERIALIZED_IMAGE_KEY, out)


def load_image(filename, print_q=None):
    """
    Load a snapshot file written by save_image() and return the ProgramImage.
    """
    image_data = serialize.load_config_file(filename, SERIALIZED_IMAGE_KEY, print_q=print_q)

    schema = image_data.get(IMAGE_SCHEMA_KEY)
    if schema is None:
        raise ValueError(f"File '{filename}' does not contain a program image")
    if schema > IMAGE_SCHEMA_VER:
        raise ValueError(f"Cannot load image schema with version={schema}")

    return ProgramImage(image_data['data'], image_data['symbols'],
                        image_data['debug_info_start'], image_data['debug_abbrev_start'],
                        image_data.get('length'))
