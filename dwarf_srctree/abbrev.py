# (c) Copyright 2022 Aaron Kimball
#
# Index of the .debug_abbrev table: where each abbreviation code's declaration starts.

from dwarf_srctree.errors import LookupFailure


class Abbreviation(object):
    """
    One abbreviation declaration: its code and the offset of its code byte in the data segment.

    The tag, has-children flag and (attribute, form) list are decoded on first use via
    declaration().
    """

    def __init__(self, code, offset):
        self.code = code
        self.offset = offset
        self._decl = None

    def __repr__(self):
        return f'Abbreviation(code={self.code}, offset={self.offset:#x})'

    def declaration(self, reader):
        """
        Return (tag, has_children, [(attribute, form), ...]) for this code, reading the table
        through a fork of `reader` the first time we're asked.
        """
        if self._decl is None:
            r = reader.fork(self.offset)
            r.read_byte()  # Consume the code itself.
            tag = r.read_byte()
            has_children = r.read_byte() != 0
            attr_specs = []
            while True:
                attribute = r.read_uleb128()
                form = r.read_uleb128()
                if attribute == 0 and form == 0:
                    break
                attr_specs.append((attribute, form))
            self._decl = (tag, has_children, attr_specs)

        return self._decl


class AbbreviationIndex(object):
    """
    Lookup from abbreviation code to declaration, built by one scan of the table.
    """

    def __init__(self):
        self._abbrevs = []       # Abbreviations in table order.
        self._by_code = {}       # code -> Abbreviation (first declaration wins)
        self.duplicates = []     # Abbreviations whose code was already declared.
        self.end = None          # Offset just past the table's terminating zero.

    @staticmethod
    def scan(reader):
        """
        Scan the abbreviation table starting at `reader`'s position. The table ends at the first
        code byte of zero. Each declaration is code, tag and children bytes, then attribute/form
        bytes up to a pair of zeros.

        Every read is bounded by the data-segment length; running off the end raises BufferOverrun.
        """
        index = AbbreviationIndex()
        r = reader.fork()
        while True:
            offset = r.pos
            code = r.read_byte()
            if code == 0:
                break  # End of table.

            index._add(Abbreviation(code, offset))

            # Consume the tag and has_children bytes so they don't count as zeros for
            # end-of-declaration detection.
            r.read_byte()
            r.read_byte()

            read_zero = False
            while True:
                if r.read_byte() == 0:
                    if read_zero:
                        break
                    read_zero = True
                else:
                    read_zero = False

        index.end = r.pos
        return index

    def _add(self, abbrev):
        self._abbrevs.append(abbrev)
        if abbrev.code in self._by_code:
            self.duplicates.append(abbrev)
        else:
            self._by_code[abbrev.code] = abbrev

    def __len__(self):
        return len(self._abbrevs)

    def __iter__(self):
        return iter(self._abbrevs)

    def __contains__(self, code):
        return code in self._by_code

    def lookup(self, code):
        try:
            return self._by_code[code]
        except KeyError:
            raise LookupFailure(f'No abbreviation declared for code {code}') from None
