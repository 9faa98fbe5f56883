# (c) Copyright 2022 Aaron Kimball
#
# The decoded source tree: compilation units, methods, lexical blocks and classes with the
# $PC ranges they occupy. Entries live in one arena and refer to each other by index.

from sortedcontainers import SortedDict

import dwarf_srctree.forms as forms


class PCRange(object):
    """
    A half-open interval [pc_lo, pc_hi) of $PC values. pc_hi is None while the range is
    still open (low_pc decoded, high_pc not yet seen).
    """
    def __init__(self, pc_lo, pc_hi=None):
        self.pc_lo = pc_lo
        self.pc_hi = pc_hi

    def is_open(self):
        return self.pc_hi is None

    def includes_pc(self, pc):
        return self.pc_hi is not None and self.pc_lo <= pc and pc < self.pc_hi

    def as_tuple(self):
        return (self.pc_lo, self.pc_hi)

    def __repr__(self):
        if self.pc_hi is None:
            return f'[{self.pc_lo:x}..?)'
        return f'[{self.pc_lo:x}..{self.pc_hi:x})'

    def __eq__(self, other):
        return isinstance(other, PCRange) and \
            self.pc_lo == other.pc_lo and self.pc_hi == other.pc_hi

    def __ne__(self, other):
        return not self.__eq__(other)


class DebugEntry(object):
    """
    One debugging information entry and its place in the SourceTree.

    addr is the data-segment address of the entry's abbreviation code; top_level_addr is the
    address of the unit header it was read from. ref_target, if not None, is the address of the
    entry named by DW_AT_specification / DW_AT_abstract_origin.
    """

    def __init__(self, index, addr, top_level_addr, abbrev_code, parent=None):
        self.index = index
        self.addr = addr
        self.top_level_addr = top_level_addr
        self.abbrev_code = abbrev_code
        self.tag = None
        self.name = None
        self.ranges = []
        self.ref_target = None
        self.parent = parent      # Arena index of the parent entry (None for the root).
        self.children = []        # Arena indices of child entries, in read order.

    def __repr__(self):
        s = f'<{self.tag_name()}'
        if self.name:
            s += f' {self.name}'
        if self.addr is not None:
            s += f' @{self.addr:x}'
        if self.ranges:
            s += ' ' + ', '.join(map(repr, self.ranges))
        return s + '>'

    def tag_name(self):
        return forms.tag_name(self.tag)

    def is_root(self):
        return self.parent is None

    def is_compile_unit(self):
        return self.tag == forms.DW_TAG_compile_unit

    def open_range(self):
        """ Return the range still waiting for its high_pc, or None. """
        for r in self.ranges:
            if r.is_open():
                return r
        return None

    def contains_pc(self, pc):
        for r in self.ranges:
            if r.includes_pc(pc):
                return True
        return False


class SourceTree(object):
    """
    Arena of DebugEntry objects. Entry 0 is a synthetic root (tag None) whose children are the
    top-level compilation units, one per object file linked into the program.
    """

    ROOT = 0

    def __init__(self):
        self._entries = [DebugEntry(SourceTree.ROOT, None, None, None)]
        self._addr_to_entry = SortedDict()  # addr -> DebugEntry
        self._flattened = None
        self.runtime_root = None   # The "main" entry, once references are resolved.

    def __len__(self):
        """ Number of real entries (excluding the synthetic root). """
        return len(self._entries) - 1

    def __repr__(self):
        return f'SourceTree({len(self)} entries, {len(self.root.children)} units)'

    @property
    def root(self):
        return self._entries[SourceTree.ROOT]

    def entry(self, index):
        return self._entries[index]

    def new_entry(self, parent, addr, top_level_addr, abbrev_code):
        """
        Allocate an entry in the arena and link it as the last child of `parent`.
        """
        entry = DebugEntry(len(self._entries), addr, top_level_addr, abbrev_code, parent.index)
        self._entries.append(entry)
        parent.children.append(entry.index)
        self._addr_to_entry.setdefault(addr, entry)
        self._flattened = None
        return entry

    def children_of(self, entry):
        return [self._entries[i] for i in entry.children]

    def parent_of(self, entry):
        if entry.parent is None:
            return None
        return self._entries[entry.parent]

    def units(self):
        """ The top-level compilation units. """
        return self.children_of(self.root)

    def entry_at(self, addr):
        """
        Return the entry whose abbreviation code sits at `addr`, or None.
        """
        return self._addr_to_entry.get(addr)

    def flattened(self):
        """
        Return all entries (not the synthetic root) in pre-order: every parent precedes its
        descendants, and siblings keep their read order.
        """
        if self._flattened is None:
            out = []
            stack = list(reversed(self.root.children))
            while stack:
                entry = self._entries[stack.pop()]
                out.append(entry)
                stack.extend(reversed(entry.children))
            self._flattened = out
        return self._flattened

    def find_containing(self, pc):
        """
        Return the first entry (depth-first) whose ranges include `pc`, or None.

        The root and compilation units are never returned themselves; a unit whose ranges do not
        include `pc` is skipped whole, and a unit with no ranges at all is searched through.
        """
        return self._find_containing(self.root, pc)

    def _find_containing(self, entry, pc):
        if entry.is_root() or entry.is_compile_unit():
            if entry.ranges and not entry.contains_pc(pc):
                return None
            for child_idx in entry.children:
                found = self._find_containing(self._entries[child_idx], pc)
                if found is not None:
                    return found
            return None

        if entry.contains_pc(pc):
            return entry
        return None

    def scopes_for_pc(self, pc):
        """
        Return the entries enclosing `pc`, widest first: the method found by find_containing(),
        then each nested lexical block / inlined body that also includes `pc`.
        """
        out = []
        scope = self.find_containing(pc)
        while scope is not None:
            out.append(scope)
            inner = None
            for child_idx in scope.children:
                child = self._entries[child_idx]
                if child.contains_pc(pc):
                    inner = child
                    break
            scope = inner
        return out
