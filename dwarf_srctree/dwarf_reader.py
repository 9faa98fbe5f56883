# (c) Copyright 2021 Aaron Kimball
#
# Build a tree of source-level constructs (compilation units, methods, lexical blocks, classes)
# and their $PC ranges from the debug information embedded in a program image.

import os
import os.path
import time
import traceback

import dwarf_srctree.dot as dot
import dwarf_srctree.forms as forms
import dwarf_srctree.serialize as serialize
import dwarf_srctree.term as term
from dwarf_srctree.abbrev import AbbreviationIndex
from dwarf_srctree.attribute import AttrCursor, AttributeDecoder
from dwarf_srctree.errors import (BufferOverrun, DebugInfoError, LookupFailure, MissingEntryPoint,
                                  UnsupportedFormatVersion)
from dwarf_srctree.reader import ByteReader
from dwarf_srctree.srctree import SourceTree
from dwarf_srctree.term import MsgLevel

_LOCAL_CONF_FILENAME = os.path.expanduser("~/.dwarf_srctree.conf")

# .debug_info unit header versions we can read.
SUPPORTED_DWARF_VERSIONS = (2, 4)
# We only handle 32-bit addresses.
SUPPORTED_ADDR_SIZE = 4

_dbg_conf_keys = [
    "dbg.colors",
    "dbg.conf.formatversion",
    "dbg.verbose",
    "srctree.dot.file",      # If set, write the decoded tree here as a graphviz file.
    "srctree.endian",        # Byte order of the data segment: 'little' or 'big'.
    "srctree.entry.point",   # Name of the method that anchors the runtime tree.
]


def _silent(*args):
    """
        dummy method to turn verboseprint() calls to nothing
    """
    pass


# Control codes for verboseprint() - if this sequence preceeds an int, provides instructions on
# how to format it when printed.
VDEC = b'\x00\xFF\x0a'  # Print base 10
VHEX = b'\x00\xFF\x10'  # Print base 16
VHEX4 = b'\x00\xFF\x10\x04'  # Print base 16, 0-pad to 4 places
VHEX8 = b'\x00\xFF\x10\x08'  # Print base 16, 0-pad to 8 places


class DwarfReader(object):
    """
        Decodes the debug information of a ProgramImage into a SourceTree.

        Typical use:

            reader = DwarfReader(print_q)
            tree = reader.build_source_tree(image)
            entry = tree.find_containing(pc)

        Any structural problem in the debug data raises a DebugInfoError subclass out of
        build_source_tree(); no partial tree is kept.
    """

    def __init__(self, print_q=None, force_config=None):
        """
        @param print_q the queue that connects us to stdout/ConsolePrinter. May be None, in
            which case messages are dropped.
        @param force_config if not None, provides config inputs and suppresses loading from
            user config file. Also suppresses subsequent writes to user config file if settings
            change.
        """
        self._print_q = print_q

        self.verboseprint = _silent  # verboseprint() method is either _silent() or _verbose_print_all()

        # If true, save config changes to file. Generally we save-on-change unless we were given
        # a canned config in our constructor. Then subsequent changes aren't persisted.
        self._do_persist_config_changes = (force_config is None)
        self._init_config_from_file(force_config)

        self._image = None
        self._abbrevs = None
        self._attr_decoder = None
        self.source_tree = None

    def msg_q(self, color, *args):
        """
        Enqueue a msg for printing to the console. Adds the stringified message and color/priority
        level to the print queue.

        @param color either a term color string (term.COLOR_BOLD) or MsgLevel enum
        @param args a set of arguments to stringify and concatenate.
        """
        if self._print_q is None:
            return

        def _str_fn(x):
            if isinstance(x, str):
                return x
            else:
                return repr(x)

        msg_str = "".join(list(map(_str_fn, args)))
        self._print_q.put((msg_str, color))

    ###### Configuration

    def _set_conf_defaults(self, conf_map=None):
        if not conf_map:
            conf_map = {}

        conf_map["dbg.colors"] = True
        conf_map["dbg.conf.formatversion"] = serialize.DBG_CONF_FMT_VERSION
        conf_map["dbg.verbose"] = False
        conf_map["srctree.dot.file"] = None
        conf_map["srctree.endian"] = "little"
        conf_map["srctree.entry.point"] = "main"

        return conf_map

    def _init_config_from_file(self, force_config=None):
        """
        If the user has a config file (see _LOCAL_CONF_FILENAME) then initialize self._config
        from that.
        """
        defaults = self._set_conf_defaults()
        if force_config is not None:
            # If given a forced input config, initialize our config from there.
            for (key, val) in force_config.items():
                if key not in _dbg_conf_keys:
                    raise KeyError("Not a valid conf key: %s" % key)
                defaults[key] = val

        if os.path.exists(_LOCAL_CONF_FILENAME) and force_config is None:
            # If we have a config file to load, load it -- unless given a force_config,
            # in which case we just stick with that.
            new_conf = serialize.load_config_file(_LOCAL_CONF_FILENAME, 'config', defaults,
                                                  self._print_q)
            # Disregard stale keys from older config files.
            for key in list(new_conf.keys()):
                if key not in _dbg_conf_keys:
                    del new_conf[key]
        else:
            new_conf = defaults

        self._config = new_conf
        self._config_verbose_print()

        if force_config is None:
            self.verboseprint("Loaded config from file: ", _LOCAL_CONF_FILENAME)
        else:
            self.verboseprint("Used programmatic configuration")
        self.verboseprint("Loaded configuration: ", self._config)

    def _persist_config(self):
        """
        Write the current config out to a file to reload the next time.
        """

        if not self._do_persist_config_changes:
            # We actually do not want to persist changes to file. Do nothing.
            return

        # Don't let user session change this value; we know what serialization version we're
        # writing.
        self._config["dbg.conf.formatversion"] = serialize.DBG_CONF_FMT_VERSION
        serialize.persist_config_file(_LOCAL_CONF_FILENAME, 'config', self._config)

    def set_conf(self, key, val):
        """
        Set a key-value pair in the configuration map.
        Then process any triggers associated with that key.
        """
        if key not in _dbg_conf_keys:
            raise KeyError("Not a valid conf key: %s" % key)
        if key == "srctree.endian" and val not in ("little", "big"):
            raise ValueError(f"srctree.endian must be 'little' or 'big', not {val!r}")

        self._config[key] = val

        # Process triggers for specific keys
        if key == "dbg.verbose" or key == "dbg.colors":
            self._config_verbose_print()

        self._persist_config()  # Write changes to conf file.

    def override_conf(self, key, val):
        """
        Set a config value for this session only (e.g. from a command-line flag); it is not
        written to the conf file.
        """
        persist = self._do_persist_config_changes
        self._do_persist_config_changes = False
        try:
            self.set_conf(key, val)
        finally:
            self._do_persist_config_changes = persist

    def get_conf(self, key):
        if key not in _dbg_conf_keys:
            raise KeyError("Not a valid conf key: %s" % key)
        return self._config[key]

    def get_full_config(self):
        return self._config.items()

    def get_conf_keys(self):
        """
        Return the set of valid configuration keys for use with set_conf().
        """
        return _dbg_conf_keys

    def _make_verbose_print_fn(self):
        """
        Return a 'verboseprint()' method that curries the self._print_q field.
        """

        def _verbose_print_all(*args):
            """
            Verbose printing method that lazily concatenates its arguments rather than requiring
            callers to compute an f'string that might get swallowed by _silent() if verbose printing is
            disabled.
            """

            s = ''
            next_ctrl = None
            for arg in args:
                if isinstance(arg, bytes):
                    if arg == VDEC or arg == VHEX or arg == VHEX4 or arg == VHEX8:
                        next_ctrl = arg
                        continue
                    else:
                        # Just a byte string to format.
                        s += repr(arg)
                elif next_ctrl is not None and isinstance(arg, int):
                    if next_ctrl == VDEC:
                        s += f'{arg}'
                    elif next_ctrl == VHEX:
                        s += f'{arg:x}'
                    elif next_ctrl == VHEX4:
                        s += f'{arg:04x}'
                    else:
                        s += f'{arg:08x}'
                elif isinstance(arg, str):
                    s += arg
                else:
                    s += repr(arg)

                next_ctrl = None

            self.msg_q(MsgLevel.DEBUG, s)

        return _verbose_print_all

    def _config_verbose_print(self):
        term.set_use_colors(self._config['dbg.colors'])
        if self._config['dbg.verbose']:
            self.verboseprint = self._make_verbose_print_fn()
        else:
            self.verboseprint = _silent

    ###### Source tree construction

    def build_source_tree(self, image):
        """
        Decode all units of .debug_info in `image` into a new SourceTree, resolve cross-entry
        references and locate the entry point.

        @return the SourceTree (also kept as self.source_tree).
        @raise DebugInfoError on any malformed or unsupported debug data.
        """
        start_time = time.time()
        self.source_tree = None

        self._image = image
        segment = ByteReader(image.data, 0, image.length, self.get_conf("srctree.endian"))

        # Find the addresses of each abbreviation declaration.
        self._abbrevs = AbbreviationIndex.scan(segment.fork(image.debug_abbrev_start))
        self.verboseprint("Indexed ", VDEC, len(self._abbrevs), " abbreviation codes at ",
                          VHEX8, image.debug_abbrev_start)
        for dup in self._abbrevs.duplicates:
            self.msg_q(MsgLevel.WARN,
                       f"Warning: abbreviation code {dup.code} redeclared at {dup.offset:#x}; ignored")

        self._attr_decoder = AttributeDecoder(image, segment)

        tree = SourceTree()
        r = segment.fork(image.debug_info_start)
        while r.pos < image.debug_abbrev_start:
            unit_start = r.pos
            unit_length = self._read_unit_header(r)
            unit = self._read_entry(r, tree, tree.root, unit_start, 0)
            if unit is None:
                self.verboseprint("Empty unit at ", VHEX8, unit_start)

            unit_end = unit_start + 4 + unit_length
            if r.pos != unit_end:
                self.msg_q(MsgLevel.WARN,
                           f"Warning: unit at {unit_start:#x} declares length {unit_length:#x} " +
                           f"but its entries end at {r.pos:#x}")

        self.verboseprint("Read ", VDEC, len(tree.units()), " units holding ",
                          VDEC, len(tree), " debug entries")

        self._resolve_references(tree)

        dot_file = self.get_conf("srctree.dot.file")
        if dot_file:
            self.export_dot(tree, dot_file)

        self.source_tree = tree
        end_time = time.time()
        self.verboseprint(f'Built source tree in {1000*(end_time - start_time):0.01f}ms.')
        return tree

    def try_build_source_tree(self, image):
        """
        Like build_source_tree(), but report a failure to the console and return None instead
        of raising. Profiling can then be disabled while simulation carries on.
        """
        try:
            return self.build_source_tree(image)
        except DebugInfoError as e:
            self.msg_q(MsgLevel.ERR, f'Error while reading debug info: {e}')
            self.msg_q(MsgLevel.ERR, 'Could not build source tree. Was the program compiled with -g?')
            if self.get_conf("dbg.verbose"):
                # Also print stack trace details.
                tb_lines = traceback.extract_tb(e.__traceback__)
                self.verboseprint("".join(traceback.format_list(tb_lines)))
            return None

    def _read_unit_header(self, r):
        """
        Read the fixed header of a .debug_info unit; return the unit length.
        """
        unit_length = r.read_word()

        version = r.read_half()
        if version not in SUPPORTED_DWARF_VERSIONS:
            raise UnsupportedFormatVersion(
                f'Debug data compiled with unsupported DWARF version number ({version}) ' +
                f'in unit at {r.pos - 6:#x}')

        r.read_word()  # Throw away abbrev offset; all units share one table.

        addr_size = r.read_byte()
        if addr_size != SUPPORTED_ADDR_SIZE:
            raise UnsupportedFormatVersion(
                f'Debug data uses {addr_size}-byte addresses; only {SUPPORTED_ADDR_SIZE}-byte ' +
                'addresses are supported')

        return unit_length

    def _read_entry(self, r, tree, parent, unit_start, unit_pc_base):
        """
        Read one debugging information entry and, recursively, its children.

        @param r cursor at the entry's abbreviation code; left just past the entry and its children.
        @param parent the entry (or tree root) to link the new entry under.
        @param unit_start address of the unit header; reference forms are relative to it.
        @param unit_pc_base low_pc of the enclosing compilation unit; range lists are relative to it.

        @return the new DebugEntry, or None at an end-of-siblings marker.
        """
        if r.pos < self._image.debug_info_start or r.pos >= self._image.debug_abbrev_start:
            raise BufferOverrun(
                f'Debug entry at {r.pos:#x} lies outside .debug_info ' +
                f'[{self._image.debug_info_start:#x}, {self._image.debug_abbrev_start:#x})')

        addr = r.pos
        abbrev_code = r.read_byte()
        if abbrev_code == 0:
            return None  # End of children marker.

        # The symbol table tells us the declared width of each item that follows.
        try:
            slot = self._image.symbols.index_of(r.pos)
        except LookupFailure:
            raise LookupFailure(f'No debug data symbol for entry at {addr:#x}') from None

        abbrev = self._abbrevs.lookup(abbrev_code)
        (tag, has_children, attr_specs) = abbrev.declaration(r)

        entry = tree.new_entry(parent, addr, unit_start, abbrev_code)
        entry.tag = tag

        cursor = AttrCursor(slot, unit_pc_base)
        for (attribute, form) in attr_specs:
            self._attr_decoder.decode(entry, attribute, form, r, cursor)

        # Children of a compilation unit may use its base address as an offset.
        if entry.is_compile_unit():
            if len(entry.ranges) == 1:
                unit_pc_base = entry.ranges[0].pc_lo
            else:
                unit_pc_base = 0

        pending = entry.open_range()
        if pending is not None:
            # A low_pc with no high_pc only sets a base address; it covers no code itself.
            entry.ranges.remove(pending)
            self.verboseprint("Entry at ", VHEX8, addr, " has low_pc ", VHEX8, pending.pc_lo,
                              " without high_pc")

        if has_children:
            while True:
                child = self._read_entry(r, tree, entry, unit_start, unit_pc_base)
                if child is None:
                    break  # End of children.

                # Propagate a class's name down to its members.
                if entry.tag in forms.CLASS_SCOPE_TAGS and entry.name and child.name:
                    child.name = entry.name + "::" + child.name

        return entry

    def _resolve_references(self, tree):
        """
        Find the entry point method, then copy names across DW_AT_specification /
        DW_AT_abstract_origin references.
        """
        entry_point = self.get_conf("srctree.entry.point")
        flattened = tree.flattened()

        for entry in flattened:
            if entry.name == entry_point and len(entry.ranges) > 0:
                tree.runtime_root = entry
                break

        if tree.runtime_root is None:
            raise MissingEntryPoint(f'Found no "{entry_point}" routine with a PC range. ' +
                                    'Was the program compiled with -g?')

        for entry in flattened:
            if entry.ref_target is None:
                continue

            target = tree.entry_at(entry.ref_target)
            if target is None:
                # Nothing to copy from; leave the name as it is.
                self.verboseprint("Entry at ", VHEX8, entry.addr, " refers to ", VHEX8,
                                  entry.ref_target, " which is not a known entry")
                continue

            entry.name = target.name

    def export_dot(self, tree, filename):
        """
        Write a graphviz file representing the source tree. Failure to write is reported but
        not fatal; the file is only a debugging aid.
        """
        try:
            dot.write_dot(tree, filename)
        except OSError as e:
            self.msg_q(MsgLevel.WARN, f'Could not write DOT file {filename}: {e}')
            return False

        self.verboseprint("Wrote source tree graph to ", filename)
        return True
