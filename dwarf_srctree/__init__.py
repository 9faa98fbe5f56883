# (c) Copyright 2021 Aaron Kimball

import argparse
import sys

from .dwarf_reader import DwarfReader
from .errors import DebugInfoError
from .image import ProgramImage, load_image
from .srctree import SourceTree
from .term import ConsolePrinter, MsgLevel
from .version import DBG_VERSION_STR, FULL_DBG_VERSION_STR

__version__ = DBG_VERSION_STR

__all__ = ['DwarfReader', 'DebugInfoError', 'ProgramImage', 'SourceTree', 'load_image', 'main']


def _parseArgs(argv):
    parser = argparse.ArgumentParser(
        description="Build the source tree of a program image's debug info and look up $PC values")
    parser.add_argument("-i", "--image", metavar="image_file", required=True,
                        help="program image snapshot to decode")
    parser.add_argument("--dot", metavar="dot_file", help="write the source tree as a graphviz file")
    parser.add_argument("--pc", action="append", default=[], type=lambda s: int(s, 0),
                        help="$PC value to resolve to a source construct (repeatable)")
    parser.add_argument("--list", action="store_true", help="print every decoded entry")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--version", action="version", version=FULL_DBG_VERSION_STR)

    return parser.parse_args(argv)


def _report_pc(print_q, tree, pc):
    scopes = tree.scopes_for_pc(pc)
    if not scopes:
        print_q.put((f'{pc:08x}: no source construct', MsgLevel.WARN))
        return

    chain = ' > '.join([scope.name or f'<{scope.tag_name()}>' for scope in scopes])
    print_q.put((f'{pc:08x}: {chain}', MsgLevel.INFO))


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    args = _parseArgs(argv)

    overrides = {}
    if args.verbose:
        overrides["dbg.verbose"] = True
    if args.dot:
        overrides["srctree.dot.file"] = args.dot

    ret = 0
    console_printer = ConsolePrinter()
    console_printer.start()
    try:
        reader = DwarfReader(console_printer.print_q)
        for (key, val) in overrides.items():
            reader.override_conf(key, val)

        try:
            image = load_image(args.image, console_printer.print_q)
        except (OSError, ValueError) as e:
            reader.msg_q(MsgLevel.ERR, f'Could not load program image: {e}')
            return 1

        tree = reader.try_build_source_tree(image)
        if tree is None:
            ret = 1
        else:
            reader.msg_q(MsgLevel.SUCCESS, f'Decoded {len(tree)} entries in {len(tree.units())} ' +
                         f'units; entry point {tree.runtime_root}')
            if args.list:
                for entry in tree.flattened():
                    depth = 0
                    parent = tree.parent_of(entry)
                    while parent is not None and not parent.is_root():
                        depth += 1
                        parent = tree.parent_of(parent)
                    reader.msg_q(MsgLevel.INFO, '  ' * depth, entry)
            for pc in args.pc:
                _report_pc(console_printer.print_q, tree, pc)
    finally:
        console_printer.join_q()
        console_printer.shutdown()

    return ret
