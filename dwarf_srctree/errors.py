# (c) Copyright 2022 Aaron Kimball
#
# Error kinds raised while decoding debug information. Any of these means the program image
# cannot be trusted for profiling; the caller decides whether to carry on without a source tree.


class DebugInfoError(Exception):
    """
    Base class for structural problems found in the embedded debug information.
    """
    pass


class UnsupportedFormatVersion(DebugInfoError):
    """ Unit header declares a DWARF version or address width we cannot read. """
    pass


class LookupFailure(DebugInfoError):
    """ A symbol descriptor, abbreviation code or range-list start could not be found. """
    pass


class MalformedRange(DebugInfoError):
    """ high_pc without an open low_pc, or a range list that runs off the descriptor table. """
    pass


class MissingEntryPoint(DebugInfoError):
    """ No entry named after the program entry point has any PC range. """
    pass


class BufferOverrun(DebugInfoError):
    """ A read would leave the data segment (or the section being decoded). """
    pass


class UnsupportedForm(DebugInfoError):
    """ An attribute we decode is encoded with a form we have no width for. """
    pass


class InvalidItemWidth(DebugInfoError):
    """ A symbol descriptor declares a width other than 1, 2 or 4 bytes. """
    pass
