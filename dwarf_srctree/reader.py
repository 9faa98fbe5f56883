# (c) Copyright 2022 Aaron Kimball
#
# Bounds-checked cursor over the raw data segment.

from dwarf_srctree.errors import BufferOverrun, InvalidItemWidth


class ByteReader(object):
    """
    A position within an immutable byte buffer. Every read checks itself against the
    usable length of the buffer and advances the position past the bytes consumed.

    Several readers may share one buffer; use fork() to get an independent cursor.
    """

    def __init__(self, data, pos=0, length=None, byteorder='little'):
        self._data = data
        self._length = len(data) if length is None else length
        self._byteorder = byteorder
        self.pos = pos

    def __repr__(self):
        return f'ByteReader(pos={self.pos:#x}, length={self._length:#x})'

    def fork(self, pos=None):
        """
        Return a new reader over the same buffer, starting at `pos` (or at our position).
        """
        if pos is None:
            pos = self.pos
        return ByteReader(self._data, pos, self._length, self._byteorder)

    def at_end(self):
        return self.pos >= self._length

    def skip(self, count):
        self._take(count)

    def _take(self, count):
        start = self.pos
        if start < 0 or count < 0 or start + count > self._length:
            raise BufferOverrun(
                f'Read of {count} byte(s) at {start:#x} runs past end of data ({self._length:#x})')
        self.pos = start + count
        return start

    def read_byte(self):
        start = self._take(1)
        return self._data[start]

    def read_half(self):
        start = self._take(2)
        return int.from_bytes(self._data[start:start + 2], byteorder=self._byteorder)

    def read_word(self):
        start = self._take(4)
        return int.from_bytes(self._data[start:start + 4], byteorder=self._byteorder)

    def read_sized(self, size):
        """
        Read an unsigned int whose width comes from a symbol descriptor (1, 2 or 4 bytes).
        """
        if size == 1:
            return self.read_byte()
        elif size == 2:
            return self.read_half()
        elif size == 4:
            return self.read_word()
        else:
            raise InvalidItemWidth(f'Debug data item at {self.pos:#x} has invalid size {size} ' +
                                   '(should be 1, 2, or 4)')

    def read_uleb128(self):
        """
        Read an unsigned LEB128 value. Codes below 0x80 take a single byte.
        """
        result = 0
        shift = 0
        while True:
            b = self.read_byte()
            result |= (b & 0x7F) << shift
            shift += 7
            if (b & 0x80) == 0:
                return result

    def read_cstring_at(self, addr):
        """
        Return the NUL-terminated string at `addr` without moving this cursor.
        """
        if addr < 0 or addr >= self._length:
            raise BufferOverrun(f'String offset {addr:#x} lies outside data ({self._length:#x})')
        end = self._data.find(b'\0', addr, self._length)
        if end < 0:
            raise BufferOverrun(f'Unterminated string at {addr:#x}')
        return bytes(self._data[addr:end]).decode('utf-8', errors='replace')
