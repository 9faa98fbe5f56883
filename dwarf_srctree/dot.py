# (c) Copyright 2022 Aaron Kimball
#
# Write a graphviz file representing the decoded source tree. For humans only; never read back.


def _escape(text):
    return text.replace('\\', '\\\\').replace('"', '\\"')


class DotWriter(object):
    """
    Visits a SourceTree and emits one node per entry plus parent--child edges.
    Node ids come from a counter owned by this writer.
    """

    def __init__(self, tree, out):
        self._tree = tree
        self._out = out
        self._next_id = 0

    def write(self):
        self._out.write("graph SourceTree {\n")
        for unit in self._tree.units():
            self._visit(unit)
        self._out.write("}\n")

    def _visit(self, entry):
        my_id = self._next_id
        self._next_id += 1

        ranges = ', '.join([f'{r.pc_lo:x}-{r.pc_hi:x}' for r in entry.ranges if not r.is_open()])
        ref = f'{entry.ref_target:x}' if entry.ref_target is not None else '-'
        label = (f'{_escape(entry.name or "")}\\n{entry.tag_name()}\\nr={ranges}' +
                 f'\\na={entry.addr:x}\\nref={ref}\\nabbrev={entry.abbrev_code}')
        self._out.write(f'Node{my_id} [label="{label}"];\n')

        for child in self._tree.children_of(entry):
            child_id = self._next_id
            self._visit(child)
            self._out.write(f'Node{my_id} -- Node{child_id};\n')

        return my_id


def write_dot(tree, filename):
    """
    Write `tree` to `filename` in graphviz format.
    """
    with open(filename, "w") as f:
        DotWriter(tree, f).write()
