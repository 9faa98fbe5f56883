#!/usr/bin/env python3
# (c) Copyright 2021 Aaron Kimball

import sys

import dwarf_srctree

if __name__ == "__main__":
    sys.exit(dwarf_srctree.main(sys.argv[1:]))
