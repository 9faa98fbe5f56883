# (c) Copyright 2022 Aaron Kimball
#
# Reading and writing of config files and program-image snapshots. Both are python source
# files holding a `formatversion` and one named dict.

from dwarf_srctree.term import MsgLevel

DBG_CONF_FMT_VERSION = 1


def _report(print_q, msg, level=MsgLevel.WARN):
    if print_q is not None:
        print_q.put((msg, level))
    else:
        print(msg)


def load_config_file(filename, map_name='config', defaults=None, print_q=None):
    """
        Read a serialized map from a file.
        This is actually a python file that will be evaluated in a sterile environment.
        It should contain two variables afterward:
        - `formatversion` specifies this serialization version
        - `{map_name}` is a dict of k-v pairs.

        If `defaults` is a map, then its values populate anything omitted from the loaded map.

        TODO(aaron): This is insecure.
    """
    if defaults is None:
        defaults = {}
    new_conf = defaults.copy()

    # The loaded map will be named '{map_name}' within an otherwise-empty environment
    init_env = {}
    init_env[map_name] = {}

    with open(filename, "r") as f:
        conf_text = f.read()
        try:
            exec(conf_text, init_env, init_env)
        except Exception:
            _report(print_q, f"Warning: error parsing file '{filename}'")
            init_env[map_name] = {}
            init_env['formatversion'] = DBG_CONF_FMT_VERSION

    fmtver = init_env.get('formatversion')
    loaded_conf = init_env.get(map_name)
    if not isinstance(fmtver, int) or fmtver > DBG_CONF_FMT_VERSION:
        _report(print_q, f"Error: Cannot read file '{filename}' with version {fmtver}", MsgLevel.ERR)
        loaded_conf = {}  # Disregard the unsupported data.
    elif not isinstance(loaded_conf, dict):
        _report(print_q, f"Error in format for file '{filename}'", MsgLevel.ERR)
        loaded_conf = {}

    # Merge loaded data on top of our defaults.
    for (k, v) in loaded_conf.items():
        new_conf[k] = v

    return new_conf


def __persist_conf_var(f, k, v):
    """
        Persist k=v in serialized form to the file handle 'f'.

        Can be called with k=None to serialize a nested value in a complex type.
    """

    if k is not None:
        f.write(f'  {repr(k)}: ')

    if v is None or type(v) == str or type(v) == int or type(v) == float or type(v) == bool:
        f.write(repr(v))
    elif type(v) == bytes or type(v) == bytearray:
        f.write(repr(bytes(v)))
    elif type(v) == list or type(v) == tuple:
        f.write('[')
        for elem in v:
            __persist_conf_var(f, None, elem)
            f.write(", ")
        f.write(']')
    elif type(v) == dict:
        f.write("{\n")
        for (dirK, dirV) in v.items():
            f.write('    ')
            __persist_conf_var(f, None, dirK)  # keys in a dict can be any type, not just str
            f.write(": ")
            __persist_conf_var(f, None, dirV)
            f.write(",\n")
        f.write("  }")
    else:
        raise TypeError(f"Cannot serialize value of type '{type(v).__name__}'")

    if k is not None:
        f.write(",\n")


def persist_config_file(filename, map_name, data):
    """
        Write a map out to a file that load_config_file() can read back.
    """

    with open(filename, "w") as f:
        f.write(f"formatversion = {DBG_CONF_FMT_VERSION}\n")
        f.write(f"{map_name} = {{\n\n")
        for (k, v) in data.items():
            __persist_conf_var(f, k, v)
        f.write("\n}\n")
