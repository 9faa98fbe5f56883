# (c) Copyright 2022 Aaron Kimball
#
# Methods and constants for working with the terminal and VT100 emulation.

import queue
import threading

# Change this flag to enable/disable color formatting.
enable_colors = True

COLOR_WHITE     = '\033[0m'
COLOR_BOLD      = '\033[1m' # High-intensity white on black

COLOR_GRAY      = '\033[90m'
COLOR_RED       = '\033[91m'
COLOR_GREEN     = '\033[92m'
COLOR_YELLOW    = '\033[93m'

BOLD      = COLOR_BOLD

INFO      = COLOR_WHITE
SUCCESS   = COLOR_GREEN
WARN      = COLOR_YELLOW
ERR       = COLOR_RED

COLOR_OFF = COLOR_WHITE # Normal white on black


def use_colors():
    """
    Return true if we should use color in formatting output.
    """
    return enable_colors

def set_use_colors(do_use_colors):
    global enable_colors
    enable_colors = do_use_colors

def fmt(text, color_code=None):
    """
    Return a string wrapped in the codes to enable a certain color, if use_colors is active.
    """
    if use_colors() and color_code is not None:
        return f'{color_code}{text}{COLOR_OFF}'
    else:
        return text


class MsgLevel(object):
    """
    Priority level codes for messages submitted to ConsolePrinter; used to colorize
    messages appropriately.
    """
    INFO        = 0         # Standard message
    WARN        = 1         # Warnings
    ERR         = 2         # Errors
    DEBUG       = 3         # verboseprint() info from DwarfReader.
    SUCCESS     = 4         # Successful.

    @staticmethod
    def color_for_msg(msg_level):
        """
        Return a term color for the message level.
        """
        if msg_level is None:
            return INFO

        if msg_level == MsgLevel.INFO:
            return INFO
        elif msg_level == MsgLevel.WARN:
            return WARN
        elif msg_level == MsgLevel.ERR:
            return ERR
        elif msg_level == MsgLevel.DEBUG:
            return COLOR_GRAY
        elif msg_level == MsgLevel.SUCCESS:
            return SUCCESS
        else:
            return INFO


class ConsolePrinter(object):
    """
    Monitor that creates a queue of things to print to the console.
    Other components enqueue (text, MsgLevel) pairs; this prints them on its own thread
    so that decoding never blocks on stdout.
    """

    TIMEOUT = 0.250 # Blink when reading the queue every 250ms.

    def __init__(self):
        self.print_q = queue.Queue(maxsize=16)
        self._alive = True
        self._thread = threading.Thread(target=self.service, name='Console print thread')

    def start(self):
        self._thread.start()

    def shutdown(self):
        self._alive = False
        self._thread.join()

    def join_q(self):
        """
        Wait for any pending items to be printed and drained from the queue.
        """
        self.print_q.join()

    def service(self):
        """
        Main service loop for thread. Receive lines to print and print them to stdout.
        """
        while self._alive:
            try:
                (textline, prio) = self.print_q.get(block=True, timeout=ConsolePrinter.TIMEOUT)
            except queue.Empty:
                continue

            print(fmt(textline, MsgLevel.color_for_msg(prio)), flush=True)
            self.print_q.task_done()


class CapturingPrinter(ConsolePrinter):
    """
    ConsolePrinter that records (text, MsgLevel) pairs instead of printing them.
    """

    def __init__(self):
        super().__init__()
        self.lines = []
        self._lock = threading.Lock()

    def service(self):
        while self._alive:
            try:
                (textline, prio) = self.print_q.get(block=True, timeout=ConsolePrinter.TIMEOUT)
            except queue.Empty:
                continue

            with self._lock:
                self.lines.append((textline, prio))
            self.print_q.task_done()

    def messages(self, level=None):
        """
        Return the texts received so far, optionally only those at `level`.
        """
        with self._lock:
            return [text for (text, prio) in self.lines if level is None or prio == level]
