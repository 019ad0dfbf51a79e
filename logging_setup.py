"""
Console logging - one coloured format for the web app and the CLI.
"""
import logging

LOG_FORMAT = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'

# Libraries that log every request at INFO
_NOISY = ('werkzeug', 'web3', 'urllib3')


class LevelColorFormatter(logging.Formatter):
    """Wraps each formatted record in the ANSI colour of its level."""

    PALETTE = {
        logging.DEBUG: '\x1b[90m',
        logging.INFO: '\x1b[37m',
        logging.WARNING: '\x1b[33m',
        logging.ERROR: '\x1b[31m',
        logging.CRITICAL: '\x1b[41m',
    }
    RESET = '\x1b[0m'

    def format(self, record):
        text = super().format(record)
        color = self.PALETTE.get(record.levelno)
        return f"{color}{text}{self.RESET}" if color else text


def setup_logging(level=logging.INFO):
    """Install the console handler on the root logger once."""
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(LevelColorFormatter(LOG_FORMAT, datefmt='%H:%M:%S'))
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
