# Console log formatting for the blog API.
import logging


class CustomFormatter(logging.Formatter):
    """
    A console formatter that colours each record by its level.

    Usage:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter())
    """
    grey = "\x1b[37;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    dark_grey = "\x1b[30;1m"
    reset = "\x1b[0m"
    fmt = '[%(levelname)s] %(asctime)s %(name)s - %(message)s'

    FORMATS = {
        logging.DEBUG: dark_grey + fmt + reset,
        logging.INFO: grey + fmt + reset,
        logging.WARNING: yellow + fmt + reset,
        logging.ERROR: red + fmt + reset,
        logging.CRITICAL: bold_red + fmt + reset
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.fmt)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach the coloured console handler to the root logger.

    Modules log through ``logging.getLogger(__name__)`` and propagate here.
    Calling this twice does not add a second handler.
    """
    log = logging.getLogger()
    log.setLevel(level)
    if not any(isinstance(h.formatter, CustomFormatter) for h in log.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(CustomFormatter())
        log.addHandler(ch)
    return log
