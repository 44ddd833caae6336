import logging
from webview_gateway.core.logging_context import get_correlation_id

LOG_FORMAT = "[%(name)s] [%(asctime)s] [%(levelname)s] [corr_id=%(correlation_id)s] %(message)s"


class ContextualColorFormatter(logging.Formatter):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    MAGENTA = "\033[35m"
    GRAY = "\033[90m"

    LEVEL_COLOR = {
        "DEBUG": CYAN,
        "INFO": GREEN,
        "WARNING": YELLOW,
        "ERROR": RED,
        "CRITICAL": MAGENTA,
    }

    STANDARD_ATTRS = set(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()) | {"message", "asctime", "correlation_id", "taskName"}

    def __init__(self, fmt: str = LOG_FORMAT, use_color: bool = True) -> None:
        super().__init__(fmt)
        self.use_color = use_color

    def _paint(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{self.RESET}"

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = get_correlation_id()

        # the record is shared between handlers, so colour a copy of the names only
        levelname, name = record.levelname, record.name
        record.levelname = self._paint(
            levelname, self.LEVEL_COLOR.get(levelname, self.RESET))
        record.name = self._paint(name, self.BLUE)
        try:
            base_message = super().format(record)
        finally:
            record.levelname, record.name = levelname, name

        extras = {
            k: v for k, v in record.__dict__.items()
            if k not in self.STANDARD_ATTRS
        }
        if not extras:
            return base_message

        max_key_len = max(len(k) for k in extras)
        extra_lines = "\n".join(
            f"    {self._paint(k.ljust(max_key_len), self.GRAY)} = {v!r}" for k, v in extras.items()
        )
        return f"{base_message}\n{self._paint('Extras:', self.CYAN)}\n{extra_lines}"


def get_logger(name: str = "app", level: int | str = logging.INFO, use_color: bool = True) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ContextualColorFormatter(use_color=use_color))
        logger.addHandler(handler)

    return logger
