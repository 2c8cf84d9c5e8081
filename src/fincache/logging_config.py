"""Console logging setup for applications embedding fincache."""

import json
import logging

_HANDLER_NAME = "fincache-console"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def setup_logging(level: str | int = "INFO", json_format: bool = False) -> logging.Logger:
    """Attach a console handler to the ``fincache`` logger.

    Safe to call repeatedly; the previous handler is replaced.
    """
    logger = logging.getLogger("fincache")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.handlers = [h for h in logger.handlers if h.get_name() != _HANDLER_NAME]

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
        )
    logger.addHandler(handler)
    return logger
