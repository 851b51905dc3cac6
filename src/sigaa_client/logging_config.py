import logging
import os
import re
from pathlib import Path
from typing import Optional

# Login fields, the session cookie and file security keys all end up in URLs or bodies that get logged.
_SECRET_RE = re.compile(r"(?i)\b((?:user\.senha|form(?::|%3A)senha|password|JSESSIONID|key)=)[^&;\s'\"]+")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


class RedactSecretsFilter(logging.Filter):
    """
    Masks credentials, session ids and download keys in a record's rendered message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_RE.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redact = RedactSecretsFilter()
    for handler in handlers:
        handler.addFilter(redact)

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers, force=True)

    # httpx logs every request at INFO with its full URL.
    # SIGAA_HTTP_DEBUG=1 lets the transport chatter through when diagnosing a portal.
    http_level = logging.DEBUG if os.getenv("SIGAA_HTTP_DEBUG") == "1" else os.getenv("NOISY_LOG_LEVEL", "WARNING")
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(http_level)
