import logging
import re
import sys

DOMAIN_SESSION = "session"
DOMAIN_GRADING = "grading"
DOMAIN_STORAGE = "storage"
DOMAIN_QUESTIONS = "questions"
DOMAIN_API = "api"

HEALTH_PATH = "/api/health"
LOG_FORMAT = "%(asctime)s | %(levelname)s | [%(domain)s] | %(name)s | %(message)s"


def get_domain_logger(name: str, domain: str) -> logging.LoggerAdapter[logging.Logger]:
    """Logger tagged with one of the DOMAIN_* names; the tag shows up as [domain] in every line."""
    return logging.LoggerAdapter(logging.getLogger(name), {"domain": domain})


class DomainDefaultFilter(logging.Filter):
    """Third-party records (uvicorn, starlette) carry no domain; tag them so LOG_FORMAT renders."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "domain"):
            record.domain = "app"  # type: ignore[attr-defined]
        return True


# Feedback bodies are free-form JSON logged as-is. Mask credential-looking
# values and contact emails before they reach the console.
_SECRET_PATTERNS = [
    re.compile(r"(?i)((?:api[_-]?key|token|password|secret)['\"]?\s*[=:]\s*['\"]?)([^\s,;'\"}]+)"),
    re.compile(r"(?i)(authorization['\"]?\s*[=:]\s*['\"]?bearer\s+)([^\s,;'\"}]+)"),
]
_EMAIL = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")


def redact_secrets(message: str) -> str:
    text = str(message or "")
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return _EMAIL.sub("[EMAIL]", text)


class SecretRedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = ()
        return True


class SuppressHealthCheckFilter(logging.Filter):
    """Drop successful GET /api/health lines from uvicorn's access log."""

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access args: (client_addr, method, full_path, http_version, status_code)
        args = record.args
        if isinstance(args, tuple) and len(args) == 5:
            _, method, path, _, status = args
            return not (method == "GET" and str(path).split("?")[0] == HEALTH_PATH and status == 200)
        return True


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(DomainDefaultFilter())
        handler.addFilter(SecretRedactionFilter())
    logging.getLogger("uvicorn.access").addFilter(SuppressHealthCheckFilter())
