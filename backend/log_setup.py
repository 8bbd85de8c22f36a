import logging
import sys

from opentelemetry import trace


LOG_NAME = "cep_pipeline"

logger = logging.getLogger(LOG_NAME)
logger.setLevel(logging.DEBUG)
logger.propagate = False


class TraceContextFilter(logging.Filter):
    """Stamps the active span's trace and span IDs on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            record.trace_id = format(ctx.trace_id, "032x")
            record.span_id = format(ctx.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        return True


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger.setLevel(level)
    return logger


if not logger.handlers:
    log_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | trace=%(trace_id)s span=%(span_id)s | "
        "%(module)s:%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(logging.DEBUG)
    stream_handler.setFormatter(log_format)
    stream_handler.addFilter(TraceContextFilter())

    logger.addHandler(stream_handler)
