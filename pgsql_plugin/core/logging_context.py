import logging
import contextvars
from contextlib import contextmanager

# Fields stamped on every record emitted inside a LoggingContext
log_context = contextvars.ContextVar("log_context", default={})


class ContextFilter(logging.Filter):
    def filter(self, record):
        context = log_context.get()
        for key, value in context.items():
            setattr(record, key, value)
        return True


@contextmanager
def LoggingContext(logger, **kwargs):
    """
    Stamp operation fields on records for the duration of one plugin call.

    Package loggers carry a ContextFilter from setup_logger. A host's
    logging.Logger usually does not, so one is attached for the block and
    removed again on exit. Non-Logger host objects are left untouched.

    example:
        with LoggingContext(host_logger, operation="query", invocation_id="1234"):
            host_logger.info("Query executed successfully. Rows returned: 1.")
    """
    attached = None
    if isinstance(logger, logging.Logger) and not any(isinstance(f, ContextFilter) for f in logger.filters):
        attached = ContextFilter()
        logger.addFilter(attached)

    current = log_context.get().copy()
    current.update(kwargs)
    token = log_context.set(current)
    try:
        yield
    finally:
        log_context.reset(token)
        if attached is not None:
            logger.removeFilter(attached)
