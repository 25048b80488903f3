"""
Structured Logging
==================

Opt-in logging setup using structlog. The driver itself only logs through
module loggers (``logging.getLogger(__name__)``) and never installs
handlers; applications call :meth:`LogManager.setup` to render those
records, and their own structlog events, as JSON or console lines.
"""

import logging
import sys
import threading

import structlog


def _validate_log_level(log_level: str) -> int:
    """
    Validate and convert log level string to numeric value.

    Raises:
        ValueError: If log_level is not a valid logging level name
    """
    level_name = str(log_level).upper()

    valid_levels = {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL", "FATAL"}
    if level_name not in valid_levels:
        raise ValueError(
            f"Invalid log level: '{log_level}'. "
            f"Must be one of: {', '.join(sorted(valid_levels))}"
        )

    return getattr(logging, level_name)


def _shared_processors() -> list:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


# Global flag and lock for thread-safe initialization
_logging_initialized = False
_init_lock = threading.Lock()


class LogManager:
    """
    Logging configuration for applications using the driver.

    Records from stdlib loggers (``arangodriver.*``) and structlog loggers
    share one handler and one renderer.
    """

    @staticmethod
    def setup(log_level: str = "INFO", json_output: bool = True) -> None:
        """
        Setup logging configuration once per process.

        Args:
            log_level: Level for the root logger
            json_output: Render JSON lines instead of console output
        """
        global _logging_initialized

        if _logging_initialized:
            return

        with _init_lock:
            if _logging_initialized:
                return

            numeric_level = _validate_log_level(log_level)
            shared = _shared_processors()
            renderer = (
                structlog.processors.JSONRenderer()
                if json_output
                else structlog.dev.ConsoleRenderer(colors=False)
            )

            formatter = structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    renderer,
                ],
            )
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)

            root_logger = logging.getLogger()
            root_logger.addHandler(handler)
            root_logger.setLevel(numeric_level)

            structlog.configure(
                processors=[
                    structlog.stdlib.filter_by_level,
                    *shared,
                    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
                ],
                context_class=dict,
                logger_factory=structlog.stdlib.LoggerFactory(),
                wrapper_class=structlog.stdlib.BoundLogger,
                cache_logger_on_first_use=True,
            )

            _logging_initialized = True

            logger = structlog.get_logger("arangodriver")
            logger.info("logging_initialized", level=log_level, json=json_output)

    @staticmethod
    def get_logger(component: str, **context):
        """
        Get a logger bound to a component name and extra context.

        Args:
            component: Name of the calling component
            **context: Key/value pairs attached to every event

        Returns:
            Bound structlog logger
        """
        if not _logging_initialized:
            LogManager.setup()

        return structlog.get_logger().bind(component=component, **context)


__all__ = ["LogManager"]
