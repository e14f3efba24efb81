# tavern_slots/infrastructure/logging/log_manager.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Union


DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    'level': 'INFO',
    'console': True,
    'console_level': 'INFO',
    'file': {
        'enabled': False,
        'path': 'logs/tavern_slots.log',
        'level': 'DEBUG',
        'max_bytes': 10 * 1024 * 1024,
        'backup_count': 5,
    },
    'loggers': {
        'domain.session': {'level': 'INFO'},
        'domain.machine': {'level': 'INFO'},
        'application': {'level': 'INFO'},
        'infrastructure': {'level': 'WARNING'},
    },
}

# --log-mode presets: root level plus per-layer levels
LOG_MODES: Dict[str, Dict[str, Any]] = {
    'all': {'level': 'DEBUG', 'loggers': {}},
    'app': {'level': 'WARNING', 'loggers': {
        'application': 'DEBUG', 'infrastructure': 'DEBUG', 'domain': 'WARNING',
    }},
    'domain': {'level': 'WARNING', 'loggers': {
        'domain': 'DEBUG', 'application': 'WARNING', 'infrastructure': 'WARNING',
    }},
    'none': {'level': 'WARNING', 'loggers': {}},
}


class LogManager:
    """
    Centralized logging configuration.

    Sets up the root logger with a console handler and an optional rotating
    file handler, then applies per-logger levels for the layer namespaces
    (`domain.session`, `domain.machine`, `application`, `infrastructure`).
    """
    def __init__(self):
        self.root_logger = logging.getLogger()
        self.loggers = {}
        self.handlers = {}
        self.initialized = False

    def initialize(self, config: Dict[str, Any], force: bool = False):
        """
        Initialize logging from a configuration dictionary.

        Args:
            config: Logging configuration (see DEFAULT_LOGGING_CONFIG)
            force: Reconfigure even if already initialized
        """
        if self.initialized and not force:
            return

        log_level = self._get_log_level(config.get('level', 'INFO'))
        formatter = logging.Formatter(
            config.get('format', DEFAULT_LOG_FORMAT),
            config.get('date_format', DEFAULT_DATE_FORMAT),
        )

        self.root_logger.setLevel(log_level)
        for handler in list(self.root_logger.handlers):
            self.root_logger.removeHandler(handler)
        for handler in self.handlers.values():
            handler.close()
        self.handlers = {}

        if config.get('console', True):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self._get_log_level(config.get('console_level', log_level)))
            console_handler.setFormatter(formatter)
            self.root_logger.addHandler(console_handler)
            self.handlers['console'] = console_handler

        file_config = config.get('file') or {}
        if file_config.get('enabled', False):
            file_path = file_config.get('path', 'logs/tavern_slots.log')
            log_dir = os.path.dirname(file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=file_config.get('max_bytes', 10 * 1024 * 1024),
                backupCount=file_config.get('backup_count', 5),
                encoding='utf-8',
            )
            file_handler.setLevel(self._get_log_level(file_config.get('level', log_level)))
            file_handler.setFormatter(formatter)
            self.root_logger.addHandler(file_handler)
            self.handlers['file'] = file_handler

        # Parents first so children can override them
        loggers = config.get('loggers') or {}
        for logger_name in sorted(loggers, key=lambda name: len(name.split('.'))):
            logger_config = loggers[logger_name]
            if not isinstance(logger_config, dict):
                logger_config = {'level': logger_config}

            logger = logging.getLogger(logger_name)
            logger.setLevel(self._get_log_level(logger_config.get('level', log_level)))
            logger.propagate = logger_config.get('propagate', True)
            self.loggers[logger_name] = logger

            self.root_logger.debug(
                f"Configured logger '{logger_name}' with level={logging.getLevelName(logger.level)}, "
                f"propagate={logger.propagate}"
            )

        self.root_logger.debug("Logging system initialized")
        self.initialized = True

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def shutdown(self):
        """Detach and close every handler this manager added."""
        for handler in self.handlers.values():
            self.root_logger.removeHandler(handler)
            handler.close()
        self.handlers = {}
        self.initialized = False

    def _get_log_level(self, level_name: Union[str, int]) -> int:
        if isinstance(level_name, int):
            return level_name

        level = logging.getLevelName(str(level_name).upper())
        return level if isinstance(level, int) else logging.INFO


log_manager = LogManager()


def apply_log_mode(config: Dict[str, Any], mode: Optional[str], verbose: bool = False) -> Dict[str, Any]:
    """
    Apply a --log-mode preset and the --verbose flag to a logging config.

    Args:
        config: Logging configuration from the session file
        mode: One of LOG_MODES, or None to leave levels alone
        verbose: Force DEBUG on the root logger and console

    Returns:
        A new configuration dictionary
    """
    config = dict(config or {})
    loggers = dict(config.get('loggers') or {})

    if mode:
        preset = LOG_MODES[mode]
        config['level'] = preset['level']
        config['console_level'] = preset['level']
        for name, level in preset['loggers'].items():
            loggers[name] = {'level': level}
        if mode in ('all', 'none'):
            # Layer overrides would defeat the preset
            loggers = {name: {'level': preset['level']} for name in loggers}

    if verbose:
        config['level'] = 'DEBUG'
        config['console_level'] = 'DEBUG'
        loggers = {name: {'level': 'DEBUG'} for name in loggers}

    config['loggers'] = loggers
    return config


def initialize_logging(config: Optional[Dict[str, Any]] = None, force: bool = False) -> LogManager:
    """
    Initialize the shared LogManager.

    Args:
        config: Logging configuration; DEFAULT_LOGGING_CONFIG when omitted

    Returns:
        The shared LogManager
    """
    log_manager.initialize(config if config is not None else DEFAULT_LOGGING_CONFIG, force=force)
    return log_manager
