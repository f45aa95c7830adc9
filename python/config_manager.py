"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


@dataclass
class DatabaseConfig:
    """Database configuration"""
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "comunidad"
    url: str = ""
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = "logs/registry.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class MonitoringSettings:
    """Query monitoring thresholds"""
    slow_query_threshold_ms: float = 1000.0
    warning_threshold_ms: float = 500.0
    enable_prometheus: bool = True
    enable_logging: bool = True


@dataclass
class RegistryConfig:
    """Registry domain settings"""
    default_phone_type: str = "principal"
    # Empty list keeps the phone type an open string
    allowed_phone_types: List[str] = field(default_factory=list)


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.database: DatabaseConfig = DatabaseConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.monitoring: MonitoringSettings = MonitoringSettings()
        self.registry: RegistryConfig = RegistryConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at top level")

        self._parse_database()
        self._parse_logging()
        self._parse_monitoring()
        self._parse_registry()
        self._validate()

    def _parse_database(self) -> None:
        """Parse database configuration"""
        cfg = self._raw_config.get('database', {})
        self.database = DatabaseConfig(
            host=cfg.get('host', self.database.host),
            port=cfg.get('port', self.database.port),
            user=cfg.get('user', self.database.user),
            password=cfg.get('password', self.database.password),
            name=cfg.get('name', self.database.name),
            url=cfg.get('url', self.database.url),
            pool_size=cfg.get('pool_size', self.database.pool_size),
            max_overflow=cfg.get('max_overflow', self.database.max_overflow),
            echo=cfg.get('echo', self.database.echo)
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {})
        self.logging = LoggingConfig(
            level=str(cfg.get('level', 'INFO')).upper(),
            file=cfg.get('file', self.logging.file),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format)
        )

    def _parse_monitoring(self) -> None:
        cfg = self._raw_config.get('monitoring', {})
        self.monitoring = MonitoringSettings(
            slow_query_threshold_ms=cfg.get('slow_query_threshold_ms', 1000.0),
            warning_threshold_ms=cfg.get('warning_threshold_ms', 500.0),
            enable_prometheus=cfg.get('enable_prometheus', True),
            enable_logging=cfg.get('enable_logging', True)
        )

    def _parse_registry(self) -> None:
        cfg = self._raw_config.get('registry', {})
        self.registry = RegistryConfig(
            default_phone_type=cfg.get('default_phone_type', 'principal'),
            allowed_phone_types=list(cfg.get('allowed_phone_types') or [])
        )

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return {
            'database': {
                'host': self.database.host,
                'port': self.database.port,
                'user': self.database.user,
                'name': self.database.name,
                'pool_size': self.database.pool_size,
                'max_overflow': self.database.max_overflow,
                'echo': self.database.echo
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'console': self.logging.console
            },
            'monitoring': {
                'slow_query_threshold_ms': self.monitoring.slow_query_threshold_ms,
                'warning_threshold_ms': self.monitoring.warning_threshold_ms,
                'enable_prometheus': self.monitoring.enable_prometheus,
                'enable_logging': self.monitoring.enable_logging
            },
            'registry': {
                'default_phone_type': self.registry.default_phone_type,
                'allowed_phone_types': list(self.registry.allowed_phone_types)
            }
        }

    def _validate(self) -> None:
        """Validate configuration values"""
        errors = []

        if self.logging.level not in VALID_LOG_LEVELS:
            errors.append(f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}")
        if not isinstance(self.database.port, int) or self.database.port <= 0:
            errors.append("database.port must be a positive integer")
        if self.database.pool_size < 1:
            errors.append("database.pool_size must be at least 1")
        if self.database.max_overflow < 0:
            errors.append("database.max_overflow cannot be negative")
        if self.monitoring.slow_query_threshold_ms < 0 or self.monitoring.warning_threshold_ms < 0:
            errors.append("monitoring thresholds cannot be negative")
        if not self.registry.default_phone_type:
            errors.append("registry.default_phone_type cannot be empty")
        if (self.registry.allowed_phone_types
                and self.registry.default_phone_type not in self.registry.allowed_phone_types):
            errors.append("registry.default_phone_type must be one of registry.allowed_phone_types")

        if errors:
            raise ConfigurationError("; ".join(errors))


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger from the logging section"""
    handlers: List[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, config.level, logging.INFO),
        format=config.format,
        handlers=handlers or None,
        force=True
    )
