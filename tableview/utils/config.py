"""Configuration management for tableview."""

import os
import re
import urllib.parse
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
from dataclasses import dataclass
import logging
from dotenv import load_dotenv

from ..core.data_access import DatabaseConfig
from ..core.export_manager import ExportOptions

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration."""
    theme: str = "dark"
    default_page_size: int = 100
    page_size_options: Tuple[int, ...] = (10, 20, 50, 100, 200, 500)
    max_cell_length: int = 100


@dataclass
class ExportConfig:
    """Export configuration."""
    default_format: str = "csv"
    default_path: str = "./exports"
    csv_delimiter: str = ","
    csv_quote_char: str = '"'
    csv_include_headers: bool = True
    csv_null_string: str = ""
    json_pretty_print: bool = True

    def to_options(self) -> ExportOptions:
        return ExportOptions(
            include_headers=self.csv_include_headers,
            null_string=self.csv_null_string,
            delimiter=self.csv_delimiter,
            quote_char=self.csv_quote_char,
            json_pretty_print=self.json_pretty_print,
        )


class ConfigManager:
    """Manages application configuration."""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else self._get_default_config_dir()
        self.app_config = AppConfig()
        self.export_config = ExportConfig()
        self.databases: List[Dict[str, Any]] = []

        # Load environment variables
        load_dotenv()

    def _get_default_config_dir(self) -> Path:
        """Get the default configuration directory."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME')
        if xdg_config:
            return Path(xdg_config) / 'tableview'
        return Path.home() / '.config' / 'tableview'

    def _find(self, filename: str) -> Optional[Path]:
        for loc in (self.config_dir / filename, Path('config') / filename, Path(filename)):
            if loc.exists():
                return loc
        return None

    def load_config(self, config_file: Optional[str] = None) -> None:
        """Load application settings from ``config.yaml``."""
        config_path = Path(config_file) if config_file else self._find('config.yaml')
        if not config_path:
            logger.info("No configuration file found, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration: {e}")
            return

        if 'app' in config:
            self._update_dataclass(self.app_config, config['app'])
            self.app_config.page_size_options = tuple(self.app_config.page_size_options)

        if 'export' in config:
            export_cfg = config['export']
            for section in ('csv', 'json'):
                for key, value in (export_cfg.get(section) or {}).items():
                    self._update_dataclass(self.export_config, {f"{section}_{key}": value})
            self._update_dataclass(self.export_config, {
                k: v for k, v in export_cfg.items() if k in ('default_format', 'default_path')
            })

        logger.info(f"Configuration loaded from {config_path}")

    def load_databases(self, database_file: Optional[str] = None) -> List[Dict[str, Any]]:
        """Load database configurations, falling back to the environment."""
        db_path = Path(database_file) if database_file else self._find('databases.yaml')
        if not db_path:
            logger.info("No databases configuration file found")
            return self._load_databases_from_env()

        try:
            with open(db_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load databases: {e}")
            return self._load_databases_from_env()

        if 'databases' not in config:
            logger.warning(f"No 'databases' section found in {db_path}")
            return self._load_databases_from_env()

        self.databases = self._substitute_env_vars(config['databases'])
        logger.info(f"Loaded {len(self.databases)} database configurations from {db_path}")
        return self.databases

    def database_configs(self) -> List[DatabaseConfig]:
        """Loaded databases as ``DatabaseConfig`` objects; entries without a name are skipped."""
        configs = []
        for entry in self.databases:
            if not entry.get('name'):
                logger.warning(f"Skipping database entry without a name: {entry.get('host')}")
                continue
            configs.append(DatabaseConfig.from_dict(entry))
        return configs

    def _load_databases_from_env(self) -> List[Dict[str, Any]]:
        """Load database configuration from environment variables."""
        databases = []

        db_url = os.environ.get('DATABASE_URL')
        if db_url:
            parsed = urllib.parse.urlparse(db_url)
            databases.append({
                'name': 'default',
                'host': parsed.hostname or 'localhost',
                'port': parsed.port or 5432,
                'database': parsed.path.lstrip('/') if parsed.path else 'postgres',
                'username': urllib.parse.unquote(parsed.username or ''),
                'password': urllib.parse.unquote(parsed.password or ''),
                'ssl_mode': 'require' if 'sslmode=require' in db_url else 'prefer'
            })
        elif os.environ.get('PGHOST'):
            databases.append({
                'name': os.environ.get('PGDATABASE', 'default'),
                'host': os.environ.get('PGHOST', 'localhost'),
                'port': int(os.environ.get('PGPORT', 5432)),
                'database': os.environ.get('PGDATABASE', 'postgres'),
                'username': os.environ.get('PGUSER', ''),
                'password': os.environ.get('PGPASSWORD', ''),
                'ssl_mode': os.environ.get('PGSSLMODE', 'prefer')
            })

        self.databases = databases
        return databases

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute ``${VAR}`` references; unknown variables are left as is."""
        if isinstance(data, dict):
            return {k: self._substitute_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):
            return re.sub(r'\$\{([^}]+)\}', lambda m: os.environ.get(m.group(1), m.group(0)), data)
        return data

    def _update_dataclass(self, obj: Any, data: Dict[str, Any]) -> None:
        """Update dataclass fields from dictionary."""
        for key, value in data.items():
            if hasattr(obj, key):
                setattr(obj, key, value)
