"""
Repositorio para manejar configuración (Dependency Inversion)
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from ..config import Config
from ..errors import ConfigurationError
from ..logger import LoggerService
from ..models import BackupOptions, EmailCredentials, SmtpSettings


_MISSING = object()


class ConfigRepository:
    """Repositorio para manejar configuración"""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Inicializa el repositorio de configuración

        Args:
            config_file: Ruta al archivo de configuración (opcional)
        """
        self.config_file = Path(config_file) if config_file else Config.DEFAULT_CONFIG_FILE
        self.logger = LoggerService.get_logger("ConfigRepository")
        self._raw_config = None

    def load(self) -> Dict:
        """
        Carga configuración desde archivo JSON

        Returns:
            Diccionario con la configuración

        Raises:
            ConfigurationError: si el archivo no existe o no es JSON válido
        """
        if not self.config_file.is_file():
            raise ConfigurationError(
                "El archivo de configuración no existe", item=str(self.config_file)
            )

        try:
            with open(self.config_file, "r", encoding='utf-8') as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Error al parsear JSON: {e}", item=str(self.config_file)) from e
        except OSError as e:
            raise ConfigurationError(
                f"Error al leer la configuración: {e}", item=str(self.config_file)
            ) from e

        if not isinstance(raw, dict):
            raise ConfigurationError(
                "La raíz de la configuración debe ser un objeto JSON", item=str(self.config_file)
            )

        self._raw_config = raw
        return self._raw_config

    def load_options(self) -> BackupOptions:
        """
        Carga y valida la configuración completa de una ejecución

        Ninguna clave obligatoria tiene valor por defecto; las credenciales y
        el destinatario deben estar presentes o la carga falla.

        Returns:
            Objeto BackupOptions inmutable

        Raises:
            ConfigurationError: si falta una clave o su tipo es incorrecto
        """
        raw = self.load()

        backup = self._section(raw, 'database_backup')
        credentials = self._section(raw, 'email_credentials')
        smtp = self._section(raw, 'smtp_settings')

        retention = self._require(backup, 'database_backup', 'remove_backups_older_than', int)
        if retention < 1:
            raise ConfigurationError(
                "remove_backups_older_than debe ser mayor a 0",
                item='database_backup.remove_backups_older_than'
            )

        port = self._require(smtp, 'smtp_settings', 'port', int)
        if not 0 < port < 65536:
            raise ConfigurationError("Puerto SMTP fuera de rango", item='smtp_settings.port')

        database_username = self._optional(backup, 'database_backup', 'username', str, None)
        database_password = self._optional(backup, 'database_backup', 'password', str, None)
        if database_username and database_password is None:
            raise ConfigurationError(
                "Se configuró username sin password", item='database_backup.password'
            )

        options = BackupOptions(
            server_name=self._require(backup, 'database_backup', 'servername', str),
            instance_name=self._require(backup, 'database_backup', 'instance', str),
            backup_directory_path=Path(
                self._require(backup, 'database_backup', 'backup_directory_path', str)
            ),
            remove_backups_older_than_days=retention,
            email_credentials=EmailCredentials(
                username=self._require(credentials, 'email_credentials', 'username', str),
                password=self._resolve_credential(
                    self._require(credentials, 'email_credentials', 'password', str),
                    'email_credentials.password'
                ),
            ),
            smtp=SmtpSettings(
                server_address=self._require(smtp, 'smtp_settings', 'server_address', str),
                port=port,
                send_to=self._require(smtp, 'smtp_settings', 'send_to', str),
                use_tls=self._optional(smtp, 'smtp_settings', 'use_tls', bool, True),
                timeout_seconds=self._optional(
                    smtp, 'smtp_settings', 'timeout_seconds', int, Config.SMTP_TIMEOUT_SECONDS
                ),
            ),
            database_username=database_username,
            database_password=(
                self._resolve_credential(database_password, 'database_backup.password')
                if database_password is not None else None
            ),
            include_system_databases=self._optional(
                backup, 'database_backup', 'include_system_databases', bool, False
            ),
            command_timeout_seconds=self._optional(
                backup, 'database_backup', 'timeout_seconds', int, Config.COMMAND_TIMEOUT_SECONDS
            ),
        )

        self.logger.info(f"Configuración cargada: {self.config_file}")
        self.logger.info(
            f"Servidor: {options.server_name}, instancia: {options.instance_name}, "
            f"destino: {options.backup_directory_path}, "
            f"retención: {options.remove_backups_older_than_days} días"
        )
        return options

    @staticmethod
    def _section(raw: Dict, name: str) -> Dict:
        section = raw.get(name, _MISSING)
        if section is _MISSING:
            raise ConfigurationError("Falta la sección obligatoria", item=name)
        if not isinstance(section, dict):
            raise ConfigurationError("La sección debe ser un objeto JSON", item=name)
        return section

    @classmethod
    def _require(cls, section: Dict, section_name: str, key: str, expected: type) -> Any:
        value = section.get(key, _MISSING)
        if value is _MISSING:
            raise ConfigurationError("Falta la clave obligatoria", item=f"{section_name}.{key}")
        return cls._check_type(value, section_name, key, expected)

    @classmethod
    def _optional(cls, section: Dict, section_name: str, key: str, expected: type, default: Any) -> Any:
        value = section.get(key, _MISSING)
        if value is _MISSING or value is None:
            return default
        return cls._check_type(value, section_name, key, expected)

    @staticmethod
    def _check_type(value: Any, section_name: str, key: str, expected: type) -> Any:
        # bool es subclase de int en Python; no se acepta como número
        wrong_bool = expected is int and isinstance(value, bool)
        if wrong_bool or not isinstance(value, expected):
            raise ConfigurationError(
                f"Tipo inválido: se esperaba {expected.__name__}, "
                f"se recibió {type(value).__name__}",
                item=f"{section_name}.{key}"
            )
        if expected is str and not value.strip():
            raise ConfigurationError("El valor no puede estar vacío", item=f"{section_name}.{key}")
        return value

    def _resolve_credential(self, value: str, key: str) -> str:
        """
        Resuelve credencial desde variable de entorno si es necesario

        Args:
            value: Valor que puede contener referencia a variable de entorno
            key: Clave de configuración (para el mensaje de error)

        Returns:
            Valor resuelto
        """
        if value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            resolved = os.getenv(env_var, "")
            if not resolved:
                raise ConfigurationError(f"Variable de entorno no encontrada: {env_var}", item=key)
            return resolved
        return value

    def save(self, config: Dict) -> bool:
        """
        Guarda configuración en archivo JSON

        Args:
            config: Diccionario con la configuración

        Returns:
            True si se guardó exitosamente
        """
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding='utf-8') as f:
                json.dump(config, f, indent=4, ensure_ascii=False)
            self.logger.info(f"Configuración guardada exitosamente: {self.config_file}")
            return True
        except OSError as e:
            self.logger.error(f"Error al guardar la configuración: {str(e)}")
            return False

    def create_example_config(self) -> bool:
        """
        Crea un archivo de configuración de ejemplo, sin sobrescribir uno existente

        Returns:
            True si se creó exitosamente
        """
        if self.config_file.exists():
            self.logger.warning(f"La configuración ya existe: {self.config_file}")
            return False
        return self.save(Config.DEFAULT_CONFIG)
