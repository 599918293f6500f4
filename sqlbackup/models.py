"""
Modelos de datos del sistema
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional
from .config import Config


@dataclass(frozen=True)
class SmtpSettings:
    """Servidor SMTP y destinatario de las notificaciones"""
    server_address: str
    port: int
    send_to: str
    use_tls: bool = True
    timeout_seconds: int = Config.SMTP_TIMEOUT_SECONDS


@dataclass(frozen=True)
class EmailCredentials:
    """Credenciales SMTP; solo viven en memoria durante la ejecución"""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class BackupOptions:
    """Configuración de una ejecución de backup"""
    server_name: str
    instance_name: str
    backup_directory_path: Path
    remove_backups_older_than_days: int
    email_credentials: EmailCredentials
    smtp: SmtpSettings
    database_username: Optional[str] = None
    database_password: Optional[str] = field(default=None, repr=False)
    include_system_databases: bool = False
    command_timeout_seconds: int = Config.COMMAND_TIMEOUT_SECONDS

    @property
    def server_string(self) -> str:
        """Nombre de servidor para la conexión: SERVIDOR o SERVIDOR\\INSTANCIA"""
        if self.instance_name.upper() in Config.DEFAULT_INSTANCE_NAMES:
            return self.server_name
        return f"{self.server_name}\\{self.instance_name}"

    @property
    def uses_sql_authentication(self) -> bool:
        return bool(self.database_username)


@dataclass(frozen=True)
class DatabaseDescriptor:
    """Base de datos enumerada en el servidor"""
    name: str


@dataclass
class BackupResult:
    """Resultado de una operación de backup"""
    database_name: str
    success: bool
    output_file: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def __str__(self):
        if self.success:
            return f"✓ {self.database_name}: {self.output_file} ({self.duration_seconds:.2f}s)"
        else:
            return f"✗ {self.database_name}: {self.error}"


class RunStage(Enum):
    """Etapas de una ejecución, en orden"""
    LOAD_CONFIG = "load_config"
    PREFLIGHT = "preflight"
    ENUMERATE = "enumerate"
    BACKUP_EACH = "backup_each"
    ARCHIVE = "archive"
    PRUNE = "prune"
    DONE = "done"
    FAILED = "failed"


EXIT_SUCCESS = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


@dataclass
class RunReport:
    """Estado final de una ejecución"""
    stage: RunStage = RunStage.LOAD_CONFIG
    failed_stage: Optional[RunStage] = None
    error: Optional[Exception] = None
    results: List[BackupResult] = field(default_factory=list)
    archive_path: Optional[Path] = None
    deleted_count: int = 0
    notification_sent: bool = False

    @property
    def succeeded(self) -> bool:
        return self.stage is RunStage.DONE

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return EXIT_SUCCESS
        if self.failed_stage is RunStage.LOAD_CONFIG:
            return EXIT_CONFIG_ERROR
        return EXIT_RUN_FAILED
