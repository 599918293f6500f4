"""
Jerarquía de errores de una ejecución de backup
"""
from typing import Optional


class BackupRunError(Exception):
    """Error base; item identifica el objeto afectado (archivo, base de datos...)"""

    def __init__(self, message: str, item: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.item = item

    def __str__(self):
        if self.item:
            return f"{self.message} [{self.item}]"
        return self.message


class ConfigurationError(BackupRunError):
    """Archivo de configuración inexistente, mal formado o incompleto"""


class DatabaseConnectionError(BackupRunError):
    """No se pudo conectar o enumerar las bases de datos del servidor/instancia"""


class BackupError(BackupRunError):
    """Falló el backup de una base de datos concreta"""


class ArchiveToolError(BackupRunError):
    """La herramienta de compresión no existe o terminó con error"""


class PruneError(BackupRunError):
    """No se pudo recorrer o eliminar un archivo durante la limpieza"""


class NotificationError(BackupRunError):
    """Falló el envío del correo de notificación"""
