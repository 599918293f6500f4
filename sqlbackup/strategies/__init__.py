"""
Estrategias de backup para motores de BD

SQLServerBackupStrategy se importa desde su módulo (requiere pyodbc).
"""
from .base_strategy import BackupStrategy

__all__ = [
    'BackupStrategy'
]
