"""
Backup automático de todas las bases de datos de una instancia SQL Server
"""
__version__ = "1.0.0"

from .config import Config
from .logger import LoggerService

__all__ = ['Config', 'LoggerService']
