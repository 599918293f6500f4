"""
Estrategia de backup para SQL Server
Usa BACKUP DATABASE nativo, un archivo .bak por base de datos
"""
from contextlib import closing
from pathlib import Path
from typing import List
import pyodbc
from .base_strategy import BackupStrategy
from ..config import Config
from ..errors import BackupError, DatabaseConnectionError
from ..models import BackupOptions, DatabaseDescriptor


# database_id 1-4: master, tempdb, model, msdb
LIST_DATABASES_QUERY = """
SET NOCOUNT ON;
SELECT name
FROM sys.databases
WHERE state_desc = 'ONLINE'
  AND name <> 'tempdb'
  AND (? = 1 OR database_id > 4)
ORDER BY database_id;
"""


class SQLServerBackupStrategy(BackupStrategy):
    """Estrategia de backup para SQL Server"""

    DRIVER = "ODBC Driver 17 for SQL Server"

    def __init__(self, driver: str = DRIVER, connect_timeout: int = Config.CONNECT_TIMEOUT_SECONDS):
        super().__init__()
        self.driver = driver
        self.connect_timeout = connect_timeout

    def list_databases(self, options: BackupOptions) -> List[DatabaseDescriptor]:
        """
        Enumera las bases de datos en línea del servidor/instancia

        Args:
            options: Configuración de la ejecución

        Returns:
            Lista de DatabaseDescriptor en orden de database_id
        """
        self.logger.info(f"[SQLSERVER] Enumerando bases de datos en {options.server_string}")
        try:
            with closing(self._connect(options)) as conn:
                cursor = conn.cursor()
                cursor.execute(LIST_DATABASES_QUERY, 1 if options.include_system_databases else 0)
                rows = cursor.fetchall()
        except pyodbc.Error as e:
            raise DatabaseConnectionError(
                f"Error enumerando bases de datos: {e}", item=options.server_string
            ) from e

        databases = [DatabaseDescriptor(name=row[0]) for row in rows]
        self.logger.info(f"[SQLSERVER] {len(databases)} base(s) de datos encontrada(s)")
        return databases

    def backup(self, options: BackupOptions, database: DatabaseDescriptor, output_file: Path) -> None:
        """
        Ejecuta BACKUP DATABASE hacia output_file (ruta vista por el servidor)

        Args:
            options: Configuración de la ejecución
            database: Base de datos a respaldar
            output_file: Archivo .bak de destino
        """
        statement = self.build_backup_statement(database.name, output_file)
        try:
            with closing(self._connect(options)) as conn:
                conn.timeout = options.command_timeout_seconds
                cursor = conn.cursor()
                cursor.execute(statement)
                # BACKUP devuelve mensajes informativos como result sets;
                # hay que consumirlos todos para que termine
                while cursor.nextset():
                    pass
        except DatabaseConnectionError:
            raise
        except pyodbc.Error as e:
            raise BackupError(f"BACKUP DATABASE falló: {e}", item=database.name) from e

    @staticmethod
    def build_backup_statement(database_name: str, output_file: Path) -> str:
        """Genera la sentencia BACKUP DATABASE con nombre y ruta escapados"""
        quoted_name = database_name.replace("]", "]]")
        quoted_path = str(output_file).replace("'", "''")
        return f"BACKUP DATABASE [{quoted_name}] TO DISK = N'{quoted_path}' WITH INIT;"

    def build_connection_string(self, options: BackupOptions) -> str:
        """Genera el string de conexión ODBC (autenticación integrada o SQL)"""
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={options.server_string}",
            "DATABASE=master",
        ]
        if options.uses_sql_authentication:
            parts.append(f"UID={options.database_username}")
            parts.append(f"PWD={options.database_password}")
        else:
            parts.append("Trusted_Connection=yes")
        parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"

    def _connect(self, options: BackupOptions):
        try:
            self.logger.info(f"[SQLSERVER] Conectando a {options.server_string}")
            return pyodbc.connect(
                self.build_connection_string(options),
                timeout=self.connect_timeout,
                autocommit=True
            )
        except pyodbc.Error as e:
            raise DatabaseConnectionError(
                f"Error de conexión: {e}", item=options.server_string
            ) from e
