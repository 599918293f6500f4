"""
Tests de los servicios y de la ejecución completa con dobles de prueba
"""
import io
import json
import os
import re
import smtplib
import subprocess
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock
import tempfile
import shutil
import sys

import schedule

# Agregar raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlbackup.config import Config
from sqlbackup.errors import (
    ArchiveToolError, BackupError, DatabaseConnectionError, NotificationError
)
from sqlbackup.logger import LoggerService
from sqlbackup.models import (
    BackupOptions, DatabaseDescriptor, EmailCredentials, RunReport, RunStage, SmtpSettings
)
from sqlbackup.repositories.config_repository import ConfigRepository
from sqlbackup.services.archive_service import Archiver, SevenZipArchiver
from sqlbackup.services.backup_service import BackupService
from sqlbackup.services.notification_service import Mailer, NotificationService, SmtpMailer
from sqlbackup.services.pipeline_service import BackupPipeline
from sqlbackup.services.scheduler_service import SchedulerService
from sqlbackup.strategies.base_strategy import BackupStrategy


class FakeStrategy(BackupStrategy):
    """Motor falso: escribe un archivo por base de datos"""

    def __init__(self, names, fail_on=None, connection_error=False):
        super().__init__()
        self.names = names
        self.fail_on = fail_on
        self.connection_error = connection_error
        self.written = []

    def list_databases(self, options):
        if self.connection_error:
            raise DatabaseConnectionError("Login failed", item=options.server_string)
        return [DatabaseDescriptor(name) for name in self.names]

    def backup(self, options, database, output_file):
        if database.name == self.fail_on:
            raise RuntimeError(f"disk full while writing {database.name}")
        output_file.write_bytes(b"BAK")
        self.written.append(output_file)


class FakeArchiver(Archiver):
    """Compresor falso: reemplaza los .bak por un único archivo"""

    def __init__(self, verify_error=None, archive_error=None):
        self.verify_error = verify_error
        self.archive_error = archive_error
        self.calls = []

    def verify(self):
        if self.verify_error:
            raise self.verify_error

    def archive(self, source_dir, server_name, sources=None, timeout_seconds=None):
        self.calls.append((source_dir, server_name, sources, timeout_seconds))
        if self.archive_error:
            raise self.archive_error
        if sources is None:
            sources = sorted(source_dir.glob("*.bak"))
        sources = sorted(sources)
        archive_path = source_dir / self.archive_name(server_name)
        archive_path.write_text("\n".join(p.name for p in sources))
        for source in sources:
            source.unlink()
        return archive_path


class FakeMailer(Mailer):
    """Transporte falso que guarda los mensajes"""

    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send(self, message, smtp, credentials):
        self.sent.append((message, smtp, credentials))
        if self.error:
            raise self.error


def simulate_7z(cmd, **kwargs):
    """Sustituto de 7z: guarda los nombres de las fuentes y las elimina (-sdel)"""
    archive_index = cmd.index("-sdel") + 1
    archive_path = Path(cmd[archive_index])
    sources = [Path(source) for source in cmd[archive_index + 1:]]
    archive_path.write_text("\n".join(p.name for p in sources))
    for source in sources:
        source.unlink()
    return subprocess.CompletedProcess(cmd, 0, stdout="Everything is Ok", stderr="")


def make_options(backup_dir, retention=14):
    return BackupOptions(
        server_name="SRV1",
        instance_name="DEFAULT",
        backup_directory_path=Path(backup_dir),
        remove_backups_older_than_days=retention,
        email_credentials=EmailCredentials("backup@example.com", "s3cret"),
        smtp=SmtpSettings("smtp.example.com", 587, "dba@example.com")
    )


def write_config(path, backup_dir, retention=14, timeout_seconds=None):
    database_backup = {
        "servername": "SRV1",
        "instance": "DEFAULT",
        "backup_directory_path": str(backup_dir),
        "remove_backups_older_than": retention
    }
    if timeout_seconds is not None:
        database_backup["timeout_seconds"] = timeout_seconds
    path.write_text(json.dumps({
        "database_backup": database_backup,
        "email_credentials": {"username": "backup@example.com", "password": "s3cret"},
        "smtp_settings": {
            "send_to": "dba@example.com",
            "server_address": "smtp.example.com",
            "port": 587
        }
    }), encoding="utf-8")


class TempDirTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.backup_dir = self.temp_dir / "backups"

    def tearDown(self):
        LoggerService.shutdown()
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestLoggerService(TempDirTestCase):
    """Tests para LoggerService"""

    def test_run_log_path_is_timestamped(self):
        """Test el archivo de log se nombra con la marca de tiempo de inicio"""
        path = LoggerService.run_log_path(datetime(2026, 1, 2, 3, 4, 5), self.temp_dir)
        self.assertEqual(path, self.temp_dir / "20260102T030405.log")

    def test_log_line_format(self):
        """Test cada línea es '<timestamp> <mensaje>'"""
        log_file = self.temp_dir / "logs" / "run.log"
        LoggerService.start_run(log_file)
        LoggerService.get_logger("Test").info("hola mundo")
        LoggerService.shutdown()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 1)
        self.assertRegex(lines[0], r"^\d{8}T\d{6} hola mundo$")

    def test_log_to_stdout_without_file(self):
        """Test sin archivo configurado se escribe en stdout"""
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            LoggerService.start_run(None)
            LoggerService.get_logger("Test").info("a consola")
            LoggerService.shutdown()
        self.assertIn("a consola", stdout.getvalue())

    def test_log_write_failure_propagates(self):
        """Test un error de escritura del log no se silencia"""
        LoggerService.start_run(self.temp_dir / "run.log")
        handler = LoggerService._handlers[0]
        handler.stream.close()
        handler.stream = mock.Mock()
        handler.stream.write.side_effect = OSError("disk full")

        with self.assertRaises(OSError):
            LoggerService.get_logger("Test").info("no cabe")


class TestBackupService(TempDirTestCase):
    """Tests para BackupService"""

    def test_backup_all_databases_in_order(self):
        """Test un archivo .bak por base de datos, en orden de enumeración"""
        strategy = FakeStrategy(["orders", "catalog"])
        service = BackupService(strategy, make_options(self.backup_dir))

        results = service.run_backups()

        self.assertEqual([r.database_name for r in results], ["orders", "catalog"])
        self.assertTrue(all(r.success for r in results))
        self.assertEqual(
            strategy.written,
            [self.backup_dir / "orders.bak", self.backup_dir / "catalog.bak"]
        )

    def test_first_failure_aborts_remaining(self):
        """Test el fallo de una base de datos aborta las siguientes"""
        strategy = FakeStrategy(["a", "b", "c"], fail_on="b")
        service = BackupService(strategy, make_options(self.backup_dir))

        with self.assertRaises(BackupError) as ctx:
            service.run_backups()

        self.assertEqual(ctx.exception.item, "b")
        self.assertIn("disk full", ctx.exception.message)
        self.assertEqual([r.database_name for r in service.completed], ["a"])
        self.assertTrue((self.backup_dir / "a.bak").exists())
        self.assertFalse((self.backup_dir / "c.bak").exists())

    def test_connection_error_propagates(self):
        """Test servidor inaccesible"""
        service = BackupService(FakeStrategy([], connection_error=True), make_options(self.backup_dir))
        with self.assertRaises(DatabaseConnectionError):
            service.run_backups()


class TestSevenZipArchiver(TempDirTestCase):
    """Tests para SevenZipArchiver"""

    def setUp(self):
        super().setUp()
        self.backup_dir.mkdir()
        self.tool = self.temp_dir / "7z"
        self.tool.write_text("")
        self.archiver = SevenZipArchiver(self.tool, timeout_seconds=10)

    def test_archive_consumes_bak_files(self):
        """Test los .bak se mueven al archivo comprimido"""
        (self.backup_dir / "orders.bak").write_text("x")
        (self.backup_dir / "catalog.bak").write_text("y")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run",
                        side_effect=simulate_7z) as run:
            archive_path = self.archiver.archive(self.backup_dir, "SRV1")

        self.assertRegex(archive_path.name, r"^SRV1_\d{8}T\d{6}\.7z$")
        self.assertTrue(archive_path.exists())
        self.assertEqual(list(self.backup_dir.glob("*.bak")), [])

        cmd = run.call_args[0][0]
        self.assertEqual(cmd[0], str(self.tool))
        self.assertEqual(cmd[1], "a")
        self.assertIn("-mx=9", cmd)
        self.assertIn("-t7z", cmd)
        self.assertIn("-sdel", cmd)
        self.assertEqual(run.call_args[1]["timeout"], 10)

    def test_archive_tool_missing(self):
        """Test herramienta inexistente"""
        archiver = SevenZipArchiver(self.temp_dir / "missing" / "7z.exe")
        with self.assertRaises(ArchiveToolError):
            archiver.verify()
        with self.assertRaises(ArchiveToolError):
            archiver.archive(self.backup_dir, "SRV1")

    def test_archive_tool_failure(self):
        """Test código de salida distinto de cero"""
        (self.backup_dir / "orders.bak").write_text("x")
        failed = subprocess.CompletedProcess([], 2, stdout="", stderr="ERROR: cannot open file")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run", return_value=failed):
            with self.assertRaises(ArchiveToolError) as ctx:
                self.archiver.archive(self.backup_dir, "SRV1")
        self.assertIn("cannot open file", ctx.exception.message)
        self.assertTrue((self.backup_dir / "orders.bak").exists())

    def test_archive_tool_timeout(self):
        """Test la herramienta no termina a tiempo"""
        (self.backup_dir / "orders.bak").write_text("x")
        timeout = subprocess.TimeoutExpired(cmd="7z", timeout=10)

        with mock.patch("sqlbackup.services.archive_service.subprocess.run", side_effect=timeout):
            with self.assertRaises(ArchiveToolError):
                self.archiver.archive(self.backup_dir, "SRV1")

    def test_archive_without_bak_files(self):
        """Test sin backups no se invoca la herramienta"""
        with mock.patch("sqlbackup.services.archive_service.subprocess.run") as run:
            self.assertIsNone(self.archiver.archive(self.backup_dir, "SRV1"))
        run.assert_not_called()

    def test_archive_only_given_sources(self):
        """Test solo se comprimen los .bak indicados; los ajenos quedan en disco"""
        current = self.backup_dir / "orders.bak"
        current.write_text("x")
        stale = self.backup_dir / "leftover.bak"
        stale.write_text("old")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run",
                        side_effect=simulate_7z) as run:
            archive_path = self.archiver.archive(self.backup_dir, "SRV1", sources=[current])

        cmd = run.call_args[0][0]
        self.assertIn(str(current), cmd)
        self.assertNotIn(str(stale), cmd)
        self.assertFalse(any("*" in part for part in cmd))
        self.assertEqual(archive_path.read_text().splitlines(), ["orders.bak"])
        self.assertTrue(stale.exists())

    def test_archive_timeout_per_call(self):
        """Test el límite de tiempo de la llamada prevalece sobre el del constructor"""
        (self.backup_dir / "orders.bak").write_text("x")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run",
                        side_effect=simulate_7z) as run:
            self.archiver.archive(self.backup_dir, "SRV1", timeout_seconds=600)

        self.assertEqual(run.call_args[1]["timeout"], 600)

    def test_archive_empty_sources(self):
        """Test lista de fuentes vacía no invoca la herramienta"""
        (self.backup_dir / "leftover.bak").write_text("old")
        with mock.patch("sqlbackup.services.archive_service.subprocess.run") as run:
            self.assertIsNone(self.archiver.archive(self.backup_dir, "SRV1", sources=[]))
        run.assert_not_called()


class TestNotificationService(unittest.TestCase):
    """Tests para NotificationService y SmtpMailer"""

    def setUp(self):
        self.options = make_options("/backups")

    def test_build_message(self):
        """Test asunto y cuerpo del correo"""
        error = ArchiveToolError("La herramienta terminó con código 2", item="/backups/SRV1_x.7z")
        message = NotificationService.build_message(
            self.options, error, RunStage.ARCHIVE, now=datetime(2026, 5, 4, 2, 0, 0)
        )
        body = message.get_content()

        self.assertIn("SRV1", message["Subject"])
        self.assertIn("2026-05-04", message["Subject"])
        self.assertEqual(message["To"], "dba@example.com")
        self.assertEqual(message["From"], "backup@example.com")
        self.assertIn("SRV1", body)
        self.assertIn("DEFAULT", body)
        self.assertIn("La herramienta terminó con código 2", body)
        self.assertIn("/backups/SRV1_x.7z", body)
        self.assertIn("archive", body)
        self.assertNotIn("s3cret", body)

    def test_notify_failure_uses_mailer(self):
        """Test credenciales y SMTP se pasan explícitamente al transporte"""
        mailer = FakeMailer()
        NotificationService(mailer).notify_failure(self.options, RuntimeError("boom"))

        self.assertEqual(len(mailer.sent), 1)
        _, smtp, credentials = mailer.sent[0]
        self.assertIs(smtp, self.options.smtp)
        self.assertIs(credentials, self.options.email_credentials)

    def test_smtp_mailer_sends(self):
        """Test STARTTLS, login y envío"""
        smtp_class = mock.MagicMock()
        server = smtp_class.return_value.__enter__.return_value
        message = NotificationService.build_message(self.options, RuntimeError("boom"))

        SmtpMailer(smtp_class).send(message, self.options.smtp, self.options.email_credentials)

        smtp_class.assert_called_once_with("smtp.example.com", 587, timeout=Config.SMTP_TIMEOUT_SECONDS)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("backup@example.com", "s3cret")
        server.send_message.assert_called_once_with(message)

    def test_smtp_mailer_failure(self):
        """Test error SMTP como NotificationError"""
        smtp_class = mock.MagicMock()
        server = smtp_class.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        message = NotificationService.build_message(self.options, RuntimeError("boom"))

        with self.assertRaises(NotificationError):
            SmtpMailer(smtp_class).send(message, self.options.smtp, self.options.email_credentials)

    def test_smtp_mailer_connection_refused(self):
        """Test servidor SMTP inaccesible"""
        smtp_class = mock.MagicMock(side_effect=ConnectionRefusedError("refused"))
        message = NotificationService.build_message(self.options, RuntimeError("boom"))

        with self.assertRaises(NotificationError):
            SmtpMailer(smtp_class).send(message, self.options.smtp, self.options.email_credentials)


class TestBackupPipeline(TempDirTestCase):
    """Tests de la ejecución completa"""

    def setUp(self):
        super().setUp()
        self.config_file = self.temp_dir / "options.json"
        write_config(self.config_file, self.backup_dir)
        self.mailer = FakeMailer()

    def _pipeline(self, strategy, archiver=None, mailer=None):
        return BackupPipeline(
            config_repo=ConfigRepository(self.config_file),
            strategy=strategy,
            archiver=archiver or FakeArchiver(),
            mailer=mailer or self.mailer
        )

    def test_end_to_end(self):
        """Test .bak en orden, un archivo comprimido, cero .bak y limpieza"""
        self.backup_dir.mkdir()
        stale = self.backup_dir / "SRV1_20200101T020000.7z"
        stale.write_text("old")
        old_time = datetime(2020, 1, 1).timestamp()
        os.utime(stale, (old_time, old_time))

        strategy = FakeStrategy(["orders", "catalog"])
        report = self._pipeline(strategy).run()

        self.assertTrue(report.succeeded)
        self.assertEqual(report.exit_code, 0)
        self.assertEqual(
            strategy.written,
            [self.backup_dir / "orders.bak", self.backup_dir / "catalog.bak"]
        )
        self.assertEqual(list(self.backup_dir.glob("*.bak")), [])
        archives = list(self.backup_dir.glob("SRV1_*.7z"))
        self.assertEqual(archives, [report.archive_path])
        self.assertEqual(report.archive_path.read_text().splitlines(), ["catalog.bak", "orders.bak"])
        self.assertFalse(stale.exists())
        self.assertEqual(report.deleted_count, 1)
        self.assertEqual(self.mailer.sent, [])

    def test_kth_backup_failure(self):
        """Test fallo en la base K: quedan 1..K-1, sin archivo, una notificación"""
        archiver = FakeArchiver()
        strategy = FakeStrategy(["a", "b", "c"], fail_on="b")
        report = self._pipeline(strategy, archiver).run()

        self.assertFalse(report.succeeded)
        self.assertEqual(report.stage, RunStage.FAILED)
        self.assertEqual(report.failed_stage, RunStage.BACKUP_EACH)
        self.assertIsInstance(report.error, BackupError)
        self.assertEqual(report.exit_code, 1)
        self.assertEqual([r.database_name for r in report.results], ["a"])
        self.assertTrue((self.backup_dir / "a.bak").exists())
        self.assertEqual(list(self.backup_dir.glob("*.7z")), [])
        self.assertEqual(archiver.calls, [])
        self.assertEqual(len(self.mailer.sent), 1)
        self.assertTrue(report.notification_sent)

    def test_archive_failure_notification(self):
        """Test el correo incluye servidor, instancia y el error literal"""
        error = ArchiveToolError("7-Zip terminó con código 2: disco lleno")
        report = self._pipeline(FakeStrategy(["orders"]), FakeArchiver(archive_error=error)).run()

        self.assertEqual(report.failed_stage, RunStage.ARCHIVE)
        self.assertEqual(len(self.mailer.sent), 1)
        body = self.mailer.sent[0][0].get_content()
        self.assertIn("SRV1", body)
        self.assertIn("DEFAULT", body)
        self.assertIn("7-Zip terminó con código 2: disco lleno", body)
        self.assertTrue((self.backup_dir / "orders.bak").exists())

    def test_configuration_error_is_not_notified(self):
        """Test configuración inválida: sin notificación ni efectos"""
        self.config_file.write_text("{}", encoding="utf-8")
        strategy = FakeStrategy(["orders"])
        report = self._pipeline(strategy).run()

        self.assertEqual(report.failed_stage, RunStage.LOAD_CONFIG)
        self.assertEqual(report.exit_code, 2)
        self.assertEqual(self.mailer.sent, [])
        self.assertEqual(strategy.written, [])
        self.assertFalse(self.backup_dir.exists())

    def test_connection_error(self):
        """Test servidor inaccesible aborta antes de cualquier backup"""
        report = self._pipeline(FakeStrategy(["orders"], connection_error=True)).run()

        self.assertEqual(report.failed_stage, RunStage.ENUMERATE)
        self.assertIsInstance(report.error, DatabaseConnectionError)
        self.assertEqual(len(self.mailer.sent), 1)

    def test_missing_archive_tool_fails_fast(self):
        """Test la herramienta se verifica antes de enumerar"""
        strategy = FakeStrategy(["orders"])
        archiver = FakeArchiver(verify_error=ArchiveToolError("no existe", item="7z.exe"))
        report = self._pipeline(strategy, archiver).run()

        self.assertEqual(report.failed_stage, RunStage.PREFLIGHT)
        self.assertEqual(strategy.written, [])
        self.assertEqual(len(self.mailer.sent), 1)

    def test_notification_failure_is_contained(self):
        """Test un fallo SMTP no provoca un segundo error sin manejar"""
        mailer = FakeMailer(error=NotificationError("SMTP caído"))
        report = self._pipeline(FakeStrategy(["a"], fail_on="a"), mailer=mailer).run()

        self.assertEqual(report.failed_stage, RunStage.BACKUP_EACH)
        self.assertEqual(len(mailer.sent), 1)
        self.assertFalse(report.notification_sent)
        self.assertEqual(report.exit_code, 1)

    def test_configured_timeout_reaches_archive_tool(self):
        """Test database_backup.timeout_seconds llega a la invocación de 7-Zip"""
        write_config(self.config_file, self.backup_dir, timeout_seconds=600)
        tool = self.temp_dir / "7z"
        tool.write_text("")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run",
                        side_effect=simulate_7z) as run:
            report = self._pipeline(FakeStrategy(["orders"]), SevenZipArchiver(tool)).run()

        self.assertTrue(report.succeeded)
        self.assertEqual(run.call_args[1]["timeout"], 600)

    def test_leftover_bak_is_not_archived(self):
        """Test un .bak de una ejecución anterior no entra en el archivo de esta"""
        self.backup_dir.mkdir()
        leftover = self.backup_dir / "dropped_db.bak"
        leftover.write_text("old")
        tool = self.temp_dir / "7z"
        tool.write_text("")

        with mock.patch("sqlbackup.services.archive_service.subprocess.run",
                        side_effect=simulate_7z) as run:
            report = self._pipeline(FakeStrategy(["orders"]), SevenZipArchiver(tool)).run()

        self.assertTrue(report.succeeded)
        self.assertNotIn(str(leftover), run.call_args[0][0])
        self.assertEqual(report.archive_path.read_text().splitlines(), ["orders.bak"])
        self.assertTrue(leftover.exists())

    def test_unwritable_log_still_notifies(self):
        """Test si el log deja de admitir escrituras se notifica y luego se propaga el error"""
        class LogBreakingStrategy(FakeStrategy):
            def list_databases(self, options):
                handler = LoggerService._handlers[0]
                handler.stream.close()
                handler.stream = mock.Mock()
                handler.stream.write.side_effect = OSError("No space left on device")
                return super().list_databases(options)

        LoggerService.start_run(self.temp_dir / "run.log")
        with self.assertRaises(OSError):
            self._pipeline(LogBreakingStrategy(["orders"])).run()

        self.assertEqual(len(self.mailer.sent), 1)
        body = self.mailer.sent[0][0].get_content()
        self.assertIn("No space left on device", body)

    def test_run_writes_log_narrative(self):
        """Test el log de la ejecución registra cada etapa y el fallo"""
        log_file = self.temp_dir / "run.log"
        LoggerService.start_run(log_file)
        self._pipeline(FakeStrategy(["a", "b"], fail_on="b")).run()
        LoggerService.shutdown()

        text = log_file.read_text(encoding="utf-8")
        for stage in ("preflight", "enumerate", "backup_each"):
            self.assertIn(f"Etapa: {stage}", text)
        self.assertIn("Fallo en la etapa backup_each", text)
        self.assertNotIn("s3cret", text)
        self.assertTrue(all(re.match(r"^\d{8}T\d{6} ", line) for line in text.splitlines()))


class TestSchedulerService(unittest.TestCase):
    """Tests para SchedulerService"""

    def test_register_daily_jobs(self):
        """Test un trabajo diario por hora configurada"""
        service = SchedulerService(lambda: RunReport(stage=RunStage.DONE), ["02:00", "14:30"])
        service.register()
        self.assertEqual(len(service.scheduler.jobs), 2)
        self.assertNotEqual(service.get_next_run(), "No hay ejecuciones programadas")

    def test_invalid_time(self):
        """Test formato de hora inválido"""
        service = SchedulerService(lambda: RunReport(), ["nope"])
        with self.assertRaises(schedule.ScheduleValueError):
            service.register()

    def test_failed_job_does_not_stop_service(self):
        """Test un backup fallido o una excepción no detienen el servicio"""
        failed = RunReport(stage=RunStage.FAILED, failed_stage=RunStage.ARCHIVE)
        SchedulerService(lambda: failed, ["02:00"])._run_job()

        def crash():
            raise RuntimeError("unexpected")
        SchedulerService(crash, ["02:00"])._run_job()


if __name__ == '__main__':
    unittest.main()
