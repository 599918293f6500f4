"""
Notificación por correo de ejecuciones fallidas
"""
from abc import ABC, abstractmethod
from datetime import datetime
from email.message import EmailMessage
import smtplib
from typing import Optional
from ..errors import NotificationError
from ..models import BackupOptions, EmailCredentials, RunStage, SmtpSettings


class Mailer(ABC):
    """Interfaz del transporte de correo"""

    @abstractmethod
    def send(self, message: EmailMessage, smtp: SmtpSettings, credentials: EmailCredentials) -> None:
        """Envía el mensaje; NotificationError si el envío falla"""
        pass


class SmtpMailer(Mailer):
    """Envío por SMTP con STARTTLS opcional y autenticación"""

    def __init__(self, smtp_class=smtplib.SMTP):
        self.smtp_class = smtp_class

    def send(self, message: EmailMessage, smtp: SmtpSettings, credentials: EmailCredentials) -> None:
        try:
            with self.smtp_class(smtp.server_address, smtp.port, timeout=smtp.timeout_seconds) as server:
                if smtp.use_tls:
                    server.starttls()
                server.login(credentials.username, credentials.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                f"Error enviando correo: {e}", item=f"{smtp.server_address}:{smtp.port}"
            ) from e


class NotificationService:
    """Compone y envía el diagnóstico de una ejecución fallida"""

    def __init__(self, mailer: Mailer):
        self.mailer = mailer

    @staticmethod
    def build_message(options: BackupOptions, error: Exception, stage: Optional[RunStage] = None,
                      now: Optional[datetime] = None) -> EmailMessage:
        """
        Compone el correo de fallo en texto plano

        Args:
            options: Configuración de la ejecución
            error: Error que abortó la ejecución
            stage: Etapa en la que ocurrió el error
            now: Momento del fallo (por defecto, ahora)

        Returns:
            Mensaje listo para enviar
        """
        now = now or datetime.now()
        message_text = getattr(error, 'message', None) or str(error)
        item = getattr(error, 'item', None)

        lines = [
            "La ejecución del backup de bases de datos falló.",
            "",
            f"Servidor: {options.server_name}",
            f"Instancia: {options.instance_name}",
            f"Fecha: {now.strftime('%Y-%m-%d %H:%M:%S')}",
        ]
        if stage is not None:
            lines.append(f"Etapa: {stage.value}")
        lines.append(f"Tipo de error: {type(error).__name__}")
        lines.append(f"Error: {message_text}")
        if item:
            lines.append(f"Elemento: {item}")
        lines.extend([
            "",
            "Revise el archivo de log de la ejecución para más detalles.",
        ])

        message = EmailMessage()
        message['Subject'] = f"Backup fallido en {options.server_name} - {now.strftime('%Y-%m-%d')}"
        message['From'] = options.email_credentials.username
        message['To'] = options.smtp.send_to
        message.set_content("\n".join(lines))
        return message

    def notify_failure(self, options: BackupOptions, error: Exception,
                       stage: Optional[RunStage] = None) -> None:
        """
        Envía la notificación de fallo

        No escribe en el log: el llamador registra el resultado, de modo que
        un log inutilizable no impide el envío.

        Raises:
            NotificationError: si el envío falla
        """
        message = self.build_message(options, error, stage)
        self.mailer.send(message, options.smtp, options.email_credentials)
