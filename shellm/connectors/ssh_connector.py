"""
SSH Connector для выполнения команд на хостах из инвентаря

Каждый вызов открывает собственное соединение и одну сессию, запускает
команду в рабочем потоке и ждет первого из двух событий: завершения команды
или отмены контекста хода. Соединение и сессия закрываются на любом пути.
"""
import asyncio
import functools
import io
import os
import time
from typing import Optional, Dict, Any, Mapping, Tuple
from contextlib import asynccontextmanager

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST
from paramiko.message import Message

from ..config.agent_config import SSHConfig
from ..config.inventory import Host, Secret
from ..models.command_result import CommandResult
from ..utils.context import TurnContext, TurnContextError
from ..utils.logger import StructuredLogger


class RemoteCommandError(Exception):
    """Базовое исключение для ошибок удаленного выполнения"""
    pass


class HostNotFoundError(RemoteCommandError):
    """Хост отсутствует в инвентаре"""

    def __init__(self, host_id: str):
        self.host_id = host_id
        super().__init__(f"Host with ID '{host_id}' does not exist")


class AuthResolutionError(RemoteCommandError):
    """Не удалось подготовить учетные данные"""
    pass


class UnsupportedAuthKindError(AuthResolutionError):
    """Неизвестный тип аутентификации"""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unsupported authentication type: {kind}")


class SSHConnectionError(RemoteCommandError):
    """Исключение для ошибок SSH подключения"""
    pass


class SessionOpenError(RemoteCommandError):
    """Не удалось открыть сессию на установленном соединении"""
    pass


class SSHCommandError(RemoteCommandError):
    """Команда завершилась с ошибкой; output содержит вывод до сбоя"""

    def __init__(self, message: str, output: str = "", exit_code: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code


class CommandCancelledError(RemoteCommandError):
    """Контекст хода завершился раньше команды"""

    def __init__(self, cause: Optional[TurnContextError]):
        self.cause = cause
        super().__init__(str(cause) if cause is not None else "context canceled")


# Порядок важен только для скорости: пробуем самые распространенные форматы первыми
_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.RSAKey, paramiko.ECDSAKey)


def load_private_key(path: str) -> paramiko.PKey:
    """
    Чтение и разбор приватного ключа

    Raises:
        AuthResolutionError: файл не читается или ключ не разобран
    """
    try:
        with open(os.path.expanduser(path), 'r', encoding='utf-8') as f:
            key_data = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise AuthResolutionError(f"Unable to read private key: {e}") from e

    last_error: Optional[Exception] = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(key_data))
        except (paramiko.SSHException, ValueError) as e:
            last_error = e

    raise AuthResolutionError(f"Unable to parse private key: {last_error}")


def resolve_credentials(secret: Secret, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Параметры аутентификации для paramiko.SSHClient.connect

    Raises:
        AuthResolutionError, UnsupportedAuthKindError
    """
    if secret.type == "password":
        password = secret.resolve_password(environ)
        if password is None:
            raise AuthResolutionError(
                f"Password for secret '{secret.id}' is not set (env {secret.password_env_key!r} is empty)"
            )
        return {'username': secret.user, 'password': password}

    if secret.type == "keyfile":
        return {'username': secret.user, 'pkey': load_private_key(secret.filepath)}

    raise UnsupportedAuthKindError(secret.type)


def _discard_result(future: asyncio.Future):
    """Результат брошенной команды никому не нужен, но должен быть прочитан"""
    if not future.cancelled():
        future.exception()


class SSHConnector:
    """SSH Connector для одного вызова команды на одном хосте"""

    READ_CHUNK = 32768

    def __init__(self, host: Host, credentials: Dict[str, Any], config: Optional[SSHConfig] = None):
        self.host = host
        self.credentials = credentials
        self.config = config or SSHConfig()
        self.client: Optional[paramiko.SSHClient] = None
        self.channel: Optional[paramiko.Channel] = None
        self.connected = False

        self.logger = StructuredLogger("SSHConnector", host=host.id)

    def _create_client(self) -> paramiko.SSHClient:
        """SSH клиент с политикой проверки ключей хоста"""
        client = paramiko.SSHClient()
        if self.config.insecure_ignore_host_keys:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            client.load_system_host_keys()
            if self.config.known_hosts_path:
                client.load_host_keys(os.path.expanduser(self.config.known_hosts_path))
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        return client

    def _prepare_connection_params(self) -> Dict[str, Any]:
        """Подготовка параметров подключения"""
        timeout = self.config.connect_timeout
        return {
            'hostname': self.host.host,
            'port': self.host.port,
            'timeout': timeout,
            'banner_timeout': timeout,
            'auth_timeout': timeout,
            'allow_agent': False,
            'look_for_keys': False,
            **self.credentials
        }

    async def connect(self):
        """Устанавливает SSH соединение"""
        loop = asyncio.get_running_loop()

        if self.config.insecure_ignore_host_keys:
            self.logger.warning(
                "Проверка ключа хоста отключена (ssh.insecure_ignore_host_keys)",
                address=self.host.address
            )

        try:
            self.client = self._create_client()
            await loop.run_in_executor(
                None,
                functools.partial(self.client.connect, **self._prepare_connection_params())
            )
        except Exception as e:
            self.logger.log_ssh_connection(self.host.host, self.host.port, False, str(e))
            raise SSHConnectionError(f"Failed to dial: {e}") from e

        self.connected = True
        self.logger.log_ssh_connection(self.host.host, self.host.port, True)

    async def open_session(self) -> paramiko.Channel:
        """Открывает одну сессию для выполнения команды"""
        if not self.connected or self.client is None:
            raise SessionOpenError("Failed to create session: not connected")

        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise SessionOpenError("Failed to create session: transport is not active")

        loop = asyncio.get_running_loop()
        try:
            self.channel = await loop.run_in_executor(
                None,
                functools.partial(transport.open_session, timeout=self.config.connect_timeout)
            )
        except Exception as e:
            raise SessionOpenError(f"Failed to create session: {e}") from e
        return self.channel

    def disconnect(self):
        """Закрывает сессию и соединение"""
        if self.channel is not None:
            try:
                self.channel.close()
            except Exception as e:
                self.logger.debug("Ошибка при закрытии сессии", error=str(e))
            self.channel = None

        if self.client is not None:
            try:
                self.client.close()
            except Exception as e:
                self.logger.debug("Ошибка при закрытии SSH соединения", error=str(e))
            self.client = None

        if self.connected:
            self.connected = False
            self.logger.debug("SSH соединение закрыто")

    @asynccontextmanager
    async def connection_context(self):
        """Контекстный менеджер: соединение и сессия закрываются на любом пути"""
        try:
            await self.connect()
            await self.open_session()
            yield self
        finally:
            self.disconnect()

    async def execute_command(self, command: str, ctx: TurnContext) -> CommandResult:
        """
        Выполняет команду на хосте

        Returns:
            CommandResult с объединенным выводом stdout и stderr

        Raises:
            SSHConnectionError, SessionOpenError, SSHCommandError, CommandCancelledError
        """
        if ctx.done():
            raise CommandCancelledError(ctx.error)

        start_time = time.monotonic()
        async with self.connection_context():
            self.logger.info("Выполнение команды", command=command)
            exit_code, output, error = await self._race_command(command, ctx)

        duration = time.monotonic() - start_time

        if error is not None:
            raise SSHCommandError(f"Failed to run command: {error}. Output: {output}", output=output)

        if exit_code != 0:
            self.logger.warning("Команда завершилась с ошибкой", command=command, exit_code=exit_code)
            raise SSHCommandError(
                f"Failed to run command: Process exited with status {exit_code}. Output: {output}",
                output=output,
                exit_code=exit_code
            )

        self.logger.info("Команда выполнена успешно", command=command, duration=round(duration, 3))
        return CommandResult(
            command=command,
            host_id=self.host.id,
            exit_code=exit_code,
            output=output,
            duration=duration
        )

    async def _race_command(self, command: str, ctx: TurnContext) -> Tuple[Optional[int], str, Optional[Exception]]:
        """Гонка между завершением команды и отменой контекста"""
        loop = asyncio.get_running_loop()
        channel = self.channel

        command_future = loop.run_in_executor(None, self._do_execute_command, channel, command)
        command_future.add_done_callback(_discard_result)
        cancel_waiter = asyncio.ensure_future(ctx.wait())

        try:
            done, _ = await asyncio.wait(
                {command_future, cancel_waiter},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not cancel_waiter.done():
                cancel_waiter.cancel()

        if command_future in done:
            return command_future.result()

        # Контекст завершился первым: просим удаленную сторону прервать команду
        # и больше не ждем рабочий поток. Сессия закроется в connection_context.
        self.logger.warning("Команда прервана по контексту", command=command, reason=str(ctx.error))
        self._send_interrupt(channel)
        raise CommandCancelledError(ctx.error)

    def _do_execute_command(self, channel: paramiko.Channel, command: str) -> Tuple[Optional[int], str, Optional[Exception]]:
        """Синхронное выполнение команды (выполняется в executor)"""
        chunks = []
        try:
            channel.set_combine_stderr(True)
            channel.exec_command(command)
            while True:
                data = channel.recv(self.READ_CHUNK)
                if not data:
                    break
                chunks.append(data)
            exit_code = channel.recv_exit_status()
            return exit_code, self._decode(chunks), None
        except Exception as e:
            return None, self._decode(chunks), e

    def _send_interrupt(self, channel: Optional[paramiko.Channel], signal_name: str = "INT"):
        """
        Запрос "signal" (RFC 4254, 6.9). Сервер может его проигнорировать,
        поэтому ошибки отправки только логируются.
        """
        if channel is None:
            return
        try:
            m = Message()
            m.add_byte(cMSG_CHANNEL_REQUEST)
            m.add_int(channel.remote_chanid)
            m.add_string("signal")
            m.add_boolean(False)
            m.add_string(signal_name)
            # У paramiko нет публичного API для запроса "signal"
            channel.transport._send_user_message(m)
        except Exception as e:
            self.logger.debug("Не удалось отправить сигнал", signal=signal_name, error=str(e))

    @staticmethod
    def _decode(chunks) -> str:
        return b"".join(chunks).decode('utf-8', errors='replace')

    def __str__(self) -> str:
        status = "Connected" if self.connected else "Disconnected"
        return f"SSHConnector({self.host.address}, {status})"

    def __repr__(self) -> str:
        return f"SSHConnector(host='{self.host.id}', address='{self.host.address}', connected={self.connected})"
