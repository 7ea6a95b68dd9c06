"""
Коннекторы к удаленным хостам
"""
from .ssh_connector import (
    SSHConnector,
    RemoteCommandError,
    HostNotFoundError,
    AuthResolutionError,
    UnsupportedAuthKindError,
    SSHConnectionError,
    SessionOpenError,
    SSHCommandError,
    CommandCancelledError,
    load_private_key,
    resolve_credentials
)

__all__ = [
    'SSHConnector',
    'RemoteCommandError',
    'HostNotFoundError',
    'AuthResolutionError',
    'UnsupportedAuthKindError',
    'SSHConnectionError',
    'SessionOpenError',
    'SSHCommandError',
    'CommandCancelledError',
    'load_private_key',
    'resolve_credentials'
]
