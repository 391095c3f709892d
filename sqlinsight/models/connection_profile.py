"""
Connection profile model for SQL Server connections
"""

from dataclasses import dataclass, replace
from typing import Optional

from sqlinsight.core.constants import (
    APP_NAME,
    AuthMethod,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_QUERY_TIMEOUT,
    DEFAULT_PLAN_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
)


@dataclass(frozen=True)
class ConnectionProfile:
    """
    SQL Server connection profile

    Contains everything needed to open a connection. Credentials arrive
    already resolved; nothing here is persisted.
    """

    server: str = ""
    port: int = 1433
    database: str = "master"

    auth_method: AuthMethod = AuthMethod.WINDOWS
    username: str = ""
    password: str = ""

    driver: Optional[str] = None  # e.g. "ODBC Driver 18 for SQL Server"
    encrypt: bool = True
    trust_server_certificate: bool = False
    connection_timeout: int = DEFAULT_CONNECTION_TIMEOUT
    query_timeout: int = DEFAULT_QUERY_TIMEOUT
    plan_timeout: int = DEFAULT_PLAN_TIMEOUT
    probe_timeout: int = DEFAULT_PROBE_TIMEOUT
    application_name: str = APP_NAME

    @classmethod
    def from_settings(cls, db_settings) -> 'ConnectionProfile':
        """Build a profile from DatabaseSettings"""
        return cls(
            server=db_settings.server,
            port=db_settings.port,
            database=db_settings.database,
            auth_method=db_settings.auth_method,
            username=db_settings.username,
            password=db_settings.password,
            driver=db_settings.driver,
            encrypt=db_settings.encrypt,
            trust_server_certificate=db_settings.trust_server_certificate,
            connection_timeout=db_settings.connection_timeout,
            query_timeout=db_settings.query_timeout,
            plan_timeout=db_settings.plan_timeout,
            probe_timeout=db_settings.probe_timeout,
        )

    def with_database(self, database: str) -> 'ConnectionProfile':
        """Same server and credentials, different initial database"""
        return replace(self, database=database)

    @property
    def server_value(self) -> str:
        server = self.server
        if "\\" in server:
            # Named instances resolve their port through SQL Browser
            return server if self.port == 1433 else f"{server},{self.port}"
        return f"{server},{self.port}"

    def build_connection_string(self, driver: str) -> str:
        """ODBC connection string including credentials"""
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={self.server_value}",
            f"DATABASE={self.database}",
            f"APP={{{self.application_name}}}",
            f"Connect Timeout={self.connection_timeout}",
        ]

        if self.auth_method == AuthMethod.SQL_SERVER:
            parts.append(f"UID={self.username}")
            parts.append(f"PWD={{{self.password.replace('}', '}}')}}}")
        elif self.auth_method == AuthMethod.WINDOWS:
            parts.append("Trusted_Connection=yes")

        if self.encrypt:
            parts.append("Encrypt=yes")

        if self.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")

        return ";".join(parts)

    @property
    def display_name(self) -> str:
        return f"{self.server}/{self.database}"
