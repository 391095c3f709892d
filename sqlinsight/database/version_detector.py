"""
SQL Server version detection
"""

from dataclasses import dataclass

from sqlinsight.core.constants import SQL_SERVER_VERSIONS
from sqlinsight.core.exceptions import DatabaseError
from sqlinsight.core.logger import get_logger

logger = get_logger('database.version')


@dataclass(frozen=True)
class SQLServerVersion:
    """SQL Server version information"""

    major_version: int = 0
    product_version: str = ""
    product_level: str = ""  # RTM, SP1, CU12, ...
    edition: str = ""
    engine_edition: int = 0  # 1=Personal, 2=Standard, 3=Enterprise, 4=Express, 5=Azure DB

    full_version_string: str = ""

    @property
    def friendly_name(self) -> str:
        """Get friendly version name like 'SQL Server 2019'"""
        if not self.major_version:
            return "SQL Server (unknown version)"
        return SQL_SERVER_VERSIONS.get(self.major_version, f"SQL Server (v{self.major_version})")

    @property
    def is_azure(self) -> bool:
        """Check if this is an Azure SQL instance"""
        return self.engine_edition in (5, 6, 8)

    def get_version_string(self) -> str:
        """Get formatted version string"""
        parts = [self.friendly_name]

        if self.product_version:
            parts.append(self.product_version)

        if self.product_level:
            parts.append(f"({self.product_level})")

        if self.is_azure:
            parts.append("- Azure")
        elif self.edition:
            parts.append(f"- {self.edition}")

        return " ".join(parts)

    def to_prompt_text(self) -> str:
        """Version block embedded in tuning prompts"""
        if not self.full_version_string:
            return self.get_version_string()
        return f"{self.get_version_string()}\n{self.full_version_string.strip()}"


class VersionDetector:
    """
    Detects the SQL Server version behind a connection
    """

    VERSION_QUERY = """
    SELECT
        CAST(SERVERPROPERTY('ProductMajorVersion') AS INT) AS MajorVersion,
        CAST(SERVERPROPERTY('ProductVersion') AS NVARCHAR(128)) AS ProductVersion,
        CAST(SERVERPROPERTY('ProductLevel') AS NVARCHAR(128)) AS ProductLevel,
        CAST(SERVERPROPERTY('Edition') AS NVARCHAR(128)) AS Edition,
        CAST(SERVERPROPERTY('EngineEdition') AS INT) AS EngineEdition,
        CAST(@@VERSION AS NVARCHAR(4000)) AS FullVersion
    """

    @classmethod
    def detect(cls, connection) -> SQLServerVersion:
        """
        Detect SQL Server version from a database connection

        Version is informational only: failures are logged and an empty
        SQLServerVersion is returned.

        Args:
            connection: DatabaseConnection instance
        """
        try:
            results = connection.execute_query(
                cls.VERSION_QUERY, timeout=connection.profile.probe_timeout
            )
        except DatabaseError as e:
            logger.warning(f"Failed to detect SQL Server version: {e}")
            return SQLServerVersion()

        if not results:
            logger.warning("Could not detect SQL Server version")
            return SQLServerVersion()

        row = results[0]
        version = SQLServerVersion(
            major_version=int(row.get('MajorVersion') or 0),
            product_version=str(row.get('ProductVersion') or ''),
            product_level=str(row.get('ProductLevel') or ''),
            edition=str(row.get('Edition') or ''),
            engine_edition=int(row.get('EngineEdition') or 0),
            full_version_string=str(row.get('FullVersion') or ''),
        )

        logger.info(f"Detected: {version.get_version_string()}")
        return version
