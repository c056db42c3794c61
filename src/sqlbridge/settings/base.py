from typing import Any, Dict, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class DatabaseSettings(BaseSettings):
    """Connection and pool settings for a MySQL database.

    Values are read from ``MYSQL_*`` environment variables (or a ``.env``
    file) unless passed explicitly. Two settings objects with the same
    ``pool_key`` share a connection pool.
    """

    model_config = SettingsConfigDict(
        env_prefix="MYSQL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(
        default="localhost",
        description="Database server hostname"
    )
    port: int = Field(
        default=3306,
        ge=1,
        le=65535,
        description="Database server port"
    )
    user: Optional[str] = Field(
        default=None,
        description="Database user"
    )
    password: Optional[SecretStr] = Field(
        default=None,
        description="Database password"
    )
    database: Optional[str] = Field(
        default=None,
        description="Default schema used when a model declares no dbname"
    )
    driver: str = Field(
        default="mysql+aiomysql",
        description="SQLAlchemy async driver name"
    )

    connection_limit: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of pooled connections"
    )
    pool_timeout: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Seconds to wait for a free pooled connection"
    )
    max_idle_timeout: int = Field(
        default=300,
        ge=1,
        description="Seconds of inactivity after which a pooled connection is destroyed"
    )
    idle_check_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between idle connection sweeps"
    )
    max_connection_retries: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Retries when the server reports too many connections"
    )
    connection_retry_delay: float = Field(
        default=0.5,
        ge=0,
        le=60.0,
        description="Fixed delay in seconds before a too-many-connections retry"
    )
    default_limit: int = Field(
        default=500,
        ge=1,
        description="Row limit applied to get() when the caller sets none"
    )
    echo: bool = Field(
        default=False,
        description="Log every statement through SQLAlchemy"
    )

    @field_validator("host", "driver")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @property
    def pool_key(self) -> tuple:
        """Identity of the pool these settings map to."""
        return (self.driver, self.host, self.port, self.user, self.database, self.connection_limit)

    def build_url(self) -> URL:
        """Build the SQLAlchemy connection URL."""
        return URL.create(
            drivername=self.driver,
            username=self.user,
            password=self.password.get_secret_value() if self.password else None,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def get_connection_info(self) -> Dict[str, Any]:
        """Connection details safe for logging."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "connection_limit": self.connection_limit,
        }
