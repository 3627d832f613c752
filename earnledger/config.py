import logging
import os
from typing import Optional

from pydantic import BaseModel, Field

from .security import hash_credential

DEFAULT_SESSION_TTL = 8 * 60 * 60

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    snapshot_path: Optional[str] = None
    admin_username: str = "admin"
    admin_password_hash: Optional[str] = None
    log_level: str = "INFO"
    session_ttl_seconds: int = Field(default=DEFAULT_SESSION_TTL, gt=0)
    root_path: str = ""

    @classmethod
    def from_env(cls) -> "EngineConfig":
        password = os.getenv("EARNLEDGER_ADMIN_PASSWORD")
        if not password:
            logger.warning("EARNLEDGER_ADMIN_PASSWORD not set, administrative commands are disabled")
        return cls(
            snapshot_path=os.getenv("EARNLEDGER_SNAPSHOT_PATH") or None,
            admin_username=os.getenv("EARNLEDGER_ADMIN_USERNAME", "admin"),
            admin_password_hash=hash_credential(password) if password else None,
            log_level=os.getenv("EARNLEDGER_LOG_LEVEL", "INFO").upper(),
            session_ttl_seconds=int(os.getenv("EARNLEDGER_SESSION_TTL", DEFAULT_SESSION_TTL)),
            root_path=os.getenv("EARNLEDGER_ROOT_PATH", ""),
        )

    @classmethod
    def with_admin(cls, username: str, password: str, **kwargs) -> "EngineConfig":
        return cls(admin_username=username, admin_password_hash=hash_credential(password), **kwargs)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
