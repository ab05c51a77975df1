"""
config.py - Cấu hình tập trung cho SSI Core

Values load from the environment (prefix SSI_) or from a .env file.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .credential_codec import CredentialType


DEFAULT_TRUST_WEIGHTS: Dict[str, int] = {
    CredentialType.COMMUNITY_VOUCH.value: 2,
    CredentialType.REFUGEE_REGISTRATION.value: 3,
    CredentialType.SCHOOL_ENROLLMENT.value: 5,
    CredentialType.HEALTH_RECORD.value: 5,
    CredentialType.VACCINATION_RECORD.value: 5,
    CredentialType.BIRTH_CERTIFICATE.value: 10,
    CredentialType.NATIONAL_ID.value: 25,
    CredentialType.PASSPORT.value: 30,
    CredentialType.DRIVER_LICENSE.value: 20,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SSI_", extra="ignore")

    # Anchor queue policy
    BATCH_THRESHOLD: int = 5
    FLUSH_INTERVAL: float = 60.0        # seconds between timer-driven flushes
    CONFIRMATION_TIMEOUT: float = 120.0
    SUBMIT_TIMEOUT: float = 30.0
    ANCHOR_CACHE_SIZE: int = 10000     # locally remembered AnchorRecords

    # Trust score policy
    TRUST_WEIGHTS: Dict[str, int] = dict(DEFAULT_TRUST_WEIGHTS)
    AGE_BONUS_PER_MONTH: float = 0.5
    MAX_AGE_BONUS: float = 10.0
    DIVERSITY_BONUS: float = 2.0

    # Issuer
    ISSUER_NAME: str = "SSI Issuer"
    ISSUER_IDENTITY_FILE: Path = Path(".issuer-identity.json")

    # Ledger (empty RPC_URL = in-memory ledger)
    RPC_URL: str = ""
    CONTRACT_ADDRESS: str = ""
    PRIVATE_KEY: str = ""
    CHAIN_ID: Optional[int] = None
    EXPLORER_URL: str = ""

    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic root handler for the ssi_core loggers"""
    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
