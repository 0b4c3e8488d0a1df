import os
from dataclasses import dataclass
from typing import Dict, Optional

from excelview.errors import ConfigurationError

# Connection parameters for the table store, all required
REQUIRED_VARIABLES = {
    "api_key": "EXCELVIEW_API_KEY",
    "auth_domain": "EXCELVIEW_AUTH_DOMAIN",
    "project_id": "EXCELVIEW_PROJECT_ID",
    "app_id": "EXCELVIEW_APP_ID",
    "messaging_sender_id": "EXCELVIEW_MESSAGING_SENDER_ID",
}

DEFAULT_SETTLE_DELAY = 0.5
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    api_key: str
    auth_domain: str
    project_id: str
    app_id: str
    messaging_sender_id: str
    database_url: str
    settle_delay: float = DEFAULT_SETTLE_DELAY
    log_level: str = DEFAULT_LOG_LEVEL

    def client_config(self) -> Dict[str, str]:
        """Store configuration handed to the browser for the auth bootstrap"""
        return {
            "apiKey": self.api_key,
            "authDomain": self.auth_domain,
            "projectId": self.project_id,
            "appId": self.app_id,
            "messagingSenderId": self.messaging_sender_id,
        }


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build settings from the environment, failing if any connection parameter is missing"""
    if environ is None:
        environ = os.environ

    values = {}
    missing = []
    for field_name, variable in REQUIRED_VARIABLES.items():
        value = (environ.get(variable) or "").strip()
        if not value:
            missing.append(variable)
        values[field_name] = value

    if missing:
        raise ConfigurationError(
            "Missing required environment variables: " + ", ".join(missing)
        )

    database_url = environ.get("EXCELVIEW_DATABASE_URL") or f"sqlite:///./{values['project_id']}.db"

    raw_delay = environ.get("EXCELVIEW_SETTLE_DELAY")
    try:
        settle_delay = float(raw_delay) if raw_delay else DEFAULT_SETTLE_DELAY
    except ValueError:
        raise ConfigurationError(f"EXCELVIEW_SETTLE_DELAY must be a number, got {raw_delay!r}")
    if settle_delay < 0:
        raise ConfigurationError("EXCELVIEW_SETTLE_DELAY must not be negative")

    return Settings(
        database_url=database_url,
        settle_delay=settle_delay,
        log_level=(environ.get("EXCELVIEW_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        **values,
    )
