import os
from urllib.parse import quote_plus
from typing import Optional

from dotenv import load_dotenv, dotenv_values

_ENV_LOADED = False
_DOTENV_VALUES = {}

DEFAULT_SQLITE_NAME = "waveapp.db"


def load_env_once(dotenv_path: Optional[str] = None) -> None:
    """
    Load .env sekali saja dan simpan nilai mentah dari file .env di _DOTENV_VALUES.
    """
    global _ENV_LOADED, _DOTENV_VALUES
    if _ENV_LOADED:
        return
    path = dotenv_path or os.path.join(os.getcwd(), ".env")
    load_dotenv(path)
    _DOTENV_VALUES = dotenv_values(path)
    _ENV_LOADED = True


def _first_nonempty(*vals: Optional[str]) -> Optional[str]:
    for v in vals:
        if v:
            v = v.strip()
            if v:
                return v
    return None


def _get_value(key: str, default: Optional[str] = None) -> Optional[str]:
    # Prioritas: ENV -> .env mentah
    return os.environ.get(key) or _DOTENV_VALUES.get(key) or default


def _normalize_pg(url: Optional[str]) -> Optional[str]:
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _mysql_from_parts() -> Optional[str]:
    """
    Rakit DSN MySQL dari MYSQL_USER, MYSQL_PASSWORD, MYSQL_HOST, MYSQL_PORT,
    MYSQL_DATABASE dan MYSQL_CHARSET (ENV atau .env).
    """
    user = _first_nonempty(_get_value("MYSQL_USER"), _get_value("MYSQL_USERNAME"))
    pwd = _get_value("MYSQL_PASSWORD", "")
    host = _get_value("MYSQL_HOST", "127.0.0.1")
    port = _get_value("MYSQL_PORT", "3306")
    db = _first_nonempty(_get_value("MYSQL_DB"), _get_value("MYSQL_DATABASE"))
    charset = _get_value("MYSQL_CHARSET", "utf8mb4")

    if not (user and db):
        return None

    pwd_q = quote_plus(pwd or "")
    return f"mysql+pymysql://{user}:{pwd_q}@{host}:{port}/{db}?charset={charset}"


def resolve_database_uri() -> str:
    """
    Prioritas final:
      1) ENV SQLALCHEMY_DATABASE_URI
      2) .env SQLALCHEMY_DATABASE_URI
      3) .env DATABASE_URL
      4) ENV DATABASE_URL
      5) Rakit dari MYSQL_* (ENV/.env)
      6) Fallback sqlite:///instance/waveapp.db
    """
    url = _first_nonempty(
        os.environ.get("SQLALCHEMY_DATABASE_URI"),
        _DOTENV_VALUES.get("SQLALCHEMY_DATABASE_URI"),
    )
    if url:
        return _normalize_pg(url)

    url = _first_nonempty(_DOTENV_VALUES.get("DATABASE_URL"), os.environ.get("DATABASE_URL"))
    if url:
        return _normalize_pg(url)

    url = _mysql_from_parts()
    if url:
        return url

    inst = os.path.abspath(os.path.join(os.getcwd(), "instance"))
    os.makedirs(inst, exist_ok=True)
    return f"sqlite:///{os.path.join(inst, DEFAULT_SQLITE_NAME)}"


def resolve_secret_key() -> str:
    return _first_nonempty(os.environ.get("SECRET_KEY"),
                           _DOTENV_VALUES.get("SECRET_KEY"),
                           "dev-secret-key")  # jangan pakai di production


def resolve_log_level() -> str:
    level = _first_nonempty(_get_value("LOG_LEVEL"), "INFO")
    return level.upper()
