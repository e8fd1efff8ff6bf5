# congregation_core/config.py
from dataclasses import dataclass


@dataclass(frozen=True)
class GroupRules:
    """Soft composition rules checked by group validation"""
    min_members: int = 5
    max_members: int = 20
    elder_privilege: str = "Elder"
    ministerial_servant_privilege: str = "Ministerial Servant"


@dataclass(frozen=True)
class StoreConfig:
    store_path: str = "assets/store.json"
    export_path: str = "assets/output/congregation.xlsx"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class AppConfig:
    # "current month" and audit timestamps are taken in this zone
    timezone_name: str = "UTC"

    # assignment history listing
    history_limit: int = 50

    rules: GroupRules = GroupRules()
    store: StoreConfig = StoreConfig()
    logging: LoggingConfig = LoggingConfig()


DEFAULT_CONFIG = AppConfig()
