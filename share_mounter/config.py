from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ShareDefinition
from .utils.host_config import get_hostname_settings_file


class ShareCredential(BaseModel):
    """Secret material behind a credential_ref."""

    username: str
    password: SecretStr = SecretStr("")


class Settings(BaseSettings):
    # Mount locations
    mount_base_directory: str = "~/Networkshares"
    system_mount_root: str = "/Volumes"  # OS owned namespace, the OS picks the final path component

    # Shares (JSON lists in the env file)
    managed_shares: List[ShareDefinition] = []  # Centrally pushed, not removable by the user
    user_shares: List[ShareDefinition] = []
    share_credentials: Dict[str, ShareCredential] = {}  # credential_ref -> credential

    # Timing
    mount_timeout_seconds: float = 30.0
    unmount_timeout_seconds: float = 15.0
    reachability_timeout_seconds: float = 5.0
    reachability_check_tcp: bool = True  # Also open a TCP connection to the share port
    network_check_interval_seconds: float = 10
    mount_trigger_interval_seconds: float = 300  # Periodic automatic reconcile (5 minutes)

    # Cleanup of the base directory
    cleanup_location_directory: bool = False
    files_to_delete: List[str] = [".DS_Store", ".autodiskmounted"]

    # Triggers
    enable_signal_triggers: bool = True  # SIGUSR1 = mount all, SIGUSR2 = unmount all

    # Logging
    log_level: str = "INFO"
    log_file_path: str = "logs/share_mounter.log"
    log_retention_days: int = 30

    # HTTP control surface
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    model_config = SettingsConfigDict(env_file=get_hostname_settings_file())

    @property
    def log_directory(self) -> Path:
        return Path(self.log_file_path).parent

    @property
    def base_directory(self) -> str:
        """Expanded, absolute base mount directory."""
        return str(Path(self.mount_base_directory).expanduser().absolute())

    @property
    def config_file_info(self) -> dict:
        """Return information about which configuration file is being used."""
        from .utils.host_config import get_hostname, list_all_settings_files

        return {
            "hostname": get_hostname(),
            "active_config_file": get_hostname_settings_file(),
            "all_available_configs": list_all_settings_files(),
        }
