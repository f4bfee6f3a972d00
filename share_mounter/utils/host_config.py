"""
Host-specific configuration files.

A fleet of machines can share one settings.env while each host keeps its own
copy ({hostname}-settings.env) for local shares and credentials.
SHARE_MOUNTER_SETTINGS_FILE overrides the lookup entirely.
"""

import logging
import os
import socket
from pathlib import Path
from typing import List

BASE_SETTINGS_FILE = "settings.env"
SETTINGS_FILE_ENV_VAR = "SHARE_MOUNTER_SETTINGS_FILE"

HOST_HEADER = """# Host-specific configuration for: {hostname}
# Auto-generated from {base}; edit freely for this machine only.
# ==========================================================

"""


def get_hostname() -> str:
    """Current hostname without domain."""
    return socket.gethostname().split(".")[0]


def get_hostname_settings_file() -> str:
    """
    Settings file to load for this host.

    1. SHARE_MOUNTER_SETTINGS_FILE if set
    2. {hostname}-settings.env if it exists
    3. otherwise {hostname}-settings.env is created from settings.env
    4. settings.env when there is nothing to copy from
    """
    override = os.environ.get(SETTINGS_FILE_ENV_VAR)
    if override:
        return override

    try:
        hostname = get_hostname()
        base_settings = Path(BASE_SETTINGS_FILE)
        host_settings = Path(f"{hostname}-settings.env")

        if host_settings.exists():
            logging.debug(f"Using existing host-specific configuration: {host_settings}")
            return str(host_settings)

        if not base_settings.exists():
            return BASE_SETTINGS_FILE

        content = base_settings.read_text(encoding="utf-8")
        host_settings.write_text(
            HOST_HEADER.format(hostname=hostname, base=BASE_SETTINGS_FILE) + content,
            encoding="utf-8",
        )
        logging.info(f"Created host-specific configuration: {host_settings}")
        return str(host_settings)

    except OSError as e:
        logging.error(f"Error handling host-specific settings: {e}")
        return BASE_SETTINGS_FILE


def list_all_settings_files() -> List[str]:
    """Base settings file plus every host-specific one in the working directory."""
    settings_files = []
    if Path(BASE_SETTINGS_FILE).exists():
        settings_files.append(BASE_SETTINGS_FILE)
    settings_files.extend(str(p) for p in sorted(Path(".").glob("*-settings.env")))
    return settings_files
