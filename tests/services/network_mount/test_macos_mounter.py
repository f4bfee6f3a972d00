from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr

from share_mounter.config import ShareCredential
from share_mounter.models import MountOptions
from share_mounter.services.credential_store import SettingsCredentialStore
from share_mounter.services.network_mount.macos_mounter import MacOSMounter, quote_string

SECRET = 's3cr"et\\'


@pytest.fixture
def mounter():
    store = SettingsCredentialStore({"fin": ShareCredential(username="alice", password=SecretStr(SECRET))})
    mounter = MacOSMounter(store)
    mounter.run_command = AsyncMock(return_value=(0, "", ""))
    return mounter


def argv_of(call):
    return call.args[0]


def test_quote_string_escapes_quotes_and_backslashes():
    assert quote_string('a"b\\c') == '"a\\"b\\\\c"'


@pytest.mark.asyncio
async def test_password_never_on_command_line_when_mounting_at_dir(mounter):
    code = await mounter.mount("smb://srv/finance", "/tmp/x", "fin", MountOptions(mount_at_dir=True))

    assert code == 0
    keychain_call, mount_call = mounter.run_command.await_args_list
    assert argv_of(keychain_call) == ["security", "-i"]
    assert "s3cr" in keychain_call.kwargs["input"]
    assert argv_of(mount_call) == ["mount", "-t", "smbfs", "-o", "nodev,nosuid,soft", "//alice@srv/finance", "/tmp/x"]
    for call in mounter.run_command.await_args_list:
        assert not any("s3cr" in arg for arg in argv_of(call))


@pytest.mark.asyncio
async def test_mount_volume_script_sent_on_stdin(mounter):
    await mounter.mount("smb://srv/finance", "/Volumes", "fin", MountOptions(mount_at_dir=False))

    call = mounter.run_command.await_args
    assert argv_of(call) == ["osascript", "-"]
    assert call.kwargs["input"] == (
        'mount volume "smb://srv/finance" as user name "alice" with password "s3cr\\"et\\\\"\n'
    )


@pytest.mark.asyncio
async def test_resource_uri_cannot_break_out_of_applescript_string(mounter):
    uri = 'smb://srv/a" & (do shell script "touch /tmp/injected") & "'

    await mounter.mount(uri, "/Volumes", None, MountOptions(mount_at_dir=False))

    script = mounter.run_command.await_args.kwargs["input"]
    assert script == 'mount volume "smb://srv/a\\" & (do shell script \\"touch /tmp/injected\\") & \\""\n'


@pytest.mark.asyncio
async def test_guest_mount_skips_keychain(mounter):
    await mounter.mount("smb://srv/public", "/tmp/x", "fin", MountOptions(guest=True))

    call = mounter.run_command.await_args
    assert mounter.run_command.await_count == 1
    assert "//guest:@srv/public" in argv_of(call)
