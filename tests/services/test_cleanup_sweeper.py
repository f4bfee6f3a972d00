import os

import pytest

from share_mounter.models import MountEntry, MountErrorKind, MountStatus, Share, UnmountResult
from share_mounter.services.cleanup_sweeper import CleanupSweeper
from share_mounter.services.mount_point_resolver import MountPointResolver


def make_sweeper(settings, provider) -> CleanupSweeper:
    os.makedirs(settings.base_directory, exist_ok=True)
    return CleanupSweeper(settings, provider, MountPointResolver(settings, provider))


def touch(path: str) -> None:
    with open(path, "w") as f:
        f.write("x")


@pytest.mark.asyncio
async def test_missing_base_directory_is_a_no_op(settings, fake_provider, tmp_path):
    sweeper = CleanupSweeper(settings, fake_provider, MountPointResolver(settings, fake_provider))
    report = await sweeper.sweep(str(tmp_path / "nowhere"), [])
    assert report.removed_directories == []
    assert not report.skipped


@pytest.mark.asyncio
async def test_junk_and_empty_directories_removed_when_enabled(settings, fake_provider):
    settings.cleanup_location_directory = True
    sweeper = make_sweeper(settings, fake_provider)
    base = settings.base_directory

    leftover = os.path.join(base, "finance")
    os.makedirs(leftover)
    touch(os.path.join(leftover, ".DS_Store"))
    touch(os.path.join(base, ".autodiskmounted"))

    keep = os.path.join(base, "projects")
    os.makedirs(keep)
    touch(os.path.join(keep, "plan.txt"))

    report = await sweeper.sweep(base, [])

    assert not os.path.exists(leftover)
    assert not os.path.exists(os.path.join(base, ".autodiskmounted"))
    assert os.path.exists(os.path.join(keep, "plan.txt"))
    assert leftover in report.removed_directories
    assert os.path.isdir(base)

    # a second pass finds nothing left to do
    again = await sweeper.sweep(base, [])
    assert again.removed_directories == [] and again.removed_files == []


@pytest.mark.asyncio
async def test_nothing_removed_when_disabled(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    leftover = os.path.join(settings.base_directory, "finance")
    os.makedirs(leftover)

    await sweeper.sweep(settings.base_directory, [])
    assert os.path.isdir(leftover)


@pytest.mark.asyncio
async def test_claimed_paths_are_left_alone(settings, fake_provider):
    settings.cleanup_location_directory = True
    sweeper = make_sweeper(settings, fake_provider)
    busy = os.path.join(settings.base_directory, "finance")
    os.makedirs(busy)

    await sweeper.sweep(settings.base_directory, [], busy_paths={busy})
    assert os.path.isdir(busy)


@pytest.mark.asyncio
async def test_system_root_is_never_cleaned(settings, fake_provider):
    settings.cleanup_location_directory = True
    sweeper = make_sweeper(settings, fake_provider)
    root = settings.system_mount_root
    stale = os.path.join(root, "finance")
    os.makedirs(stale)

    report = await sweeper.sweep(root, [])
    assert os.path.isdir(stale)
    assert report.removed_directories == []


@pytest.mark.asyncio
async def test_skips_base_directory_inside_network_mount(settings, fake_provider):
    settings.cleanup_location_directory = True
    sweeper = make_sweeper(settings, fake_provider)
    parent = os.path.dirname(settings.base_directory)
    fake_provider.mounts.append(MountEntry(mount_point=parent, source="//nas/home", fs_type="smbfs"))
    os.makedirs(os.path.join(settings.base_directory, "finance"))

    report = await sweeper.sweep(settings.base_directory, [])
    assert report.skipped
    assert os.path.isdir(os.path.join(settings.base_directory, "finance"))


@pytest.mark.asyncio
async def test_stray_duplicate_mount_is_unmounted(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    base = settings.base_directory
    finance = Share(
        resource_uri="smb://srv/finance",
        status=MountStatus.MOUNTED,
        actual_mount_point=os.path.join(base, "finance"),
    )
    release = Share(resource_uri="smb://srv/release-2")

    for name in ("finance", "finance-1", "finance-12", "release-2", "other-1"):
        os.makedirs(os.path.join(base, name))
        fake_provider.mounts.append(
            MountEntry(mount_point=os.path.join(base, name), source=f"//srv/{name}", fs_type="smbfs")
        )

    report = await sweeper.sweep(base, [finance, release])

    assert sorted(report.unmounted_duplicates) == [
        os.path.join(base, "finance-1"),
        os.path.join(base, "finance-12"),
    ]
    # registered names and unknown prefixes stay mounted
    assert os.path.join(base, "release-2") not in fake_provider.unmount_calls
    assert os.path.join(base, "other-1") not in fake_provider.unmount_calls
    assert os.path.join(base, "finance") not in fake_provider.unmount_calls


@pytest.mark.asyncio
async def test_duplicate_that_is_a_share_mount_point_is_kept(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    base = settings.base_directory
    path = os.path.join(base, "finance-1")
    share = Share(resource_uri="smb://srv/finance", status=MountStatus.MOUNTED, actual_mount_point=path)
    os.makedirs(path)
    fake_provider.mounts.append(MountEntry(mount_point=path, source="//srv/finance", fs_type="smbfs"))

    report = await sweeper.sweep(base, [share])
    assert report.unmounted_duplicates == []


@pytest.mark.asyncio
async def test_duplicate_suffix_matching_ignores_case(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    base = settings.base_directory
    finance = Share(
        resource_uri="smb://srv/finance",
        status=MountStatus.MOUNTED,
        actual_mount_point=os.path.join(base, "finance"),
    )
    for name in ("finance", "Finance-1"):
        path = os.path.join(base, name)
        os.makedirs(path)
        fake_provider.mounts.append(MountEntry(mount_point=path, source=f"//srv/{name}", fs_type="smbfs"))

    report = await sweeper.sweep(base, [finance])

    assert report.unmounted_duplicates == [os.path.join(base, "Finance-1")]


@pytest.mark.asyncio
async def test_failed_unmount_is_logged_and_skipped(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    base = settings.base_directory
    path = os.path.join(base, "finance-1")
    os.makedirs(path)
    fake_provider.mounts.append(MountEntry(mount_point=path, source="//srv/finance", fs_type="smbfs"))
    fake_provider.unmount_results[path] = UnmountResult.failure(MountErrorKind.UNMOUNT_FAILED)

    report = await sweeper.sweep(base, [Share(resource_uri="smb://srv/finance")])
    assert report.unmounted_duplicates == []
    assert fake_provider.unmount_calls == [path]


@pytest.mark.asyncio
async def test_remove_mount_directory_refuses_system_root(settings, fake_provider):
    sweeper = make_sweeper(settings, fake_provider)
    path = os.path.join(settings.system_mount_root, "finance")
    os.makedirs(path)

    assert await sweeper.remove_mount_directory(path) is False
    assert os.path.isdir(path)
