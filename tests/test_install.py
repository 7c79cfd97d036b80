"""
Tests for InstallService and InstalledIndex.
"""

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from formulary.domain import ArtifactRef, Descriptor, TargetLayout
from formulary.errors import InstallError, MissingDependency
from formulary.infra.file_store import FileStore
from formulary.services.install_service import InstallService, InstalledIndex

CONFIG = {'dependencies': {'provided': [], 'check_path': False}}
REF = ArtifactRef(url="https://e.com/mxp.git", revision="abc123", pinned=False, selector="branch:main")


def make_descriptor(binaries=("mxp",), dependencies=()):
    return Descriptor.from_dict({
        "name": "mxp",
        "version": "0.4.0",
        "source": {"url": "https://e.com/mxp.git", "branch": "main"},
        "dependencies": list(dependencies),
        "binaries": list(binaries),
    })


@pytest.fixture
def layout(tmp_path):
    return TargetLayout.at(tmp_path / "prefix")


@pytest.fixture
def tree(tmp_path):
    """A fetched tree with a non-executable script and a nested one."""
    root = tmp_path / "src"
    (root / "scripts").mkdir(parents=True)
    (root / "mxp").write_text("#!/bin/sh\necho 'mxp v0.4.0'\n")
    (root / "mxp").chmod(0o644)
    (root / "scripts" / "helper.sh").write_text("#!/bin/sh\n")
    return root


def snapshot(path: Path):
    if not path.exists():
        return None
    return sorted(str(p.relative_to(path)) for p in path.rglob('*'))


class TestInstalledIndex:

    def test_provided_and_receipts(self, layout):
        FileStore(layout.receipts_path).set("git", {"version": "2"})
        index = InstalledIndex(layout, provided=["emacs"], check_path=False)
        assert index.is_satisfied("emacs")
        assert index.is_satisfied("git")
        assert index.missing(["emacs", "zsh", "awk"]) == ["awk", "zsh"]

    def test_path_lookup(self, layout):
        with patch('formulary.services.install_service.shutil.which', return_value="/usr/bin/emacs"):
            assert InstalledIndex(layout, check_path=True).is_satisfied("emacs")
            assert not InstalledIndex(layout, check_path=False).is_satisfied("emacs")

    def test_query_writes_nothing(self, layout):
        InstalledIndex(layout, check_path=False).missing(["emacs"])
        assert not layout.prefix.exists()


class TestInstall:

    def test_installs_executable(self, tree, layout):
        result = InstallService(CONFIG).install(tree, make_descriptor(), layout, artifact=REF)

        target = layout.binary_path("mxp")
        assert result.files == [str(target)]
        assert result.revision == "abc123"
        assert not result.pinned
        assert target.read_text() == (tree / "mxp").read_text()
        assert target.stat().st_mode & stat.S_IXUSR

        receipt = FileStore(layout.receipts_path).get("mxp")
        assert receipt["version"] == "0.4.0"
        assert receipt["files"] == [str(target)]
        assert receipt["source"]["selector"] == "branch:main"
        assert "installed_at" in receipt

    def test_renamed_target(self, tree, layout):
        descriptor = make_descriptor(binaries=[{"source": "scripts/helper.sh", "target": "mxp"}])
        InstallService(CONFIG).install(tree, descriptor, layout)
        assert layout.binary_path("mxp").read_text() == "#!/bin/sh\n"

    def test_missing_dependency_writes_nothing(self, tree, layout):
        before = snapshot(layout.prefix)
        with pytest.raises(MissingDependency) as exc_info:
            InstallService(CONFIG).install(tree, make_descriptor(dependencies=["emacs"]), layout)

        assert exc_info.value.missing == ["emacs"]
        assert exc_info.value.stage == "install"
        assert exc_info.value.exit_code == 74
        assert snapshot(layout.prefix) == before

    def test_provided_dependency(self, tree, layout):
        config = {'dependencies': {'provided': ['emacs'], 'check_path': False}}
        InstallService(config).install(tree, make_descriptor(dependencies=["emacs"]), layout)
        assert layout.binary_path("mxp").exists()

    def test_missing_source_file(self, tree, layout):
        with pytest.raises(InstallError, match="not found"):
            InstallService(CONFIG).install(tree, make_descriptor(binaries=["nope"]), layout)
        assert not layout.prefix.exists()

    def test_symlink_escaping_tree(self, tree, layout, tmp_path):
        outside = tmp_path / "secret"
        outside.write_text("x")
        (tree / "link").symlink_to(outside)
        with pytest.raises(InstallError, match="outside"):
            InstallService(CONFIG).install(tree, make_descriptor(binaries=["link"]), layout)

    def test_failed_move_rolls_back(self, tree, layout):
        (tree / "b").write_text("new b")
        layout.bin_dir.mkdir(parents=True)
        layout.binary_path("mxp").write_text("old mxp")

        real_replace = os.replace
        fail_at = layout.binary_path("b")

        def flaky_replace(src, dst):
            if Path(dst) == fail_at:
                raise OSError(28, "No space left on device")
            return real_replace(src, dst)

        with patch('formulary.services.install_service.os.replace', side_effect=flaky_replace):
            with pytest.raises(InstallError, match="No space left"):
                InstallService(CONFIG).install(tree, make_descriptor(binaries=["mxp", "b"]), layout)

        assert layout.binary_path("mxp").read_text() == "old mxp"
        assert not layout.binary_path("b").exists()
        assert not layout.receipts_path.exists()
        assert list(layout.staging_dir.iterdir()) == []

    def test_corrupt_receipts_abort_and_roll_back(self, tree, layout):
        layout.receipts_path.parent.mkdir(parents=True)
        layout.receipts_path.write_text("{not json")

        with pytest.raises(InstallError, match="cannot write"):
            InstallService(CONFIG).install(tree, make_descriptor(), layout, artifact=REF)

        assert not layout.binary_path("mxp").exists()
        assert layout.receipts_path.read_text() == "{not json"

    def test_reinstall_removes_stale_files(self, tree, layout):
        (tree / "extra").write_text("x")
        service = InstallService(CONFIG)
        service.install(tree, make_descriptor(binaries=["mxp", "extra"]), layout)
        service.install(tree, make_descriptor(binaries=["mxp"]), layout)

        assert layout.binary_path("mxp").exists()
        assert not layout.binary_path("extra").exists()


class TestUninstall:

    def test_removes_files_and_receipt(self, tree, layout):
        service = InstallService(CONFIG)
        service.install(tree, make_descriptor(), layout)

        result = service.uninstall("mxp", layout)

        assert result["removed"] == [str(layout.binary_path("mxp"))]
        assert not layout.binary_path("mxp").exists()
        assert service.installed(layout) == []

    def test_corrupt_receipts_are_kept(self, tree, layout):
        service = InstallService(CONFIG)
        service.install(tree, make_descriptor(), layout)
        layout.receipts_path.write_text("{not json")

        with pytest.raises(InstallError, match="cannot read receipts"):
            service.uninstall("mxp", layout)
        assert layout.binary_path("mxp").exists()
        assert layout.receipts_path.read_text() == "{not json"

    def test_unknown_package(self, layout):
        with pytest.raises(InstallError, match="not installed"):
            InstallService(CONFIG).uninstall("mxp", layout)

    def test_installed_lists_receipts(self, tree, layout):
        service = InstallService(CONFIG)
        service.install(tree, make_descriptor(), layout)
        [receipt] = service.installed(layout)
        assert receipt["name"] == "mxp"
        assert receipt["version"] == "0.4.0"
