import logging
import shutil
import tempfile

import git
import pytest

from envault.errors import TargetWriteError
from envault.utils import find_git_directory, unignored_paths, write_atomic

requires_git = pytest.mark.skipif(shutil.which('git') is None, reason="git is required")


def test_write_atomic_creates_parents(tmp_path):
    path = tmp_path / 'a' / 'b' / '.env'
    write_atomic(path, b"A=1\n")
    assert path.read_bytes() == b"A=1\n"
    assert [p.name for p in path.parent.iterdir()] == ['.env']


def test_write_atomic_mode(tmp_path):
    path = tmp_path / 'config.yaml'
    write_atomic(path, b"", mode=0o644)
    assert path.stat().st_mode & 0o777 == 0o644


@requires_git
def test_find_git_directory(tmp_path, monkeypatch):
    git.Repo.init(tmp_path)
    subdirectory = tmp_path / 'services' / 'api'
    subdirectory.mkdir(parents=True)
    monkeypatch.chdir(subdirectory)
    assert find_git_directory().resolve() == tmp_path.resolve()


@requires_git
def test_unignored_paths(tmp_path):
    git.Repo.init(tmp_path)
    (tmp_path / '.gitignore').write_text(".env\n")
    ignored = tmp_path / '.env'
    tracked = tmp_path / 'settings.env'

    assert unignored_paths(tmp_path, [ignored, tracked]) == {tracked}


def test_unignored_paths_outside_git(tmp_path):
    assert unignored_paths(tmp_path, [tmp_path / '.env']) is None


@requires_git
def test_unignored_paths_outside_work_tree(tmp_path, caplog):
    repository = tmp_path / 'repository'
    repository.mkdir()
    git.Repo.init(repository)

    with caplog.at_level(logging.WARNING, logger='envault.utils'):
        assert unignored_paths(repository, [repository / '.env', tmp_path / 'outside.env']) is None

    assert 'Not checking .gitignore' in caplog.text


def test_write_atomic_failed_temporary_file(tmp_path, monkeypatch):
    path = tmp_path / '.env'
    path.write_bytes(b"OLD=1\n")

    def mkstemp(**kwargs):
        raise OSError(36, "File name too long")

    monkeypatch.setattr(tempfile, 'mkstemp', mkstemp)

    with pytest.raises(TargetWriteError):
        write_atomic(path, b"A=1\n")
    assert path.read_bytes() == b"OLD=1\n"
