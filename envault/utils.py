import logging
import os
import pathlib
import subprocess
import tempfile
import typing

import git

from .errors import TargetWriteError

log = logging.getLogger(__name__)


def find_git_directory() -> pathlib.Path:
    """The enclosing git work tree, or the current directory outside one."""
    try:
        repo = git.Repo(search_parent_directories=True)
    except git.exc.InvalidGitRepositoryError:
        return pathlib.Path.cwd()
    return pathlib.Path(repo.working_dir)


def write_atomic(path: pathlib.Path, data: bytes, mode: int = 0o600) -> None:
    """
    Replace the contents of a file without ever leaving it half written.

    The data is written to a temporary file next to the destination, which
    is then renamed over it. Parent directories are created as needed.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise TargetWriteError(
            f"Failed to create directory {path.parent}: {error}") from error

    temp = None
    try:
        fd, temp = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.chmod(temp, mode)
        os.replace(temp, path)
    except OSError as error:
        if temp is not None and os.path.exists(temp):
            os.remove(temp)
        raise TargetWriteError(f"Failed to write {path}: {error}") from error
    log.debug(f"Wrote {len(data)} bytes to {path}")


def unignored_paths(
        root: pathlib.Path,
        paths: typing.Iterable[pathlib.Path]) -> typing.Optional[typing.Set[pathlib.Path]]:
    """
    Find which paths are not excluded by a .gitignore file.

    Returns None when the root is not inside a git work tree.
    """
    paths = set(paths)
    try:
        result = subprocess.run(
            ('git', 'check-ignore', '--stdin'),
            cwd=root,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding='utf-8',
            input='\n'.join(str(p) for p in sorted(paths)))
    except OSError as error:
        log.info(f"Not checking .gitignore, git is unavailable: {error}")
        return None

    # 0: some paths ignored, 1: none ignored, anything else is a failure
    if result.returncode not in (0, 1):
        log.warning(f"Not checking .gitignore: {result.stderr.strip()}")
        return None

    excluded = set(pathlib.Path(line) for line in result.stdout.splitlines())
    return paths - excluded
