import pathlib
import typing

from .age import Age, Cipher
from .secrets import Vault


def vault(
        directory: pathlib.Path,
        cipher: typing.Optional[Cipher] = None,
        **kwargs) -> Vault:
    return Vault(root=directory, cipher=cipher or Age(), **kwargs)


def load(directory: pathlib.Path, environment: str, **kwargs) -> typing.List[pathlib.Path]:
    """Write the secrets for an environment to its target files."""
    return vault(directory, **kwargs).load(environment)
