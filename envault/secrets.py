import logging
import pathlib
import typing

import attr

from .age import Age, Cipher
from .config import Config, Environment
from .errors import (ConfigNotFoundError, EmptyRecipientSetError,
                     EnvaultException, MissingArtifactError,
                     NoPrivateKeyError, PlaintextReadError, WorkspaceExistsError)
from .keys import KeyRegistry
from .utils import unignored_paths, write_atomic

log = logging.getLogger(__name__)

WORKSPACE = '.envault'
GITIGNORE = "*.plaintext\n*.plain\n*.decrypted\n"

# Tried in order, the first one that exists is used
PRIVATE_KEY_NAMES = ('id_ed25519', 'id_rsa', 'id_ecdsa', 'id_dsa')


def default_ssh_directory() -> pathlib.Path:
    return pathlib.Path.home() / '.ssh'


def absolute(path: typing.Union[str, pathlib.Path]) -> pathlib.Path:
    return pathlib.Path(path).resolve()


@attr.s(frozen=True)
class ReencryptResult:
    succeeded: typing.List[str] = attr.ib(factory=list)
    failed: typing.Dict[str, str] = attr.ib(factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@attr.s(frozen=True, kw_only=True)
class EnvironmentStatus:
    name: str = attr.ib()
    encrypted_file: str = attr.ib()
    exists: bool = attr.ib()
    error: typing.Optional[str] = attr.ib(default=None)
    targets: typing.Sequence[pathlib.Path] = attr.ib(factory=tuple)
    unignored: typing.Sequence[pathlib.Path] = attr.ib(factory=tuple)

    @property
    def ok(self) -> bool:
        return self.exists and self.error is None


@attr.s(frozen=True, kw_only=True)
class Vault:
    """
    The encrypted secrets kept in the .envault directory of a workspace root.

    Every path is resolved against the root, never the current directory.
    """

    root: pathlib.Path = attr.ib(converter=absolute)
    cipher: Cipher = attr.ib(factory=Age)
    identity: typing.Optional[pathlib.Path] = attr.ib(
        default=None, converter=attr.converters.optional(pathlib.Path))
    ssh_directory: pathlib.Path = attr.ib(factory=default_ssh_directory)

    @property
    def directory(self) -> pathlib.Path:
        return self.root / WORKSPACE

    @property
    def config_path(self) -> pathlib.Path:
        return self.directory / 'config.yaml'

    @property
    def registry(self) -> KeyRegistry:
        if not self.directory.is_dir():
            raise ConfigNotFoundError(
                f"{self.directory} does not exist - run 'envault init' first")
        return KeyRegistry(self.directory / 'authorized_keys')

    def rel(self, path: pathlib.Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)

    def config(self) -> Config:
        return Config.load(self.config_path).validate()

    def environment(self, name: str) -> Environment:
        return self.config().environment(name)

    def artifact(self, name: str) -> pathlib.Path:
        return self.directory / self.environment(name).encrypted_file

    def targets(self, name: str) -> typing.List[pathlib.Path]:
        return [self.root / target.path for target in self.environment(name).targets]

    def init(self) -> Config:
        if self.directory.exists():
            raise WorkspaceExistsError(f"{self.directory} already exists")

        log.info(f"Creating {self.directory}")
        self.directory.mkdir(parents=True)
        config = Config.default()
        config.save(self.config_path)
        self.registry.path.touch()
        (self.directory / '.gitignore').write_text(GITIGNORE)
        return config

    def find_identity(self) -> pathlib.Path:
        """Locate the private key used to decrypt secrets."""
        if self.identity is not None:
            if not self.identity.exists():
                raise NoPrivateKeyError(f"Private key {self.identity} does not exist")
            return self.identity

        for name in PRIVATE_KEY_NAMES:
            path = self.ssh_directory / name
            if path.exists():
                log.debug(f"Using private key {path}")
                return path

        raise NoPrivateKeyError(
            f"No SSH private key found in {self.ssh_directory} "
            f"(tried: {', '.join(PRIVATE_KEY_NAMES)})")

    def encrypt(self, name: str, plaintext: bytes) -> pathlib.Path:
        """Encrypt plaintext for every key in the registry, replacing the artifact."""
        artifact = self.artifact(name)

        if not self.registry.keys():
            raise EmptyRecipientSetError(
                "No authorized keys found - run 'envault add-key' first")

        ciphertext = self.cipher.encrypt(self.registry.path, plaintext)
        log.info(f"Encrypted {name} to {artifact}")
        write_atomic(artifact, ciphertext, mode=0o644)
        return artifact

    def encrypt_file(self, name: str, path: pathlib.Path) -> pathlib.Path:
        try:
            plaintext = path.read_bytes()
        except OSError as error:
            raise PlaintextReadError(f"Failed to read plaintext file {path}: {error}") from error
        return self.encrypt(name, plaintext)

    def decrypt(self, name: str) -> bytes:
        artifact = self.artifact(name)
        if not artifact.exists():
            raise MissingArtifactError(
                f"Encrypted file {self.rel(artifact)} does not exist")

        identity = self.find_identity()
        log.info(f"Decrypting {artifact} with {identity}")
        return self.cipher.decrypt(identity, artifact.read_bytes())

    def can_decrypt(self, name: str) -> None:
        self.decrypt(name)

    def reencrypt(self, name: str) -> pathlib.Path:
        """
        Decrypt an environment and encrypt it again for the current registry.

        Keys removed from the registry can no longer decrypt the new artifact,
        though they can still decrypt older copies kept in version control.
        """
        log.info(f"Re-encrypting {name}")
        return self.encrypt(name, self.decrypt(name))

    def reencrypt_all(self) -> ReencryptResult:
        """Re-encrypt every environment, carrying on past any that fail."""
        result = ReencryptResult()
        for name in self.config():
            try:
                self.reencrypt(name)
            except EnvaultException as error:
                log.warning(f"Failed to re-encrypt {name}: {error.message}")
                result.failed[name] = error.message
            else:
                result.succeeded.append(name)
        return result

    def load(self, name: str) -> typing.List[pathlib.Path]:
        """Decrypt an environment and write the plaintext to each of its targets."""
        targets = self.targets(name)
        plaintext = self.decrypt(name)
        for target in targets:
            log.info(f"Writing {name} to {target}")
            write_atomic(target, plaintext)
        return targets

    def check(self) -> typing.List[EnvironmentStatus]:
        statuses: typing.List[EnvironmentStatus] = []
        for name, environment in self.config().environments.items():
            artifact = self.directory / environment.encrypted_file
            targets = self.targets(name)

            error = None
            if artifact.exists():
                try:
                    self.can_decrypt(name)
                except EnvaultException as exc:
                    error = exc.message

            unignored = unignored_paths(self.root, targets) or set()
            statuses.append(EnvironmentStatus(
                name=name,
                encrypted_file=environment.encrypted_file,
                exists=artifact.exists(),
                error=error,
                targets=tuple(targets),
                unignored=tuple(t for t in targets if t in unignored)))
        return statuses
