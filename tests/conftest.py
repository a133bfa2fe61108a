import base64
import json
import pathlib
import typing

import attr
import click.testing
import pytest

import envault.cli
from envault.age import Cipher
from envault.errors import DecryptionFailedError
from envault.keys import Key, KeyRegistry
from envault.secrets import Vault


@attr.s(frozen=True)
class RecordingCipher(Cipher):
    """
    Stands in for age: the ciphertext records the key data of every recipient,
    and decryption only succeeds with an identity whose key is among them.
    """

    def check(self) -> None:
        pass

    def encrypt(self, recipients: pathlib.Path, plaintext: bytes) -> bytes:
        return json.dumps({
            'recipients': [key.data for key in KeyRegistry(recipients).keys()],
            'plaintext': base64.b64encode(plaintext).decode('ascii'),
        }).encode('utf-8')

    def decrypt(self, identity: pathlib.Path, ciphertext: bytes) -> bytes:
        message = json.loads(ciphertext)
        if Key.parse(identity.read_text()).data not in message['recipients']:
            raise DecryptionFailedError(
                ['age', '--decrypt', '--identity', str(identity)], 1,
                "age: error: no identity matched any of the recipients")
        return base64.b64decode(message['plaintext'])


@attr.s(frozen=True)
class KeyPair:
    """A fake SSH key pair, where the private key file holds the public key."""

    name: str = attr.ib()
    public: str = attr.ib()
    private: pathlib.Path = attr.ib()

    @property
    def fingerprint(self) -> str:
        return Key.parse(self.public).fingerprint

    def __str__(self):
        return self.name


@pytest.fixture()
def keypair(tmp_path):
    directory = tmp_path / 'keys'
    directory.mkdir()

    def keypair_func(name: str) -> KeyPair:
        data = base64.b64encode(f"key-material-{name}".encode('utf-8')).decode('ascii')
        public = f"ssh-ed25519 {data} {name}@example.invalid"
        private = directory / name
        private.write_text(public)
        return KeyPair(name, public, private)

    return keypair_func


@pytest.fixture()
def root(tmp_path) -> pathlib.Path:
    path = tmp_path / 'repository'
    path.mkdir()
    return path


@pytest.fixture()
def vault(root, tmp_path) -> Vault:
    vault = Vault(root=root, cipher=RecordingCipher(), ssh_directory=tmp_path / 'ssh')
    vault.init()
    return vault


@pytest.fixture()
def invoke(root, monkeypatch):
    monkeypatch.setattr(envault.cli, 'Age', lambda binary: RecordingCipher())

    def invoke_func(
            arguments: typing.Sequence[str],
            identity: typing.Optional[KeyPair] = None,
            succeed: bool = True) -> click.testing.Result:
        assert all(isinstance(arg, str) for arg in arguments)
        options = ['-p', str(root)]
        if identity is not None:
            options += ['-i', str(identity.private)]
        runner = click.testing.CliRunner()
        result = runner.invoke(envault.cli.main, [*options, *arguments])
        if succeed and result.exit_code != 0:
            message = f"Command envault {' '.join(arguments)} failed:\n{result.output}"
            raise Exception(message) from result.exception
        if not succeed and result.exit_code == 0:
            raise Exception(f"Command envault {' '.join(arguments)} unexpectedly succeeded")
        return result

    return invoke_func
