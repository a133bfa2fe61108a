import logging
import pathlib
import subprocess
import typing

import attr

from .errors import (CipherError, DecryptionFailedError, EncryptionFailedError,
                     PrerequisiteMissingError)

log = logging.getLogger(__name__)


class Cipher:
    """
    Encrypts plaintext for a file of recipient public keys, and decrypts it
    again with one private key.
    """

    def check(self) -> None:
        raise NotImplementedError

    def encrypt(self, recipients: pathlib.Path, plaintext: bytes) -> bytes:
        raise NotImplementedError

    def decrypt(self, identity: pathlib.Path, ciphertext: bytes) -> bytes:
        raise NotImplementedError


@attr.s(frozen=True)
class Age(Cipher):
    """Runs the age command, which accepts SSH keys as recipients and identities."""

    binary: str = attr.ib(default='age')

    def command(self, arguments: typing.Sequence[str]) -> typing.Tuple[str, ...]:
        return (self.binary, *arguments)

    def run(self,
            arguments: typing.Sequence[str],
            stdin: bytes,
            error: typing.Type[CipherError]) -> bytes:
        command = self.command(arguments)
        log.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE)
        except OSError as exc:
            raise PrerequisiteMissingError(self.missing_message()) from exc

        stderr = result.stderr.decode('utf-8', errors='replace')
        if result.returncode != 0:
            for line in stderr.splitlines():
                log.error(line)
            raise error(command, result.returncode, stderr)
        return result.stdout

    def missing_message(self) -> str:
        return (f"{self.binary} is not installed - install it from "
                f"https://github.com/FiloSottile/age (e.g. 'brew install age')")

    def check(self) -> None:
        try:
            result = subprocess.run(
                self.command(['--version']),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE)
        except OSError as exc:
            raise PrerequisiteMissingError(self.missing_message()) from exc
        if result.returncode != 0:
            raise PrerequisiteMissingError(self.missing_message())
        log.debug(f"Found {self.binary} {result.stdout.decode('utf-8', errors='replace').strip()}")

    def encrypt(self, recipients: pathlib.Path, plaintext: bytes) -> bytes:
        log.debug(f"Encrypting {len(plaintext)} bytes for the recipients in {recipients}")
        return self.run(
            ['--encrypt', '--recipients-file', str(recipients)],
            stdin=plaintext,
            error=EncryptionFailedError)

    def decrypt(self, identity: pathlib.Path, ciphertext: bytes) -> bytes:
        log.debug(f"Decrypting {len(ciphertext)} bytes with {identity}")
        return self.run(
            ['--decrypt', '--identity', str(identity)],
            stdin=ciphertext,
            error=DecryptionFailedError)
