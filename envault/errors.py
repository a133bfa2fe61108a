import typing

import click


class EnvaultException(click.ClickException):
    pass


class ConfigNotFoundError(EnvaultException):
    pass


class EnvironmentNotFoundError(ConfigNotFoundError):
    pass


class ConfigParseError(EnvaultException):
    pass


class ValidationError(EnvaultException):
    pass


class ConfigValidationError(ValidationError):
    """Every problem found in a config, reported together."""

    def __init__(self, problems: typing.Sequence[str]):
        self.problems = tuple(problems)
        super().__init__(
            "Invalid config.yaml:\n  - " + "\n  - ".join(self.problems))


class KeyParseError(ValidationError):
    pass


class DuplicateKeyError(EnvaultException):
    pass


class NotFoundError(EnvaultException):
    pass


class KeyNotFoundError(NotFoundError):
    pass


class EmptyRecipientSetError(EnvaultException):
    pass


class PrerequisiteMissingError(EnvaultException):
    pass


class CipherError(EnvaultException):
    """A failed call to the encryption backend, with its diagnostics."""

    action = 'call'

    def __init__(self, command: typing.Sequence[str], returncode: int, stderr: str):
        self.command = ' '.join(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"{self.action} failed with exit code {returncode}: {self.command}"
        if self.stderr:
            message = f"{message}\n{self.stderr}"
        super().__init__(message)


class EncryptionFailedError(CipherError):
    action = 'encryption'


class DecryptionFailedError(CipherError):
    action = 'decryption'


class MissingArtifactError(EnvaultException):
    pass


class NoPrivateKeyError(EnvaultException):
    pass


class PlaintextReadError(EnvaultException):
    pass


class TargetWriteError(EnvaultException):
    pass


class WorkspaceExistsError(EnvaultException):
    pass
