"""
The .envault/config.yaml file, mapping environment names to an encrypted file and the
target paths its plaintext is written to.

    environments:
      dev:
        encrypted_file: dev.age
        targets:
          - path: .env
"""

import logging
import pathlib
import typing

import attr
import yaml

from .errors import (ConfigNotFoundError, ConfigParseError,
                     ConfigValidationError, EnvironmentNotFoundError)
from .utils import write_atomic

log = logging.getLogger(__name__)


@attr.s(frozen=True)
class Target:
    path: str = attr.ib()


@attr.s(frozen=True, kw_only=True)
class Environment:
    encrypted_file: str = attr.ib()
    targets: typing.Tuple[Target, ...] = attr.ib(converter=tuple)

    @classmethod
    def from_dict(cls, name: str, data: typing.Any) -> 'Environment':
        if not isinstance(data, dict):
            raise ConfigParseError(f"Environment {name} must be a mapping")

        targets = data.get('targets') or []
        if not isinstance(targets, list):
            raise ConfigParseError(f"Environment {name}: targets must be a list")
        for target in targets:
            if not isinstance(target, dict):
                raise ConfigParseError(
                    f"Environment {name}: each target must be a mapping with a path")

        return cls(
            encrypted_file=str(data.get('encrypted_file') or ''),
            targets=[Target(path=str(t.get('path') or '')) for t in targets])

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        return {
            'encrypted_file': self.encrypted_file,
            'targets': [{'path': target.path} for target in self.targets],
        }


@attr.s(frozen=True)
class Config:
    environments: typing.Dict[str, Environment] = attr.ib(factory=dict)

    @classmethod
    def default(cls) -> 'Config':
        """The config written by 'envault init'."""
        return cls({'dev': Environment(encrypted_file='dev.age', targets=[Target('.env')])})

    @classmethod
    def load(cls, path: pathlib.Path) -> 'Config':
        log.debug(f"Loading config from {path}")
        try:
            text = path.read_text(encoding='utf-8')
        except FileNotFoundError as error:
            raise ConfigNotFoundError(
                f"Config file {path} does not exist - run 'envault init' first") from error
        except (OSError, UnicodeDecodeError) as error:
            raise ConfigParseError(f"Failed to read {path}: {error}") from error

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as error:
            raise ConfigParseError(f"Failed to parse {path}: {error}") from error

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: typing.Any) -> 'Config':
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigParseError("config.yaml must contain a mapping")

        environments = data.get('environments') or {}
        if not isinstance(environments, dict):
            raise ConfigParseError("environments must be a mapping of names to environments")

        return cls({
            str(name): Environment.from_dict(name, environment)
            for name, environment in environments.items()
        })

    def to_dict(self) -> typing.Dict[str, typing.Any]:
        return {'environments': {
            name: environment.to_dict() for name, environment in self.environments.items()
        }}

    def save(self, path: pathlib.Path) -> None:
        log.debug(f"Saving config to {path}")
        text = yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)
        write_atomic(path, text.encode('utf-8'), mode=0o644)

    def problems(self) -> typing.List[str]:
        problems: typing.List[str] = []

        if not self.environments:
            problems.append("no environments defined")

        for name, environment in self.environments.items():
            if not environment.encrypted_file:
                problems.append(f"environment {name}: encrypted_file is required")
            if not environment.targets:
                problems.append(f"environment {name}: at least one target is required")
            for index, target in enumerate(environment.targets):
                if not target.path:
                    problems.append(f"environment {name}: target {index} has an empty path")
                elif pathlib.PurePath(target.path).is_absolute():
                    problems.append(
                        f"environment {name}: target path {target.path} should be relative")

        return problems

    def validate(self) -> 'Config':
        problems = self.problems()
        if problems:
            raise ConfigValidationError(problems)
        return self

    def environment(self, name: str) -> Environment:
        try:
            return self.environments[name]
        except KeyError:
            raise EnvironmentNotFoundError(
                f"Environment {name} not found in config.yaml") from None

    def __iter__(self) -> typing.Iterator[str]:
        return iter(self.environments)
