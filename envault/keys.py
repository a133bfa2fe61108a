import hashlib
import logging
import pathlib
import typing

import attr

from .errors import DuplicateKeyError, KeyNotFoundError, KeyParseError
from .utils import write_atomic

log = logging.getLogger(__name__)


def fingerprint(data: str) -> str:
    """The first 8 bytes of a SHA256 digest of the key data, in hex."""
    return hashlib.sha256(data.encode('utf-8')).hexdigest()[:16]


@attr.s(frozen=True, kw_only=True)
class Key:
    """An SSH public key in OpenSSH format."""

    type: str = attr.ib()
    data: str = attr.ib()
    comment: str = attr.ib(default='')

    @classmethod
    def parse(cls, text: str) -> 'Key':
        fields = text.split()
        if len(fields) < 2:
            raise KeyParseError(
                "Invalid key format (expected at least 2 fields: type and data)")
        return cls(type=fields[0], data=fields[1], comment=' '.join(fields[2:]))

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.data)

    def line(self) -> str:
        return ' '.join(field for field in (self.type, self.data, self.comment) if field)

    def __str__(self):
        if self.comment:
            return f"{self.fingerprint} ({self.type}) - {self.comment}"
        return f"{self.fingerprint} ({self.type})"


@attr.s(frozen=True)
class KeyRegistry:
    """
    The authorized_keys file listing every public key secrets are encrypted for.

    Keys are stored one per line in insertion order. Blank lines and lines
    starting with '#' are ignored.
    """

    path: pathlib.Path = attr.ib()

    def keys(self) -> typing.List[Key]:
        try:
            text = self.path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as error:
            raise KeyParseError(f"Failed to read {self.path}: {error}") from error

        keys: typing.List[Key] = []
        for number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            try:
                keys.append(Key.parse(line))
            except KeyParseError as error:
                raise KeyParseError(f"{self.path} line {number}: {error.message}") from error
        return keys

    def __iter__(self) -> typing.Iterator[Key]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.keys())

    def add(self, text: str) -> Key:
        key = Key.parse(text)

        for existing in self.keys():
            if existing.data == key.data:
                raise DuplicateKeyError(
                    f"Key already exists (fingerprint: {existing.fingerprint})")

        prefix = ''
        if self.path.exists():
            contents = self.path.read_text(encoding='utf-8')
            if contents and not contents.endswith('\n'):
                prefix = '\n'

        log.info(f"Adding key {key} to {self.path}")
        with self.path.open('a', encoding='utf-8') as f:
            f.write(f"{prefix}{key.line()}\n")
        return key

    def remove(self, fingerprint: str) -> Key:
        keys = self.keys()
        removed = next((k for k in keys if k.fingerprint == fingerprint), None)
        if removed is None:
            raise KeyNotFoundError(f"Key with fingerprint {fingerprint} not found")

        log.info(f"Removing key {removed} from {self.path}")
        text = ''.join(f"{k.line()}\n" for k in keys if k is not removed)
        write_atomic(self.path, text.encode('utf-8'), mode=0o644)
        return removed
