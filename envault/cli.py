import functools
import logging
import pathlib
import typing

import click

from . import __doc__, __version__
from .age import Age
from .errors import EnvaultException, EnvironmentNotFoundError, KeyParseError
from .secrets import Vault
from .utils import find_git_directory

log = logging.getLogger(__name__)

OK = click.style('✓', fg='green')
FAIL = click.style('✗', fg='red')
WARN = click.style('!', fg='yellow')


def enc(vault: Vault, path: pathlib.Path) -> str:
    """Style a path to an encrypted file."""
    return click.style(vault.rel(path), fg='green')


def dec(vault: Vault, path: pathlib.Path) -> str:
    """Style a path to a decrypted file."""
    return click.style(vault.rel(path), fg='red')


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


def requires_cipher(func):
    """Check the encryption tool is installed before running a command."""
    @functools.wraps(func)
    def wrapper(vault: Vault, *args, **kwargs):
        vault.cipher.check()
        return func(vault, *args, **kwargs)
    return wrapper


def load_environment(vault: Vault, environment: str) -> None:
    targets = vault.load(environment)
    click.echo(f"{OK} Loaded {environment} secrets to:")
    for target in targets:
        click.echo(f"  - {dec(vault, target)}")


def environment_command(environment: str) -> click.Command:
    @click.command(name=environment, help=f"Load the {environment} environment into its targets.")
    @click.pass_obj
    @requires_cipher
    def command(vault: Vault):
        try:
            load_environment(vault, environment)
        except EnvironmentNotFoundError as error:
            raise EnvironmentNotFoundError(
                f"No such command or environment: {environment} "
                f"(run 'envault help' to list commands)") from error

    return command


class EnvironmentGroup(click.Group):
    """A group where any unknown command is the name of an environment to load."""

    def get_command(self, ctx, cmd_name):
        command = super().get_command(ctx, cmd_name)
        if command is None and not cmd_name.startswith('-'):
            command = environment_command(cmd_name)
        return command


environment_argument = click.argument(
    'environment',
    type=click.STRING,
    required=True)


@click.group(cls=EnvironmentGroup, help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    envvar='ENVAULT_PATH',
    default=find_git_directory,
    required=True,
    help="Workspace root. Defaults to the current git repository.")
@click.option(
    '-i', '--identity',
    type=PathType(dir_okay=False),
    envvar='ENVAULT_IDENTITY',
    default=None,
    help="SSH private key used to decrypt. Defaults to the first of "
         "~/.ssh/id_ed25519, id_rsa, id_ecdsa and id_dsa that exists.")
@click.option(
    '--age', 'age_binary',
    envvar='ENVAULT_AGE',
    default='age',
    show_default=True,
    help="The age command to run.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(
        ctx,
        path: pathlib.Path,
        identity: typing.Optional[pathlib.Path],
        age_binary: str,
        debug: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Vault(root=path, cipher=Age(binary=age_binary), identity=identity)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"envault {__version__}")


@main.command(name='help')
@click.pass_context
def help_(ctx):
    """Show this message."""
    click.echo(ctx.parent.get_help())


@main.command()
@click.pass_obj
def init(vault: Vault):
    """Create the .envault directory."""
    vault.init()
    click.echo(f"{OK} Initialized {enc(vault, vault.directory)}")
    click.echo(f"{OK} Created config.yaml with default configuration")
    click.echo(f"{OK} Created authorized_keys file")
    click.echo("\nNext steps:")
    click.echo("  1. Add SSH public keys: envault add-key <public-key>")
    click.echo("  2. Create a plaintext secrets file")
    click.echo("  3. Encrypt secrets: envault encrypt dev <plaintext-file>")
    click.echo("  4. Commit: git add .envault && git commit -m 'chore: add envault'")


@main.command()
@environment_argument
@click.pass_obj
@requires_cipher
def load(vault: Vault, environment: str):
    """Decrypt an environment into its target files."""
    load_environment(vault, environment)


@main.command(name='add-key')
@click.argument('key', nargs=-1, required=True)
@click.pass_obj
def add_key(vault: Vault, key: typing.Sequence[str]):
    """
    Authorize an SSH public key.

    Accepts a public key file, or the key itself.
    """
    text = ' '.join(key)
    if len(key) == 1 and pathlib.Path(key[0]).is_file():
        try:
            text = pathlib.Path(key[0]).read_text(encoding='utf-8').strip()
        except (OSError, UnicodeDecodeError) as error:
            raise KeyParseError(f"Failed to read key file {key[0]}: {error}") from error

    added = vault.registry.add(text)
    click.echo(f"{OK} Added SSH public key {added}")
    click.echo("\nNext steps:")
    click.echo("  - Encrypt environments: envault encrypt <environment> <file>")
    click.echo("  - Or re-encrypt existing ones: envault reencrypt")


@main.command(name='remove-key')
@click.argument('fingerprint', type=click.STRING, required=True)
@click.pass_obj
def remove_key(vault: Vault, fingerprint: str):
    """Remove an SSH public key by its fingerprint."""
    removed = vault.registry.remove(fingerprint)
    click.echo(f"{OK} Removed SSH public key {removed}")
    click.secho(
        "\nIMPORTANT: Re-encrypt all environments to revoke access:\n  envault reencrypt",
        fg='yellow')


@main.command(name='list-keys')
@click.pass_obj
def list_keys(vault: Vault):
    """List authorized SSH public keys."""
    keys = vault.registry.keys()

    if not keys:
        click.echo("No authorized keys found")
        click.echo("\nAdd keys with: envault add-key <public-key>")
        return

    click.echo(f"Authorized keys ({len(keys)}):")
    for number, key in enumerate(keys, start=1):
        click.echo(f"  {number}. {key}")


@main.command()
@environment_argument
@click.argument('plaintext', type=PathType(dir_okay=False), required=True)
@click.pass_obj
@requires_cipher
def encrypt(vault: Vault, environment: str, plaintext: pathlib.Path):
    """Encrypt a plaintext file for every authorized key."""
    artifact = vault.encrypt_file(environment, plaintext)
    click.echo(f"{OK} Encrypted {plaintext} to {enc(vault, artifact)}")
    click.echo("\nNext steps:")
    click.echo(f"  - Test decryption: envault decrypt {environment}")
    click.echo("  - Commit: git add .envault && git commit -m 'chore: update secrets'")


@main.command()
@environment_argument
@click.pass_obj
@requires_cipher
def decrypt(vault: Vault, environment: str):
    """Print the decrypted secrets of an environment."""
    click.echo(vault.decrypt(environment), nl=False)


@main.command()
@click.argument('environment', type=click.STRING, required=False)
@click.pass_obj
@requires_cipher
def reencrypt(vault: Vault, environment: typing.Optional[str]):
    """
    Encrypt secrets again for the current authorized keys.

    Re-encrypts every environment if none is given.
    """
    if environment:
        vault.reencrypt(environment)
        click.echo(f"{OK} Re-encrypted {environment} with current authorized_keys")
        return

    result = vault.reencrypt_all()

    if result.ok:
        click.echo(f"{OK} Re-encrypted all environments with current authorized_keys:")
        for name in result.succeeded:
            click.echo(f"  - {name}")
        return

    if result.succeeded:
        click.echo(f"{OK} Re-encrypted: {', '.join(result.succeeded)}")
    failures = '\n  - '.join(f"{name}: {message}" for name, message in result.failed.items())
    raise EnvaultException(f"Failed to re-encrypt some environments:\n  - {failures}")


@main.command()
@click.pass_obj
@requires_cipher
def check(vault: Vault):
    """Verify the configuration and that each environment can be decrypted."""
    statuses = vault.check()

    click.echo("Checking envault configuration...\n")
    try:
        click.echo(f"{OK} Authorized keys: {len(vault.registry)}")
    except KeyParseError as error:
        click.echo(f"{FAIL} Failed to load authorized_keys: {error.message}")

    for status in statuses:
        click.echo(f"\nEnvironment: {status.name}")

        if not status.exists:
            click.echo(f"  {FAIL} Encrypted file missing: {status.encrypted_file}")
            continue
        click.echo(f"  {OK} Encrypted file exists: {status.encrypted_file}")

        if status.error:
            click.echo(f"  {FAIL} Cannot decrypt: {status.error}")
        else:
            click.echo(f"  {OK} Can decrypt with your SSH key")

        click.echo(f"  {OK} Targets: {len(status.targets)}")
        for target in status.targets:
            click.echo(f"    - {dec(vault, target)}")
        for target in status.unignored:
            click.echo(f"  {WARN} Target {dec(vault, target)} is not excluded by .gitignore")

    failed = [status.name for status in statuses if not status.ok]
    if failed:
        raise EnvaultException(f"Check failed for: {', '.join(failed)}")
