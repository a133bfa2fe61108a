"""
Envault manages encrypted environment secrets in a git repository.

Secrets are encrypted with age for every SSH public key listed in
.envault/authorized_keys, so anyone holding one of the matching private keys
can decrypt them. Each environment is decrypted to the target files listed in
.envault/config.yaml.

Create the .envault directory and authorize a key:

\b
    $ envault init
    $ envault add-key ~/.ssh/id_ed25519.pub

Encrypt secrets for an environment and write them to its targets:

\b
    $ envault encrypt dev secrets.plaintext
    $ envault dev

Revoke access by removing a key and re-encrypting every environment:

\b
    $ envault remove-key 1a2b3c4d5e6f7a8b
    $ envault reencrypt
"""

__version__ = '0.1.0'
