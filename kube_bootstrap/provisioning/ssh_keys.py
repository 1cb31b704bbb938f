"""SSH key pair generation for cluster node access."""

import logging
from pathlib import Path
from typing import Optional

from ..core.command import CommandError, CommandRunner


logger = logging.getLogger(__name__)


class SSHKeyError(Exception):
    """Raised when the SSH key pair cannot be generated."""

    pass


def ensure_ssh_key(
    runner: CommandRunner,
    private_key_path: Path,
    key_type: str = "rsa",
    key_bits: Optional[int] = 4096,
) -> Path:
    """Generate an SSH key pair unless the private key already exists.

    Args:
        runner: Command runner used to call ssh-keygen
        private_key_path: Location of the private key
        key_type: ssh-keygen key type
        key_bits: Key size, omitted for key types with a fixed size

    Returns:
        Path of the public key

    Raises:
        SSHKeyError: When generation fails or leaves no public key behind
    """
    private_key_path = Path(private_key_path).expanduser()
    public_key_path = private_key_path.with_name(private_key_path.name + ".pub")

    if private_key_path.exists():
        logger.info(f"SSH key {private_key_path} already exists, skipping generation")
        print("SSH key already exists. Skipping generation.")
    else:
        private_key_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        args = ["ssh-keygen", "-q", "-t", key_type]
        if key_bits:
            args += ["-b", str(key_bits)]
        args += ["-N", "", "-f", str(private_key_path)]

        print("Generating SSH key pair...")
        try:
            runner.run(args)
        except CommandError as e:
            raise SSHKeyError(f"ssh-keygen failed: {e}") from e
        logger.info(f"SSH key pair generated at {private_key_path}")

    if not public_key_path.exists():
        raise SSHKeyError(f"Public key not found: {public_key_path}")

    return public_key_path
