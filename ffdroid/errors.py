"""Error types raised by the build pipeline.

Every error is a :class:`click.ClickException`, so a command that lets one
propagate exits with the error's ``exit_code`` and prints its message.
"""

import click


class FFDroidError(click.ClickException):
    """Base class for all pipeline failures."""

    exit_code = 1
    kind = "Error"

    def __init__(self, message, abi=None):
        super().__init__(message)
        self.abi = abi

    def format_message(self):
        if self.abi:
            return f"{self.kind} [{self.abi}]: {self.message}"
        return f"{self.kind}: {self.message}"


class ConfigurationError(FFDroidError):
    """Bad flag, environment value or unsupported ABI."""

    exit_code = 2
    kind = "Configuration error"


class ProvisioningError(FFDroidError):
    """The NDK download or a source checkout failed."""

    kind = "Provisioning error"


class BuildError(FFDroidError):
    """A compiler, linker or build-system step failed."""

    kind = "Build error"

    def __init__(self, message, abi=None, log_paths=()):
        super().__init__(message, abi=abi)
        self.log_paths = tuple(log_paths)


class VerificationError(FFDroidError):
    """Produced artifacts violate a release requirement."""

    kind = "Verification error"

    def __init__(self, message, abi=None, problems=()):
        super().__init__(message, abi=abi)
        self.problems = tuple(problems)
