"""Custom exceptions for kubehatch."""


class KubehatchError(Exception):
    """Base exception for all kubehatch errors."""


class ConfigurationError(KubehatchError):
    """Configuration-related errors."""


class InputError(KubehatchError):
    """Malformed or missing request input."""


class SubprocessFailureError(KubehatchError):
    """An external tool exited non-zero or could not be started.

    Attributes:
        output: Combined stdout/stderr captured from the tool
        returncode: Process exit status (None if the tool never ran)
    """

    def __init__(self, message: str, output: bytes = b"", returncode: int | None = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode

    def __str__(self) -> str:
        text = super().__str__()
        if self.output:
            return f"{text}\nOutput:\n{self.output.decode(errors='replace')}"
        return text


class ResourceNotFoundError(KubehatchError):
    """Object does not exist (yet) on the host cluster."""


class ParseError(KubehatchError):
    """Structured tool output did not match the expected shape."""


class KubeconfigError(ParseError):
    """Kubeconfig document could not be parsed or rewritten."""


class ProvisioningTimeoutError(KubehatchError):
    """A bounded poll reached its deadline without success."""


class CredentialTimeoutError(ProvisioningTimeoutError):
    """Neither the connect path nor the secret fallback yielded a kubeconfig."""


class EndpointUnavailableError(KubehatchError):
    """Service has no usable address or port."""


class ProvisioningError(KubehatchError):
    """A provisioning stage failed and the sequence was aborted.

    Attributes:
        stage: Terminal failure stage name
        output: Captured tool output for operator diagnosis
    """

    def __init__(self, message: str, stage: str, output: bytes = b""):
        super().__init__(message)
        self.stage = stage
        self.output = output
