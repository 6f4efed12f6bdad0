from __future__ import annotations


class NoClientAvailable(RuntimeError):
    """No object-store client could be produced for this request."""


class RoleResolutionFailed(NoClientAvailable):
    """The metadata service did not return an IAM role name."""


class CredentialFetchFailed(NoClientAvailable):
    """The IAM role is known but its credentials could not be fetched or parsed."""
