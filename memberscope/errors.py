"""
memberscope Exceptions
======================

Exception hierarchy shared by the directory clients, the resolver and the CLI.

    MemberscopeError
    ├── ConfigurationError
    └── DirectoryError
        ├── DirectoryConnectionError
        └── ObjectNotFoundError
            └── GroupNotFoundError

Connection failures are always fatal. ObjectNotFoundError raised for a single
member may be skipped by the resolver depending on ResolverConfig.on_lookup_error.
"""

from typing import Optional


class MemberscopeError(Exception):
    """Base class for all memberscope errors."""


class ConfigurationError(MemberscopeError):
    """Raised for invalid or incomplete configuration values."""


class DirectoryError(MemberscopeError):
    """Base class for errors raised by a directory service client."""


class DirectoryConnectionError(DirectoryError):
    """The directory service could not be reached or the bind failed."""


class ObjectNotFoundError(DirectoryError):
    """A directory object referenced by id does not exist.

    Attributes:
        object_id: Identifier that failed to resolve
        kind: Expected kind name (e.g. "User"), if known
    """

    def __init__(self, object_id: str, kind: Optional[str] = None, message: Optional[str] = None):
        self.object_id = object_id
        self.kind = kind
        if message is None:
            label = kind or "Object"
            message = f"{label} not found: {object_id}"
        super().__init__(message)


class GroupNotFoundError(ObjectNotFoundError):
    """The root group of a resolution does not exist."""

    def __init__(self, identifier: str, message: Optional[str] = None):
        super().__init__(identifier, kind="Group", message=message or f"Group not found: {identifier}")
