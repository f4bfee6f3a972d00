# share_mounter/core/exceptions.py


class InvalidTransitionError(Exception):
    """Raised when a share status transition is not allowed."""
    def __init__(self, resource_uri: str, from_status: str, to_status: str):
        self.resource_uri = resource_uri
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid state transition for {resource_uri}: "
            f"Cannot move from '{from_status}' to '{to_status}'."
        )


class InvalidIndexError(Exception):
    """Raised when a registry operation refers to an unknown share id."""
    def __init__(self, share_id: str):
        self.share_id = share_id
        super().__init__(f"No share with id {share_id} in registry.")


class ManagedShareError(Exception):
    """Raised when a user tries to remove a centrally managed share."""
    def __init__(self, resource_uri: str):
        self.resource_uri = resource_uri
        super().__init__(
            f"Share {resource_uri} is managed by central configuration and cannot be removed."
        )


class CannotDetermineMountComponentError(Exception):
    """Raised when neither a path segment nor a host can name the mount point."""
    def __init__(self, resource_uri: str):
        self.resource_uri = resource_uri
        super().__init__(f"Cannot determine mount directory component of {resource_uri!r}")


class MountBaseDirectoryError(Exception):
    """Raised when the base mount directory cannot be created. Fatal at startup."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Error creating mount folder {path}: {reason}")
