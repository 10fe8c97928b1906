"""
Conflict resolution between divergent versions of the same record.

Policy: last-writer-wins by `updated_at`. On an exact tie the remote version
wins, since the server is the convergence point for every device.

`resolve` is pure: same inputs, same output, no side effects. A flush that
is re-run after a partial failure may call it again on the same pair.
"""

from domain.models import DomainRecord


class ConflictError(ValueError):
    """The two records are not versions of the same entity."""

    pass


def resolve(local: DomainRecord, remote: DomainRecord) -> DomainRecord:
    """
    Pick the winning version of a record.

    Args:
        local: Version held by this device
        remote: Version held by the cloud copy

    Returns:
        `local` if it is strictly newer, otherwise `remote`

    Raises:
        ConflictError: If the records have different entity types or ids
    """
    if local.key != remote.key:
        raise ConflictError(
            f"Cannot resolve {local.entity_type.value}:{local.id} "
            f"against {remote.entity_type.value}:{remote.id}"
        )
    if local.updated_at > remote.updated_at:
        return local
    return remote


def local_wins(local: DomainRecord, remote: DomainRecord) -> bool:
    """True if `resolve` keeps the local version."""
    return resolve(local, remote) is local
