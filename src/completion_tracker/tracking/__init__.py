"""Completion tracking components.

- `keys`: completion key encoding
- `handshake`: initiate/confirm of a completion
- `resolver`: batch completion status for listings
- `rotation`: scheduled scan/stage/commit of stale markers
- `store`, `registry`: the Redis edge
"""

__all__: list[str] = []
