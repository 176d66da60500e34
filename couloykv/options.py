"""Settings for a server node, standalone or clustered."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class KuloyOptions:
    """Storage settings plus the cluster peers and this node's position."""

    standalone: Any = None
    peers: list[str] = field(default_factory=list)
    own: int = 0

    def set_cluster_peers(self, own: int, *args: str) -> None:
        """Record the peer addresses and which of them is this node."""
        self.own = own
        self.peers = list(args)

    def is_cluster(self) -> bool:
        """Return True when peers are configured."""
        return len(self.peers) > 0