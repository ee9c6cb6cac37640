"""Batched Merkle decommitment verification over Keccak-256.

Columns of different lengths share one tree: a column of log size k is
attached to the nodes of layer k (layer 0 is the root), and each node hashes

    Keccak(left_child || right_child || values of the columns at that node)

with the child hashes omitted on the largest layer. A decommitment carries
only what the verifier cannot derive itself: sibling hashes (hash_witness) and
column values at nodes that were not queried but had to be hashed
(column_witness). Both are consumed in order, largest layer first, nodes
ascending within a layer.
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional, Sequence

from primitives.channel import keccak256, u32s_to_bytes

# --- Type Aliases ---
MerkleRoot = bytes
NodeHash = bytes


# --- Decommitment ---


@dataclass
class MerkleDecommitment:
    """Witness data accompanying the queried values of one tree.

    Attributes:
        hash_witness: Sibling hashes not derivable from queried nodes
        column_witness: Column values of non-queried nodes on the paths
    """

    hash_witness: list[NodeHash] = field(default_factory=list)
    column_witness: list[int] = field(default_factory=list)


def hash_node(children: Optional[tuple[NodeHash, NodeHash]], column_values: Sequence[int]) -> NodeHash:
    data = b""
    if children is not None:
        data = children[0] + children[1]
    return keccak256(data + u32s_to_bytes(column_values))


# --- Verifier Class ---


class MerkleVerifier:
    """Verifier for one committed tree.

    Usage:
        verifier = MerkleVerifier(root, column_log_sizes)
        ok = verifier.verify(queries_per_log_size, queried_values, decommitment)
    """

    def __init__(self, root: MerkleRoot, column_log_sizes: Sequence[int]) -> None:
        self.root = root
        self.column_log_sizes = list(column_log_sizes)
        self.n_columns_per_log_size = Counter(self.column_log_sizes)

    def verify(
        self,
        queries_per_log_size: dict[int, Sequence[int]],
        queried_values: Sequence[int],
        decommitment: MerkleDecommitment,
    ) -> bool:
        """Recompute the root from queried values and witness.

        Args:
            queries_per_log_size: Ascending query positions for each column log size
            queried_values: Values of the queried nodes, layer by layer (largest
                first), node by node, columns in commitment order
            decommitment: Hash and column witness

        Returns:
            True if the recomputed root matches and every input was consumed exactly
        """
        if not self.column_log_sizes:
            return True

        for log_size, queries in queries_per_log_size.items():
            if any(b <= a for a, b in zip(queries, queries[1:])):
                raise ValueError(f"queries for log size {log_size} are not strictly ascending")
            if queries and (queries[0] < 0 or queries[-1] >= 1 << log_size):
                raise ValueError(f"query out of range for log size {log_size}")

        hash_witness = deque(decommitment.hash_witness)
        column_witness = deque(decommitment.column_witness)
        values = deque(queried_values)

        max_log_size = max(self.column_log_sizes)
        # (node index, hash) of the previous (larger) layer; None above the largest.
        prev_layer: Optional[list[tuple[int, NodeHash]]] = None

        for layer_log_size in range(max_log_size, -1, -1):
            n_columns = self.n_columns_per_log_size.get(layer_log_size, 0)
            prev_hashes = deque(prev_layer or [])
            layer_queries = deque(queries_per_log_size.get(layer_log_size, []))
            layer: list[tuple[int, NodeHash]] = []

            while prev_hashes or layer_queries:
                candidates = []
                if prev_hashes:
                    candidates.append(prev_hashes[0][0] // 2)
                if layer_queries:
                    candidates.append(layer_queries[0])
                node_index = min(candidates)

                children = None
                if prev_layer is not None:
                    left = self._take_child(prev_hashes, 2 * node_index, hash_witness)
                    right = self._take_child(prev_hashes, 2 * node_index + 1, hash_witness)
                    if left is None or right is None:
                        return False
                    children = (left, right)

                if layer_queries and layer_queries[0] == node_index:
                    layer_queries.popleft()
                    source = values
                else:
                    source = column_witness
                if len(source) < n_columns:
                    return False
                node_values = [source.popleft() for _ in range(n_columns)]

                layer.append((node_index, hash_node(children, node_values)))

            prev_layer = layer

        if hash_witness or column_witness or values:
            return False
        if not prev_layer or len(prev_layer) != 1:
            return False
        return prev_layer[0][1] == self.root

    @staticmethod
    def _take_child(
        prev_hashes: deque, index: int, hash_witness: deque
    ) -> Optional[NodeHash]:
        if prev_hashes and prev_hashes[0][0] == index:
            return prev_hashes.popleft()[1]
        if hash_witness:
            return hash_witness.popleft()
        return None
