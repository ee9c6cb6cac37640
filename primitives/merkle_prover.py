"""Merkle tree commitment for mixed-size columns.

Mirrors MerkleVerifier: builds the layered Keccak tree and produces the
decommitment (queried values, sibling hashes, column witness) the verifier
consumes. Used to build honest proofs for testing.
"""

from collections import defaultdict
from typing import Sequence

from primitives.merkle_verifier import MerkleDecommitment, MerkleRoot, NodeHash, hash_node


class MerkleProver:
    """Merkle tree builder over columns of power-of-two lengths.

    Usage:
        prover = MerkleProver(columns)
        root = prover.root
        values, decommitment = prover.decommit(queries_per_log_size)
    """

    def __init__(self, columns: Sequence[Sequence[int]]) -> None:
        """Build all layers.

        Args:
            columns: Column values (ints in [0, P)), each of power-of-two length
        """
        if not columns:
            raise ValueError("cannot commit to zero columns")
        self.columns = [list(c) for c in columns]
        self.column_log_sizes = [len(c).bit_length() - 1 for c in self.columns]
        for column, log_size in zip(self.columns, self.column_log_sizes):
            if len(column) != 1 << log_size:
                raise ValueError(f"column length {len(column)} is not a power of two")

        self.columns_by_log_size: dict[int, list[int]] = defaultdict(list)
        for index, log_size in enumerate(self.column_log_sizes):
            self.columns_by_log_size[log_size].append(index)

        max_log_size = max(self.column_log_sizes)
        # layers[k] holds the 2^k node hashes of layer k
        self.layers: dict[int, list[NodeHash]] = {}
        for log_size in range(max_log_size, -1, -1):
            prev = self.layers.get(log_size + 1)
            hashes = []
            for node in range(1 << log_size):
                children = None if prev is None else (prev[2 * node], prev[2 * node + 1])
                hashes.append(hash_node(children, self._node_values(log_size, node)))
            self.layers[log_size] = hashes

    @property
    def root(self) -> MerkleRoot:
        return self.layers[0][0]

    def _node_values(self, log_size: int, node: int) -> list[int]:
        return [self.columns[i][node] for i in self.columns_by_log_size.get(log_size, [])]

    def decommit(self, queries_per_log_size: dict[int, Sequence[int]]) -> tuple[list[int], MerkleDecommitment]:
        """Open the tree at the given positions.

        Returns:
            (queried_values, decommitment) in the order MerkleVerifier.verify reads them
        """
        queried_values: list[int] = []
        decommitment = MerkleDecommitment()
        max_log_size = max(self.column_log_sizes)
        prev_queries: list[int] = []

        for log_size in range(max_log_size, -1, -1):
            layer_queries = sorted(set(queries_per_log_size.get(log_size, [])))
            queried_nodes = set(layer_queries)
            nodes = sorted(set(q // 2 for q in prev_queries) | queried_nodes)
            prev_set = set(prev_queries)

            for node in nodes:
                if log_size < max_log_size:
                    for child in (2 * node, 2 * node + 1):
                        if child not in prev_set:
                            decommitment.hash_witness.append(self.layers[log_size + 1][child])
                values = self._node_values(log_size, node)
                if node in queried_nodes:
                    queried_values.extend(values)
                else:
                    decommitment.column_witness.extend(values)

            prev_queries = nodes

        return queried_values, decommitment
