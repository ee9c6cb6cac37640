"""Pytest configuration and shared proof fixtures."""

import sys
from pathlib import Path

import pytest

# Add the repository root to the path so absolute imports work
# (tests/ is inside the repository, so parent is the root)
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from protocol.proof import FriConfig, PcsConfig  # noqa: E402
from tests.prover import prove_wide_fibonacci  # noqa: E402

# Reference configuration: 10 grinding bits, blowup 4, 4-coefficient last layer, 70 queries.
REFERENCE_CONFIG = PcsConfig(
    pow_bits=10,
    fri_config=FriConfig(log_blowup_factor=2, log_last_layer_degree_bound=2, n_queries=70),
)

# Cheap configuration for tests that only need some valid proof.
SMALL_CONFIG = PcsConfig(
    pow_bits=4,
    fri_config=FriConfig(log_blowup_factor=1, log_last_layer_degree_bound=1, n_queries=8),
)


@pytest.fixture(scope="session")
def reference_statement():
    """WideFibonacci proof with 32 rows and 10 columns under REFERENCE_CONFIG."""
    return prove_wide_fibonacci(log_n_rows=5, n_columns=10, config=REFERENCE_CONFIG)


@pytest.fixture(scope="session")
def small_statement():
    """WideFibonacci proof with 8 rows and 4 columns under SMALL_CONFIG."""
    return prove_wide_fibonacci(log_n_rows=3, n_columns=4, config=SMALL_CONFIG)
