"""WideFibonacci AIR constraint evaluation.

Each row holds an independent Fibonacci-like sequence spread over n_columns
columns: col[i] = col[i-1] + col[i-2] for i >= 2. There is no row-to-row
transition, so every constraint reads offset 0 only and has degree 1; the
composition polynomial needs one extra bit of degree over the trace.
"""

from .base import EvalAtRow, FrameworkEval


class WideFibonacciEval(FrameworkEval):
    """Constraint evaluation for the WideFibonacci AIR.

    Args:
        log_n_rows: log2 of the trace length
        n_columns: Sequence length per row (at least 2)
    """

    def __init__(self, log_n_rows: int, n_columns: int):
        if n_columns < 2:
            raise ValueError("WideFibonacci needs at least two columns")
        self.log_n_rows = log_n_rows
        self.n_columns = n_columns

    def log_size(self) -> int:
        return self.log_n_rows

    def max_constraint_log_degree_bound(self) -> int:
        return self.log_n_rows + 1

    def evaluate(self, eval: EvalAtRow) -> EvalAtRow:
        a = eval.next_trace_mask()
        b = eval.next_trace_mask()
        for _ in range(2, self.n_columns):
            c = eval.next_trace_mask()
            eval.add_constraint(c - (a + b))
            a, b = b, c
        return eval
