import numpy as np
import scipy.sparse as sp


def block_triplets(block, row0, col0, scale=1.0):
    """
    (rows, cols, values) of a block placed at (row0, col0). Dense blocks contribute every entry,
    zeros included, so that the sparsity pattern does not depend on the values.
    """
    if sp.issparse(block):
        coo = sp.coo_matrix(block)
        return coo.row + row0, coo.col + col0, scale * coo.data
    block = np.atleast_2d(np.asarray(block, dtype=np.float64))
    rows, cols = np.indices(block.shape)
    return rows.ravel() + row0, cols.ravel() + col0, scale * block.ravel()


class TripletAssembler:
    """Accumulates blocks as COO triplets. Entries given more than once are summed."""

    def __init__(self):
        self.rows = []
        self.cols = []
        self.vals = []

    def add(self, block, row0, col0, scale=1.0):
        r, c, v = block_triplets(block, row0, col0, scale)
        self.rows.append(r)
        self.cols.append(c)
        self.vals.append(v)

    def add_identity(self, n, row0, col0, scale=1.0):
        idx = np.arange(n)
        self.rows.append(idx + row0)
        self.cols.append(idx + col0)
        self.vals.append(np.full(n, scale, dtype=np.float64))

    def _concatenate(self):
        return np.concatenate(self.rows), np.concatenate(self.cols), np.concatenate(self.vals)

    def tocsr(self, shape):
        rows, cols, vals = self._concatenate()
        A = sp.coo_matrix((vals, (rows, cols)), shape=shape).tocsr()
        A.sum_duplicates()
        A.sort_indices()
        return A

    def write_into(self, J0, shape):
        """
        Overwrite the values of the CSR matrix J0 with the accumulated entries, keeping its
        structure. Entries of J0 not touched by the assembly are set to zero.
        """
        if not sp.issparse(J0) or J0.format != "csr":
            raise ValueError(
                "In-place update requires a CSR matrix allocated by the full sparse Jacobian."
            )
        if J0.shape != tuple(shape):
            raise ValueError(
                f"In-place update: matrix shape {J0.shape} differs from expected {shape}."
            )
        if not J0.has_canonical_format:
            J0.sum_duplicates()

        rows, cols, vals = self._concatenate()
        ncols = shape[1]
        row_of_entry = np.repeat(np.arange(shape[0], dtype=np.int64), np.diff(J0.indptr))
        keys0 = row_of_entry * ncols + J0.indices
        keys = rows.astype(np.int64) * ncols + cols
        pos = np.searchsorted(keys0, keys)
        pos = np.minimum(pos, len(keys0) - 1)
        missing = keys0[pos] != keys
        if np.any(missing):
            raise ValueError(
                f"In-place update: {np.count_nonzero(missing)} entries fall outside the sparsity "
                "pattern of the preallocated Jacobian. Rebuild it with the full sparse Jacobian."
            )
        J0.data[:] = 0.0
        np.add.at(J0.data, pos, vals)
        return J0
