"""Seeded 2-D simplex noise, vectorised over numpy arrays.

The permutation table is drawn from the caller's generator, so the noise
field is fully determined by the seed. Output is in roughly [-1, 1].
"""

import numpy as np

_F2 = 0.5 * (np.sqrt(3.0) - 1.0)
_G2 = (3.0 - np.sqrt(3.0)) / 6.0

_GRAD2 = np.array([
    (1, 1), (-1, 1), (1, -1), (-1, -1),
    (1, 0), (-1, 0), (1, 0), (-1, 0),
    (0, 1), (0, -1), (0, 1), (0, -1),
], dtype=np.float64)


class SimplexNoise:
    """2-D simplex noise (Gustavson's formulation) with a seeded permutation."""

    def __init__(self, rng: np.random.Generator):
        perm = rng.permutation(256).astype(np.int64)
        self._perm = np.concatenate([perm, perm])
        self._perm_mod12 = self._perm % 12

    def _corner(self, gi: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        t = 0.5 - x * x - y * y
        g = _GRAD2[gi]
        contrib = (t * t) * (t * t) * (g[..., 0] * x + g[..., 1] * y)
        return np.where(t < 0, 0.0, contrib)

    def noise2d(self, x, y) -> np.ndarray:
        """Sample the noise field at (x, y); scalars or equal-shape arrays."""
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)

        s = (x + y) * _F2
        i = np.floor(x + s).astype(np.int64)
        j = np.floor(y + s).astype(np.int64)
        t = (i + j) * _G2
        x0 = x - (i - t)
        y0 = y - (j - t)

        # Which of the two triangles of the skewed cell we are in
        upper = x0 > y0
        i1 = upper.astype(np.int64)
        j1 = 1 - i1

        x1 = x0 - i1 + _G2
        y1 = y0 - j1 + _G2
        x2 = x0 - 1.0 + 2.0 * _G2
        y2 = y0 - 1.0 + 2.0 * _G2

        ii = i & 255
        jj = j & 255
        perm = self._perm
        gi0 = self._perm_mod12[ii + perm[jj]]
        gi1 = self._perm_mod12[ii + i1 + perm[jj + j1]]
        gi2 = self._perm_mod12[ii + 1 + perm[jj + 1]]

        n = self._corner(gi0, x0, y0) + self._corner(gi1, x1, y1) + self._corner(gi2, x2, y2)
        return 70.0 * n
