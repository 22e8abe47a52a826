import numpy as np
import numba as nb


@nb.njit()
def empirical_copula(u, v, s, t):
    """
    Evaluate the empirical copula of the sample (u, v) at the points (s, t).

    Parameters:
        u, v: 1D numpy arrays.
            Pseudo-observations defining the empirical copula.
        s, t: 1D numpy arrays.
            Evaluation points.

    Returns:
        1D numpy array with C_n(s_i, t_i) = #{j: u_j <= s_i, v_j <= t_i} / n.
    """
    n = u.shape[0]
    m = s.shape[0]
    out = np.empty(m)
    for i in range(m):
        count = 0
        for j in range(n):
            if u[j] <= s[i] and v[j] <= t[i]:
                count += 1
        out[i] = count / n
    return out


@nb.njit()
def cramer_von_mises(empirical, fitted):
    """
    S_n = sum_i (C_n(U_i, V_i) - C_theta(U_i, V_i))^2.
    """
    total = 0.0
    for i in range(empirical.shape[0]):
        diff = empirical[i] - fitted[i]
        total += diff * diff
    return total


def sn_statistic(u, v, fitted_cdf):
    u = np.ascontiguousarray(u, dtype=np.float64)
    v = np.ascontiguousarray(v, dtype=np.float64)
    cn = empirical_copula(u, v, u, v)
    return cramer_von_mises(cn, np.ascontiguousarray(fitted_cdf, dtype=np.float64))
