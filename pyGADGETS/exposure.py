"""
Exposure handling for GxE / GxGxE scoring.

The exposure component models, among families where exactly one of case and
complement carries the full provisional risk set, the probability that the
carrier is the case as a function of the family's exposure level. Under no
gene-by-exposure interaction that probability does not depend on exposure.
"""

import logging

import numpy as np
import pandas as pd
import torch

logger = logging.getLogger(__name__)

_EPS = 1e-12


def encode_exposure(levels, reference=None):
    """
    Dummy-code a categorical exposure, dropping the reference level.

    Parameters:
    levels : sequence or pd.Series
        One exposure level per family
    reference : optional
        Level used as baseline. Defaults to the first level in sorted order

    Returns:
    tuple
        (torch.Tensor families x (n_levels - 1), tuple of level names)
    """
    series = pd.Series(levels)
    if series.isna().any():
        raise ValueError("Exposure levels cannot be missing.")
    categories = sorted(series.unique().tolist(), key=str)
    if reference is None:
        reference = categories[0]
    if reference not in categories:
        raise ValueError(f"Reference level {reference!r} does not occur in the exposure data.")
    ordered = [reference] + [c for c in categories if c != reference]
    cat = pd.Categorical(series, categories=ordered)
    dummies = pd.get_dummies(cat, drop_first=True, dtype=np.float64)
    names = tuple(str(c) for c in dummies.columns)
    return torch.as_tensor(dummies.to_numpy(dtype=np.float64)), names


def _bernoulli_loglik(y, p):
    p = p.clamp(_EPS, 1.0 - _EPS)
    return float((y * torch.log(p) + (1.0 - y) * torch.log(1.0 - p)).sum())


def fit_logistic(X, y, max_iter=25, tol=1e-8, ridge=1e-4):
    """
    Ridge-stabilised logistic regression fitted by IRLS.

    Parameters:
    X : torch.Tensor
        n x p covariates (no intercept column)
    y : torch.Tensor
        n binary outcomes
    max_iter : int, default 25
        Maximum Newton steps
    tol : float, default 1e-8
        Convergence threshold on the largest coefficient change
    ridge : float, default 1e-4
        L2 penalty keeping the fit finite under separation

    Returns:
    tuple
        (coefficients with the intercept first, log-likelihood)
    """
    X = X.to(torch.float64)
    y = y.to(torch.float64)
    X1 = torch.cat([torch.ones(X.shape[0], 1, dtype=torch.float64), X], dim=1)
    n_coef = X1.shape[1]
    beta = torch.zeros(n_coef, dtype=torch.float64)
    penalty = ridge * torch.eye(n_coef, dtype=torch.float64)

    for _ in range(max_iter):
        p = torch.sigmoid(X1 @ beta)
        W = p * (1.0 - p)
        grad = X1.T @ (y - p) - penalty @ beta
        H = X1.T @ (X1 * W.unsqueeze(1)) + penalty
        step = torch.linalg.solve(H, grad)
        beta = beta + step
        if float(step.abs().max()) < tol:
            break

    return beta, _bernoulli_loglik(y, torch.sigmoid(X1 @ beta))


def exposure_component(y, X):
    """
    Likelihood-ratio statistic of the exposure model against intercept only.

    Parameters:
    y : torch.Tensor
        1 where the case is the risk-set carrier, 0 where the complement is
    X : torch.Tensor
        Exposure design rows of the same families

    Returns:
    tuple
        (statistic, coefficients per non-reference level)
    """
    n_levels = X.shape[1]
    n = y.shape[0]
    if n < n_levels + 2:
        return 0.0, np.zeros(n_levels)

    # levels absent among these families cannot be estimated
    present = X.abs().sum(dim=0) > 0
    if not bool(present.any()):
        return 0.0, np.zeros(n_levels)

    beta, ll_full = fit_logistic(X[:, present], y)
    p0 = float(y.mean())
    ll_null = _bernoulli_loglik(y, torch.full_like(y, p0, dtype=torch.float64))

    coefs = np.zeros(n_levels)
    coefs[present.numpy()] = beta[1:].numpy()
    return max(0.0, 2.0 * (ll_full - ll_null)), coefs
