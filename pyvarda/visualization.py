"""
Diagnostic plots for minimizations and ensembles.
"""

import matplotlib.pyplot as plt
import matplotlib.axes
import numpy as np
from typing import List, Optional, Sequence

from .hilbert_space import HilbertSpace, Vector
from .krylov import KrylovResult


def plot_convergence(
    results: "KrylovResult | Sequence[KrylovResult]",
    /,
    *,
    ax: Optional[matplotlib.axes.Axes] = None,
    labels: Optional[List[str]] = None,
) -> matplotlib.axes.Axes:
    """
    Plot residual-norm histories of one or more Krylov solves.

    Args:
        results: A KrylovResult or a list of them.
        ax: Axes to draw on. A new figure is created if None.
        labels: Legend entries, one per result.

    Returns:
        The axes.
    """
    if isinstance(results, KrylovResult):
        results = [results]
    if labels is not None and len(labels) != len(results):
        raise ValueError("labels must have one entry per result")

    if ax is None:
        _, ax = plt.subplots(figsize=(8, 5))

    for i, result in enumerate(results):
        norms = np.asarray(result.residual_norms, dtype=float)
        # Normalized by the initial norm so that solves can be compared.
        if norms.size > 0 and norms[0] > 0:
            norms = norms / norms[0]
        label = f"solve {i}" if labels is None else labels[i]
        ax.semilogy(np.arange(norms.size), norms, marker="o", markersize=3, label=label)

    ax.set_xlabel("Iteration")
    ax.set_ylabel("Relative residual norm")
    ax.grid(True, which="both", alpha=0.3)
    ax.legend()
    return ax


def plot_ensemble_spread(
    space: HilbertSpace,
    perturbations: Sequence[Vector],
    /,
    *,
    ax: Optional[matplotlib.axes.Axes] = None,
) -> matplotlib.axes.Axes:
    """
    Plot the per-component standard deviation sampled by a set of rescaled
    ensemble perturbations.
    """
    if len(perturbations) == 0:
        raise ValueError("No perturbations to plot")
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 5))

    components = np.array([space.to_components(p) for p in perturbations])
    spread = np.sqrt(np.sum(components**2, axis=0))
    ax.plot(np.arange(space.dim), spread, color="tab:blue")
    ax.fill_between(np.arange(space.dim), 0, spread, color="tab:blue", alpha=0.2)
    ax.set_xlabel("Component")
    ax.set_ylabel("Standard deviation")
    ax.set_title(f"Ensemble spread ({len(perturbations)} members)")
    return ax
