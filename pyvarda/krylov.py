"""
Matrix-free Krylov solvers.

The solvers only use the vector contract of `pyvarda.vector_space` and the
action of the operator and preconditioner, applied as `operator(v)`. All
inner products and norms are those of the vectors being solved for.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, List, Optional, Tuple

import numpy as np
from scipy.linalg import solve_triangular

from .vector_space import Vector, dot_product


logger = logging.getLogger(__name__)


Operator = Callable[[Vector], Vector]


@dataclass
class KrylovResult:
    """
    The outcome of a Krylov solve.

    Attributes:
        solution: The approximate solution.
        reduction: Final residual norm divided by the initial residual norm.
        iterations: Number of operator applications in the Krylov iteration.
        residual_norms: Residual norm history, starting with the initial norm.
        converged: True if the target reduction was reached.
        recycled: Operator applications spent on recycled directions.
    """

    solution: Any
    reduction: float
    iterations: int
    residual_norms: List[float] = field(default_factory=list)
    converged: bool = False
    recycled: int = 0


def _identity(v: Vector) -> Vector:
    return v.copy()


class KrylovSolver(ABC):
    """
    Abstract base class for matrix-free Krylov solvers.
    """

    name = "Krylov"

    def __init__(self, maxiter: int, /, *, rtol: float = 1.0e-10) -> None:
        """
        Args:
            maxiter (int): Maximum number of operator applications.
            rtol (float): Target reduction of the residual norm.
        """
        if maxiter <= 0:
            raise ValueError("maxiter must be positive")
        if rtol <= 0:
            raise ValueError("rtol must be positive")
        self._maxiter = maxiter
        self._rtol = rtol

    @property
    def maxiter(self) -> int:
        """Maximum number of operator applications."""
        return self._maxiter

    @property
    def rtol(self) -> float:
        """Target reduction of the residual norm."""
        return self._rtol

    def solve(
        self,
        operator: Operator,
        rhs: Vector,
        /,
        *,
        preconditioner: Any = None,
        x0: Optional[Vector] = None,
    ) -> KrylovResult:
        """
        Approximately solves operator(x) = rhs.

        Args:
            operator (callable): The operator.
            rhs (Vector): The right-hand side. Not modified.
            preconditioner (callable | None): Approximate inverse of the
                operator, applied on the right.
            x0 (Vector | None): Starting point. Zero if not given.

        Returns:
            KrylovResult: The solution and convergence information.
        """
        if x0 is not None and x0.norm() == 0:
            x0 = None

        if x0 is None:
            x = rhs.copy()
            x.zero()
            r = rhs.copy()
        else:
            x = x0.copy()
            r = rhs.copy()
            r -= operator(x0.copy())

        rnorm0 = r.norm()
        if rnorm0 == 0:
            logger.info("%s: zero initial residual, nothing to solve", self.name)
            return KrylovResult(x, 0.0, 0, [0.0], True)

        result = self._iterate(operator, x, r, rnorm0, preconditioner)
        result.converged = result.reduction <= self.rtol
        logger.info(
            "%s: %d iterations, residual reduction %.6e",
            self.name,
            result.iterations,
            result.reduction,
        )
        if not result.converged:
            logger.warning(
                "%s did not reach the target reduction %.1e in %d iterations",
                self.name,
                self.rtol,
                self.maxiter,
            )
        return result

    def _log_iteration(self, k: int, reduction: float) -> None:
        logger.info("%s iteration %d: residual reduction %.6e", self.name, k, reduction)

    @abstractmethod
    def _iterate(
        self,
        operator: Operator,
        x: Vector,
        r: Vector,
        rnorm0: float,
        preconditioner: Any,
    ) -> KrylovResult:
        """
        Runs the iteration from the solution x with residual r, both of which
        may be updated in place.
        """


class GMRESRSolver(KrylovSolver):
    """
    GMRESR: a generalized conjugate residual outer loop with one
    preconditioner and one operator application per iteration. The
    residual norm decreases monotonically. Suited to the indefinite
    saddle-point system with its inexact constraint preconditioner.
    """

    name = "GMRESR"

    def _iterate(self, operator, x, r, rnorm0, preconditioner):
        apply_precond = _identity if preconditioner is None else preconditioner
        directions: List[Vector] = []
        images: List[Vector] = []
        norms = [rnorm0]
        rnorm = rnorm0
        iterations = 0

        while iterations < self.maxiter and rnorm / rnorm0 > self.rtol:
            z = apply_precond(r.copy())
            c = operator(z.copy())
            iterations += 1

            # Modified Gram-Schmidt against the previous images. The
            # directions follow so that c = A z is preserved.
            for cj, zj in zip(images, directions):
                beta = dot_product(cj, c)
                c.axpy(-beta, cj)
                z.axpy(-beta, zj)

            cnorm = c.norm()
            if cnorm == 0:
                logger.warning("%s breakdown at iteration %d", self.name, iterations)
                break
            c *= 1.0 / cnorm
            z *= 1.0 / cnorm

            alpha = dot_product(c, r)
            x.axpy(alpha, z)
            r.axpy(-alpha, c)
            rnorm = r.norm()

            images.append(c)
            directions.append(z)
            norms.append(rnorm)
            self._log_iteration(iterations, rnorm / rnorm0)

        return KrylovResult(x, rnorm / rnorm0, iterations, norms)


class FGMRESSolver(KrylovSolver):
    """
    Flexible GMRES with right preconditioning.

    The preconditioner may change between restart cycles: when a sequence
    is given, cycle k uses entry min(k, len - 1). With a positive memory the
    solver keeps the most recent preconditioned search directions and, on
    the next solve, starts from the minimum-residual solution in their span
    under the new operator. This recycles information across the outer
    loops of an assimilation. Recycling applications share the maxiter
    budget with the Arnoldi steps.
    """

    name = "FGMRES"

    def __init__(
        self,
        maxiter: int,
        /,
        *,
        rtol: float = 1.0e-10,
        restart: Optional[int] = None,
        memory: int = 0,
    ) -> None:
        """
        Args:
            maxiter (int): Maximum number of operator applications.
            rtol (float): Target reduction of the residual norm.
            restart (int | None): Arnoldi steps per cycle. No restarts if None.
            memory (int): Number of search directions kept across solves.
        """
        super().__init__(maxiter, rtol=rtol)
        if restart is not None and restart <= 0:
            raise ValueError("restart must be positive")
        if memory < 0:
            raise ValueError("memory must be non-negative")
        self._restart = restart
        self._memory = memory
        self._directions: deque = deque(maxlen=max(memory, 1))

    @property
    def restart(self) -> Optional[int]:
        return self._restart

    @property
    def memory(self) -> int:
        """Maximum number of search directions kept across solves."""
        return self._memory

    @property
    def stored_directions(self) -> int:
        """Number of search directions currently kept."""
        return len(self._directions)

    def reset_memory(self) -> None:
        """Drops every retained search direction."""
        self._directions.clear()

    @staticmethod
    def _select_preconditioner(preconditioner: Any, cycle: int) -> Operator:
        if preconditioner is None:
            return _identity
        if isinstance(preconditioner, (list, tuple)):
            if len(preconditioner) == 0:
                return _identity
            return preconditioner[min(cycle, len(preconditioner) - 1)]
        return preconditioner

    def _recycle(self, operator: Operator, x: Vector, r: Vector, limit: int) -> int:
        """
        Seeds x with the minimum-residual correction in the span of the
        most recent retained directions, at most limit of them. Returns the
        number of operator applications.
        """
        directions = [z.copy() for z in list(self._directions)[-limit:]]
        images = [operator(z.copy()) for z in directions]
        scale = max(w.norm() for w in images)
        for i, (w, z) in enumerate(zip(images, directions)):
            for wj, zj in zip(images[:i], directions[:i]):
                if wj is None:
                    continue
                beta = dot_product(wj, w)
                w.axpy(-beta, wj)
                z.axpy(-beta, zj)
            wnorm = w.norm()
            # Dependent directions are dropped.
            if wnorm <= 1.0e-12 * scale:
                images[i] = None
                continue
            w *= 1.0 / wnorm
            z *= 1.0 / wnorm
            alpha = dot_product(w, r)
            x.axpy(alpha, z)
            r.axpy(-alpha, w)
        logger.info("%s: recycled %d directions", self.name, len(directions))
        return len(directions)

    def _remember(self, directions: List[Vector]) -> None:
        if self._memory == 0:
            return
        for z in directions:
            self._directions.append(z.copy())

    def _iterate(self, operator, x, r, rnorm0, preconditioner):
        recycled = 0
        if self._memory > 0 and len(self._directions) > 0:
            recycled = self._recycle(operator, x, r, self.maxiter)

        beta = r.norm()
        norms = [rnorm0]
        if recycled > 0:
            logger.info(
                "%s: residual reduction after recycling %.6e", self.name, beta / rnorm0
            )
        # Recycling applications count against the iteration cap.
        budget = self.maxiter - recycled
        restart = budget if self._restart is None else self._restart
        iterations = 0
        cycle = 0
        new_directions: List[Vector] = []

        while iterations < budget and beta / rnorm0 > self.rtol:
            apply_precond = self._select_preconditioner(preconditioner, cycle)
            m = min(restart, budget - iterations)
            beta, steps, directions = self._cycle(
                operator, apply_precond, x, r, beta, m, rnorm0, iterations, norms
            )
            iterations += steps
            new_directions.extend(directions)
            cycle += 1
            if steps == 0:
                break

        self._remember(new_directions)
        return KrylovResult(
            x, beta / rnorm0, iterations, norms, recycled=recycled
        )

    def _cycle(
        self,
        operator: Operator,
        apply_precond: Operator,
        x: Vector,
        r: Vector,
        beta: float,
        m: int,
        rnorm0: float,
        offset: int,
        norms: List[float],
    ) -> Tuple[float, int, List[Vector]]:
        """
        One restart cycle of at most m Arnoldi steps. Updates x and r in
        place and returns the new residual norm, the number of steps and
        the preconditioned directions.
        """
        v = r.copy()
        v *= 1.0 / beta
        basis = [v]
        directions: List[Vector] = []
        hessenberg = np.zeros((m + 1, m))
        cs = np.zeros(m)
        sn = np.zeros(m)
        g = np.zeros(m + 1)
        g[0] = beta
        steps = 0

        for j in range(m):
            z = apply_precond(basis[j])
            w = operator(z.copy())

            # Arnoldi with modified Gram-Schmidt.
            for i in range(j + 1):
                hessenberg[i, j] = dot_product(w, basis[i])
                w.axpy(-hessenberg[i, j], basis[i])
            hnext = w.norm()
            hessenberg[j + 1, j] = hnext

            for i in range(j):
                temp = cs[i] * hessenberg[i, j] + sn[i] * hessenberg[i + 1, j]
                hessenberg[i + 1, j] = (
                    -sn[i] * hessenberg[i, j] + cs[i] * hessenberg[i + 1, j]
                )
                hessenberg[i, j] = temp

            denom = np.hypot(hessenberg[j, j], hessenberg[j + 1, j])
            if denom == 0:
                logger.warning("%s breakdown at iteration %d", self.name, offset + j + 1)
                break

            directions.append(z)
            steps = j + 1
            if hnext > 0:
                w *= 1.0 / hnext
                basis.append(w)

            cs[j] = hessenberg[j, j] / denom
            sn[j] = hessenberg[j + 1, j] / denom
            hessenberg[j, j] = denom
            hessenberg[j + 1, j] = 0.0
            g[j + 1] = -sn[j] * g[j]
            g[j] = cs[j] * g[j]

            residual = abs(g[j + 1])
            norms.append(residual)
            self._log_iteration(offset + steps, residual / rnorm0)
            if residual / rnorm0 <= self.rtol or hnext == 0:
                break

        if steps == 0:
            return beta, 0, directions

        y = solve_triangular(hessenberg[:steps, :steps], g[:steps])
        for i in range(steps):
            x.axpy(y[i], directions[i])

        # The new residual is V Q^T (0, ..., 0, g[steps]), no extra product.
        e = np.zeros(steps + 1)
        e[steps] = g[steps]
        for i in range(steps - 1, -1, -1):
            e[i], e[i + 1] = (
                cs[i] * e[i] - sn[i] * e[i + 1],
                sn[i] * e[i] + cs[i] * e[i + 1],
            )
        r.zero()
        for i in range(min(steps + 1, len(basis))):
            r.axpy(e[i], basis[i])

        return abs(g[steps]), steps, directions
