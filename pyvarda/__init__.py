from pyvarda.exceptions import (
    PyvardaError,
    ConfigurationError,
    ConsistencyError,
)

from pyvarda.hilbert_space import HilbertSpace, EuclideanSpace

from pyvarda.linear_operators import LinearOperator, DiagonalLinearOperator

from pyvarda.vector_space import Vector, dot_product

from pyvarda.control_increment import ControlSpace, ControlIncrement

from pyvarda.dual_vector import GeneralizedDepartures, DualVector

from pyvarda.observers import TLObserver, ADObserver, ObserverSet

from pyvarda.cost_function import (
    ModelRunner,
    BackgroundTerm,
    CostTerm,
    CostFunction,
)

from pyvarda.cost_terms import CostJb, CostJo

from pyvarda.model_runner import LinearModelRunner

from pyvarda.variable_change import LinearVariableChange, OperatorVariableChange

from pyvarda.hessian import HessianMatrix, BMatrix

from pyvarda.saddle_point import (
    SaddlePointVector,
    SaddlePointMatrix,
    SaddlePointPrecondMatrix,
)

from pyvarda.krylov import (
    KrylovResult,
    KrylovSolver,
    FGMRESSolver,
    GMRESRSolver,
)

from pyvarda.config import MinimizerConfig, EnsembleConfig, CheckConfig

from pyvarda.minimizers import (
    Minimizer,
    SaddlePointMinimizer,
    FGMRESMinimizer,
    create_minimizer,
)

from pyvarda.ensemble import State, StateEnsemble, Ensemble

from pyvarda.checks import (
    AdjointTestReport,
    log_adjoint_test,
    check_operator_symmetry,
    ErrorCovarianceChecks,
    LinearVariableChangeChecks,
)
