"""Core data structures for bounded-variable linear programs."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numpy as np

from .exceptions import SolverConfigurationError

MAX_ITERATION_LIMIT = 2_147_483_647


class ObjSense(IntEnum):
    """Objective direction; the value multiplies costs into minimization form."""

    MINIMIZE = 1
    MAXIMIZE = -1


class SimplexStrategy(str, Enum):
    """Simplex variant chosen once per solve."""

    CHOOSE = "choose"
    DUAL_PLAIN = "dual-plain"
    DUAL_TASKS = "dual-tasks"
    DUAL_MULTI = "dual-multi"
    PRIMAL = "primal"


class ReturnStatus(str, Enum):
    """Outcome class of a solve call."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


class ModelStatus(str, Enum):
    """Terminal status of the model after a solve."""

    NOTSET = "notset"
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    UNBOUNDED_OR_INFEASIBLE = "unbounded_or_infeasible"
    OBJECTIVE_BOUND = "objective_bound"
    TIME_LIMIT = "time_limit"
    ITERATION_LIMIT = "iteration_limit"
    SOLVE_ERROR = "solve_error"

    @property
    def return_status(self) -> ReturnStatus:
        if self in (ModelStatus.ITERATION_LIMIT, ModelStatus.TIME_LIMIT):
            return ReturnStatus.WARNING
        if self in (ModelStatus.SOLVE_ERROR, ModelStatus.NOTSET):
            return ReturnStatus.ERROR
        return ReturnStatus.OK


class VariableStatus(str, Enum):
    """Basis status of a structural column or logical row."""

    BASIC = "basic"
    AT_LOWER = "at_lower"
    AT_UPPER = "at_upper"
    FREE = "free"
    FIXED = "fixed"


@dataclass
class LpModel:
    """A linear program in bounded-variable general form.

    ``minimize/maximize  col_cost^T x + offset``
    subject to ``row_lower <= A x <= row_upper`` and ``col_lower <= x <= col_upper``.

    The constraint matrix ``A`` is stored column-wise: the nonzeros of column ``j``
    are ``a_value[a_start[j]:a_start[j + 1]]`` in the rows
    ``a_index[a_start[j]:a_start[j + 1]]``.

    Attributes:
        num_col: Number of structural columns.
        num_row: Number of rows.
        col_cost: Objective coefficient of each column.
        col_lower: Column lower bounds (``-inf`` allowed).
        col_upper: Column upper bounds (``+inf`` allowed).
        row_lower: Row activity lower bounds.
        row_upper: Row activity upper bounds.
        a_start: Column start offsets, length ``num_col + 1``.
        a_index: Row index of each nonzero.
        a_value: Value of each nonzero.
        sense: ``ObjSense.MINIMIZE`` or ``ObjSense.MAXIMIZE``.
        offset: Constant added to the objective.
        model_name: Free-form label used in log records.

    Examples:
        >>> import math
        >>> model = build_model(
        ...     num_col=2, num_row=2,
        ...     col_cost=[-8.0, -10.0],
        ...     col_lower=[0.0, 0.0], col_upper=[math.inf, math.inf],
        ...     row_lower=[-math.inf, -math.inf], row_upper=[80.0, 120.0],
        ...     a_start=[0, 2, 4], a_index=[0, 1, 0, 1], a_value=[1.0, 2.0, 1.0, 4.0],
        ... )
        >>> model.num_nz
        4
    """

    num_col: int
    num_row: int
    col_cost: np.ndarray
    col_lower: np.ndarray
    col_upper: np.ndarray
    row_lower: np.ndarray
    row_upper: np.ndarray
    a_start: np.ndarray
    a_index: np.ndarray
    a_value: np.ndarray
    sense: ObjSense = ObjSense.MINIMIZE
    offset: float = 0.0
    model_name: str = ""

    @property
    def num_nz(self) -> int:
        return int(len(self.a_value))

    def validate(self) -> None:
        """Raise InvalidModelError when the model breaks the caller contract."""
        from .validation import validate_model

        validate_model(self)

    def with_sense(self, sense: ObjSense) -> LpModel:
        """Return a copy of the model with a different objective sense."""
        return LpModel(
            num_col=self.num_col,
            num_row=self.num_row,
            col_cost=self.col_cost.copy(),
            col_lower=self.col_lower.copy(),
            col_upper=self.col_upper.copy(),
            row_lower=self.row_lower.copy(),
            row_upper=self.row_upper.copy(),
            a_start=self.a_start.copy(),
            a_index=self.a_index.copy(),
            a_value=self.a_value.copy(),
            sense=ObjSense(sense),
            offset=self.offset,
            model_name=self.model_name,
        )


@dataclass
class Basis:
    """A basis for warm-starting the solver.

    Exactly ``num_row`` entries across ``col_status`` and ``row_status`` must be
    ``VariableStatus.BASIC`` for the basis to be usable.

    Attributes:
        col_status: Status of each structural column.
        row_status: Status of each row's logical variable.
        valid: False for a placeholder basis that carries no information.

    Examples:
        >>> result = solve_lp(model)
        >>> again = solve_lp(model, basis=result.basis)
        >>> again.info.simplex_iteration_count
        0
    """

    col_status: list[VariableStatus] = field(default_factory=list)
    row_status: list[VariableStatus] = field(default_factory=list)
    valid: bool = True

    @property
    def num_basic(self) -> int:
        return sum(1 for s in self.col_status if s is VariableStatus.BASIC) + sum(
            1 for s in self.row_status if s is VariableStatus.BASIC
        )


@dataclass
class Solution:
    """Primal and dual values in the caller's units and objective sense."""

    col_value: np.ndarray
    col_dual: np.ndarray
    row_value: np.ndarray
    row_dual: np.ndarray


@dataclass
class SimplexStats:
    """Factorization and work-vector statistics of the last solve.

    All fields stay at their defaults until ``valid`` is set by a completed solve.
    Densities are running averages of the fraction of nonzeros in the vector.

    Attributes:
        valid: True once a solve has completed.
        iteration_count: Simplex iterations of the last solve.
        num_invert: Factorizations built since the solver state was created.
        last_invert_num_el: Nonzeros in the L and U factors of the last factorization.
        last_factored_basis_num_el: Nonzeros of the basis matrix last factorized.
        col_aq_density: Density of the entering column ``B^-1 a_q``.
        row_ep_density: Density of the BTRAN result ``B^-T e_r``.
        row_ap_density: Density of the pivotal row ``e_r^T B^-1 [A -I]``.
        row_DSE_density: Density of the steepest edge update vector ``B^-1 rho_r``.
    """

    valid: bool = False
    iteration_count: int = 0
    num_invert: int = 0
    last_invert_num_el: int = 0
    last_factored_basis_num_el: int = 0
    col_aq_density: float = 0.0
    row_ep_density: float = 0.0
    row_ap_density: float = 0.0
    row_DSE_density: float = 0.0


@dataclass
class SolveInfo:
    """Scalar quality measures of the reported solution."""

    objective_function_value: float = 0.0
    dual_objective_value: float = 0.0
    simplex_iteration_count: int = 0
    num_primal_infeasibilities: int = 0
    max_primal_infeasibility: float = 0.0
    sum_primal_infeasibilities: float = 0.0
    num_dual_infeasibilities: int = 0
    max_dual_infeasibility: float = 0.0
    sum_dual_infeasibilities: float = 0.0
    max_complementarity_violation: float = 0.0
    sum_complementarity_violation: float = 0.0


@dataclass
class SolveResult:
    """Represents the output of a simplex solve.

    Attributes:
        status: OK for certified outcomes, WARNING for iteration/time limits,
                ERROR for numerical failure.
        model_status: Terminal status of the model.
        solution: Primal/dual values (also populated for limit statuses).
        basis: Final basis, usable for warm starting another solve.
        info: Objective values, infeasibility and complementarity measures.
        stats: Factorization and work-vector statistics.
        elapsed_time: Wall-clock seconds spent in the solve.

    Examples:
        >>> result = solve_lp(model)
        >>> result.model_status
        <ModelStatus.OPTIMAL: 'optimal'>
        >>> result.info.objective_function_value
        -480.0
    """

    status: ReturnStatus
    model_status: ModelStatus
    solution: Solution
    basis: Basis
    info: SolveInfo
    stats: SimplexStats
    elapsed_time: float = 0.0


@dataclass(frozen=True)
class ProgressInfo:
    """Progress information provided during solver execution.

    Attributes:
        iteration: Simplex iterations performed so far in this solve.
        max_iterations: Configured iteration limit.
        phase: Current phase (1 for feasibility, 2 for optimality).
        algorithm: "dual" or "primal".
        objective_estimate: Current objective in the caller's sense (phase 1 values
                            refer to the auxiliary problem).
        elapsed_time: Elapsed time in seconds since solve started.
    """

    iteration: int
    max_iterations: int
    phase: int
    algorithm: str
    objective_estimate: float
    elapsed_time: float


# Type alias for progress callback function
ProgressCallback = Callable[[ProgressInfo], None]


_DUAL_EDGE_WEIGHT_STRATEGIES = ("dantzig", "devex", "steepest_edge")
_PRIMAL_PRICING_STRATEGIES = ("devex", "dantzig")


@dataclass(frozen=True)
class SolverOptions:
    """Configuration options for the revised simplex solver.

    Options are immutable; derive variants with ``dataclasses.replace``.

    Attributes:
        simplex_strategy: Driver selection, one of "choose" (dual), "dual-plain",
                          "dual-tasks" (chunked parallel pricing), "dual-multi"
                          (multiple pricing) or "primal". Strings are normalized
                          to ``SimplexStrategy``.
        simplex_iteration_limit: Maximum simplex iterations per solve. 0 performs
                                 no iteration at all.
        time_limit: Deadline in seconds on the solver's run clock, which starts
            when the solver is created (default: unlimited).
        objective_bound: Minimization cutoff. A solve that proves the optimum is
                         above this value stops with ``ModelStatus.OBJECTIVE_BOUND``.
                         Ignored for maximization.
        primal_feasibility_tolerance: Bound violation accepted as feasible (default: 1e-7).
        dual_feasibility_tolerance: Reduced cost sign violation accepted (default: 1e-7).
        use_warm_start: Continue from the basis retained by the previous solve.
        dual_edge_weight_strategy: Dual pricing weights:
                                   - "steepest_edge" (default): exact ``||B^-T e_r||^2``
                                     updated each pivot
                                   - "devex": reference framework approximation
                                   - "dantzig": unit weights
        primal_pricing_strategy: "devex" (default) or "dantzig".
        perturb_costs: Apply random cost perturbation in the dual driver.
        simplex_scale_strategy: 0 disables scaling, 1 applies power-of-two
                                geometric-mean scaling (default).
        update_limit: Product-form updates before a full refactorization (default: 64).
        adaptive_refactorization: Adapt ``update_limit`` from condition estimates.
        condition_number_threshold: Condition estimate that forces a refactorization.
        condition_check_interval: Pivots between condition estimates.
        adaptive_update_min: Lower bound for the adaptive update limit.
        adaptive_update_max: Upper bound for the adaptive update limit.
        pivot_tolerance: Smallest pivot magnitude accepted by the ratio tests.
        max_concurrency: Worker threads for "dual-tasks" and "dual-multi".
        multi_candidates: Candidate rows evaluated per iteration by "dual-multi".
        numerical_retry_limit: Consecutive numerical failures tolerated before
                               the solve ends with ``ModelStatus.SOLVE_ERROR``.
        random_seed: Seed of the cost perturbation generator.
        use_jit: Apply eta updates through the Numba-compiled kernels.

    Examples:
        >>> options = SolverOptions(simplex_strategy="primal", simplex_iteration_limit=10)
        >>> options.simplex_strategy
        <SimplexStrategy.PRIMAL: 'primal'>
    """

    simplex_strategy: SimplexStrategy | str = SimplexStrategy.CHOOSE
    simplex_iteration_limit: int = MAX_ITERATION_LIMIT
    time_limit: float = math.inf
    objective_bound: float = math.inf
    primal_feasibility_tolerance: float = 1e-7
    dual_feasibility_tolerance: float = 1e-7
    use_warm_start: bool = True
    dual_edge_weight_strategy: str = "steepest_edge"
    primal_pricing_strategy: str = "devex"
    perturb_costs: bool = True
    simplex_scale_strategy: int = 1
    update_limit: int = 64
    adaptive_refactorization: bool = True
    condition_number_threshold: float = 1e12
    condition_check_interval: int = 10
    adaptive_update_min: int = 20
    adaptive_update_max: int = 200
    pivot_tolerance: float = 1e-7
    max_concurrency: int = 4
    multi_candidates: int = 8
    numerical_retry_limit: int = 5
    random_seed: int = 0
    use_jit: bool = True

    def __post_init__(self) -> None:
        try:
            strategy = SimplexStrategy(self.simplex_strategy)
        except ValueError:
            valid = ", ".join(s.value for s in SimplexStrategy)
            raise SolverConfigurationError(
                f"Invalid simplex strategy '{self.simplex_strategy}'. Must be one of: {valid}."
            ) from None
        object.__setattr__(self, "simplex_strategy", strategy)

        if self.simplex_iteration_limit < 0:
            raise SolverConfigurationError(
                f"simplex_iteration_limit must be >= 0, got {self.simplex_iteration_limit}."
            )
        if math.isnan(self.time_limit) or self.time_limit < 0:
            raise SolverConfigurationError(
                f"time_limit must be >= 0, got {self.time_limit}."
            )
        if math.isnan(self.objective_bound):
            raise SolverConfigurationError("objective_bound must not be NaN.")
        for name in ("primal_feasibility_tolerance", "dual_feasibility_tolerance", "pivot_tolerance"):
            value = getattr(self, name)
            if not value > 0:
                raise SolverConfigurationError(
                    f"{name} must be positive, got {value}. "
                    f"Tolerances control feasibility and optimality checks."
                )
        if self.dual_edge_weight_strategy not in _DUAL_EDGE_WEIGHT_STRATEGIES:
            raise SolverConfigurationError(
                f"Invalid dual edge weight strategy '{self.dual_edge_weight_strategy}'. "
                f"Must be 'steepest_edge', 'devex' or 'dantzig'."
            )
        if self.primal_pricing_strategy not in _PRIMAL_PRICING_STRATEGIES:
            raise SolverConfigurationError(
                f"Invalid primal pricing strategy '{self.primal_pricing_strategy}'. "
                f"Must be 'devex' or 'dantzig'."
            )
        if self.simplex_scale_strategy not in (0, 1):
            raise SolverConfigurationError(
                f"simplex_scale_strategy must be 0 (off) or 1 (on), got {self.simplex_scale_strategy}."
            )
        if self.update_limit <= 0:
            raise SolverConfigurationError(
                f"update_limit must be positive, got {self.update_limit}. "
                f"This controls how often the basis factorization is rebuilt."
            )
        if self.condition_number_threshold <= 1:
            raise SolverConfigurationError(
                f"Condition number threshold must be > 1, got {self.condition_number_threshold}. "
                f"Typical values are 1e10 to 1e14."
            )
        if self.condition_check_interval <= 0:
            raise SolverConfigurationError(
                f"condition_check_interval must be positive, got {self.condition_check_interval}."
            )
        if self.adaptive_update_min <= 0 or self.adaptive_update_min > self.adaptive_update_max:
            raise SolverConfigurationError(
                f"Adaptive update min must be positive and <= max, got "
                f"min={self.adaptive_update_min}, max={self.adaptive_update_max}."
            )
        if self.max_concurrency <= 0:
            raise SolverConfigurationError(
                f"max_concurrency must be positive, got {self.max_concurrency}."
            )
        if self.multi_candidates <= 0:
            raise SolverConfigurationError(
                f"multi_candidates must be positive, got {self.multi_candidates}."
            )
        if self.numerical_retry_limit < 0:
            raise SolverConfigurationError(
                f"numerical_retry_limit must be >= 0, got {self.numerical_retry_limit}."
            )


def _float_array(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.array(values, dtype=np.float64, copy=True).reshape(-1)


def _int_array(values: Sequence[int] | np.ndarray) -> np.ndarray:
    return np.array(values, dtype=np.int64, copy=True).reshape(-1)


def build_model(
    num_col: int,
    num_row: int,
    col_cost: Sequence[float],
    col_lower: Sequence[float],
    col_upper: Sequence[float],
    row_lower: Sequence[float],
    row_upper: Sequence[float],
    a_start: Sequence[int],
    a_index: Sequence[int],
    a_value: Sequence[float],
    sense: ObjSense | int = ObjSense.MINIMIZE,
    offset: float = 0.0,
    model_name: str = "",
) -> LpModel:
    """Factory helper that assembles and validates an LpModel."""
    if sense not in (ObjSense.MINIMIZE, ObjSense.MAXIMIZE):
        from .exceptions import InvalidModelError
        from .validation import InputStatus

        raise InvalidModelError(
            f"Objective sense must be 1 (minimize) or -1 (maximize), got {sense}.",
            input_status=InputStatus.ERROR_OBJECTIVE,
        )
    model = LpModel(
        num_col=int(num_col),
        num_row=int(num_row),
        col_cost=_float_array(col_cost),
        col_lower=_float_array(col_lower),
        col_upper=_float_array(col_upper),
        row_lower=_float_array(row_lower),
        row_upper=_float_array(row_upper),
        a_start=_int_array(a_start),
        a_index=_int_array(a_index),
        a_value=_float_array(a_value),
        sense=ObjSense(sense),
        offset=float(offset),
        model_name=model_name,
    )
    model.validate()
    return model
