import os
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Dict, List, Optional, Union, Callable, Any, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..core.biochemistry import BiochemicalParameters
from ..core.conductance import ConductanceParameters
from ..core.data_structures import CurveDataset, LeafState
from ..core.energy_balance import EnergyBalanceAdapter
from ..core.options import SolverOptions, DEFAULT_SOLVER_OPTIONS
from .coupled import solve_leaf_gas_exchange, is_below_compensation
from .curve_fitting import fit_aci
from .results import FitResult

# Driver columns mapped onto LeafState fields
DRIVER_COLUMNS = {
    'Tleaf': 'tleaf',
    'PAR': 'par',
    'VPD': 'vpd',
    'Patm': 'patm',
    'Ca': 'ca',
    'RH': 'rh',
    'Tair': 'tair',
}


class BatchResult:
    """Container for batch processing results."""

    def __init__(self):
        self.results: Dict[str, Any] = {}
        self.summary_df: Optional[pd.DataFrame] = None
        self.failed_items: Dict[str, str] = {}
        self.warnings: Dict[str, List[str]] = {}

    @property
    def failed_curves(self) -> List[str]:
        return list(self.failed_items)

    def add_result(self, item_id: str, result: Any):
        """
        Add a result for one item.

        Args:
            item_id: Unique identifier for the curve or driver row
            result: FitResult or LeafGasExchangeResult
        """
        self.results[item_id] = result

    def add_failure(self, item_id: str, error_msg: str):
        """
        Record a failed item with its error message.

        Failed items are included in the summary with success=False.
        """
        self.failed_items[item_id] = error_msg
        self.warnings.setdefault(item_id, []).append(f"Failed: {error_msg}")

    def add_warning(self, item_id: str, warning_msg: str):
        """
        Add a warning for an item without marking it as failed.

        Warnings are kept for quality control, e.g. non-convergence.
        """
        self.warnings.setdefault(item_id, []).append(warning_msg)

    def generate_summary(self) -> pd.DataFrame:
        """Generate summary DataFrame from all results."""
        summary_data = []

        for item_id, result in self.results.items():
            row = {'item_id': item_id}
            if isinstance(result, FitResult):
                for param, value in result.parameters.items():
                    row[param] = value
                for param, value in result.standard_errors.items():
                    row[f'{param}_SE'] = value
                for param, (lower, upper) in result.confidence_intervals.items():
                    row[f'{param}_CI_lower'] = lower
                    row[f'{param}_CI_upper'] = upper
                row['rmse'] = result.rmse
                row['r_squared'] = result.r_squared
                row['n_points'] = result.n_points
                row['transition_ci'] = result.transition_ci
            else:
                row.update(result.to_dict())
                row['below_compensation'] = is_below_compensation(result)
            row['converged'] = result.converged
            row['success'] = True
            row['n_warnings'] = len(self.warnings.get(item_id, []))
            summary_data.append(row)

        for item_id, error_msg in self.failed_items.items():
            summary_data.append({'item_id': item_id, 'success': False,
                                 'converged': False, 'error': error_msg})

        self.summary_df = pd.DataFrame(summary_data)
        return self.summary_df

    def _record(self, item_id: str, outcome: Union[Any, Exception], caught: List[str]):
        for message in caught:
            self.add_warning(item_id, message)
        if isinstance(outcome, Exception):
            self.add_failure(item_id, f"{type(outcome).__name__}: {outcome}")
            return
        self.add_result(item_id, outcome)
        if not outcome.converged:
            self.add_warning(item_id, "Did not converge")


def process_single_curve(
    curve_data: Union[CurveDataset, pd.DataFrame],
    curve_id: str,
    fit_function: Callable,
    fit_kwargs: Dict[str, Any]
) -> Tuple[str, Union[FitResult, Exception], List[str]]:
    """
    Fit a single curve, capturing errors and warnings.

    Designed to run inside a worker process: per-item errors are returned
    rather than raised so one bad curve does not abort the batch.

    Returns:
        Tuple of (curve_id, result or exception, warning messages)
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        try:
            if isinstance(curve_data, pd.DataFrame):
                curve_data = CurveDataset(curve_data)
            outcome = fit_function(curve_data, **fit_kwargs)
        except Exception as e:
            outcome = e
    messages = [f"{w.category.__name__}: {w.message}" for w in caught]
    return curve_id, outcome, messages


def _split_curves(
    data: Union[pd.DataFrame, CurveDataset, Dict[str, Union[pd.DataFrame, CurveDataset]]],
    groupby: Optional[List[str]]
) -> Dict[str, Union[pd.DataFrame, CurveDataset]]:
    if isinstance(data, dict):
        return data
    if isinstance(data, (pd.DataFrame, CurveDataset)):
        if not groupby:
            return {'curve_1': data}
        df = data.data if isinstance(data, CurveDataset) else data
        curves = {}
        for name, group in df.groupby(groupby):
            if isinstance(name, tuple):
                curve_id = "_".join(str(n) for n in name)
            else:
                curve_id = str(name)
            curves[curve_id] = group.reset_index(drop=True)
        return curves
    raise ValueError("Data must be a DataFrame, CurveDataset, or dictionary of curves")


def batch_fit_aci(
    data: Union[pd.DataFrame, CurveDataset, Dict[str, Union[pd.DataFrame, CurveDataset]]],
    groupby: Optional[List[str]] = None,
    n_jobs: int = 1,
    progress_bar: bool = True,
    **fit_kwargs
) -> BatchResult:
    """
    Fit multiple A-Ci curves.

    Args:
        data: A dictionary of curves, or one DataFrame split with ``groupby``
        groupby: Column names identifying individual curves
        n_jobs: Number of worker processes (-1 for all CPUs)
        progress_bar: Show a tqdm progress bar
        **fit_kwargs: Passed on to fit_aci

    Returns:
        BatchResult; curves that raise are recorded as failures

    Examples:
        curves = {'leaf1': df1, 'leaf2': df2}
        results = batch_fit_aci(curves, known_rd=1.0)

        results = batch_fit_aci(df, groupby=['Genotype', 'Plant'], n_jobs=4)
    """
    curves = _split_curves(data, groupby)
    batch_result = BatchResult()

    if n_jobs == -1:
        n_jobs = os.cpu_count() or 1

    if n_jobs == 1:
        iterator = curves.items()
        if progress_bar:
            iterator = tqdm(iterator, desc="Fitting curves", total=len(curves))
        for curve_id, curve_data in iterator:
            _, outcome, caught = process_single_curve(curve_data, curve_id, fit_aci, fit_kwargs)
            batch_result._record(curve_id, outcome, caught)
    else:
        with ProcessPoolExecutor(max_workers=n_jobs) as executor:
            futures = {
                executor.submit(process_single_curve, curve_data, curve_id, fit_aci, fit_kwargs): curve_id
                for curve_id, curve_data in curves.items()
            }
            iterator = as_completed(futures)
            if progress_bar:
                iterator = tqdm(iterator, desc="Fitting curves", total=len(futures))
            for future in iterator:
                _, outcome, caught = future.result()
                batch_result._record(futures[future], outcome, caught)

    batch_result.generate_summary()

    n_total = len(curves)
    print(f"\nBatch fitting complete:")
    print(f"  Total curves: {n_total}")
    print(f"  Successful: {len(batch_result.results)}")
    print(f"  Failed: {len(batch_result.failed_items)}")
    if batch_result.warnings:
        print(f"  Curves with warnings: {len(batch_result.warnings)}")

    return batch_result


def _state_from_row(row: pd.Series) -> LeafState:
    fields = {}
    for column, name in DRIVER_COLUMNS.items():
        if column in row.index and pd.notna(row[column]):
            fields[name] = float(row[column])
    return LeafState(**fields)


def _optional(row: pd.Series, column: str) -> Optional[float]:
    if column in row.index and pd.notna(row[column]):
        return float(row[column])
    return None


def batch_solve_leaf(
    drivers: pd.DataFrame,
    bio_params: BiochemicalParameters,
    conductance_params: Optional[ConductanceParameters] = None,
    energy_balance: Optional[EnergyBalanceAdapter] = None,
    options: SolverOptions = DEFAULT_SOLVER_OPTIONS,
    progress_bar: bool = False
) -> BatchResult:
    """
    Solve leaf gas exchange for every row of a driver table.

    Recognised columns: Tleaf, PAR, VPD, Patm, Ca, RH, Tair, and optionally
    Ci or gs to select the Ci-given or gs-given mode for that row.

    Returns:
        BatchResult keyed by the row index
    """
    batch_result = BatchResult()
    iterator = drivers.iterrows()
    if progress_bar:
        iterator = tqdm(iterator, desc="Solving leaves", total=len(drivers))

    for index, row in iterator:
        item_id = str(index)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            try:
                outcome = solve_leaf_gas_exchange(
                    _state_from_row(row), bio_params,
                    conductance_params=conductance_params,
                    ci=_optional(row, 'Ci'),
                    gs=_optional(row, 'gs'),
                    energy_balance=energy_balance,
                    options=options,
                )
            except Exception as e:
                outcome = e
        batch_result._record(
            item_id, outcome, [f"{w.category.__name__}: {w.message}" for w in caught]
        )

    batch_result.generate_summary()
    return batch_result


def analyze_parameter_variability(
    batch_result: BatchResult,
    parameters: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Analyze parameter variability across batch results.

    Args:
        batch_result: Results from batch_fit_aci
        parameters: Parameters to analyze (None for all estimated ones)

    Returns:
        DataFrame with mean, std, CV%, min, max and n per parameter

    Example:
        >>> results = batch_fit_aci(df, groupby=['Genotype'])
        >>> analyze_parameter_variability(results, ['vcmax', 'jmax'])
    """
    if batch_result.summary_df is None:
        batch_result.generate_summary()

    df = batch_result.summary_df
    if df.empty or 'success' not in df.columns:
        return pd.DataFrame(columns=['parameter', 'mean', 'std', 'cv', 'min', 'max', 'n_curves'])
    df = df[df['success'] == True].copy()

    if parameters is None:
        names = set()
        for result in batch_result.results.values():
            if isinstance(result, FitResult):
                names.update(result.parameter_names)
        parameters = sorted(names)

    stats_data = []
    for param in parameters:
        if param not in df.columns:
            continue
        values = df[param].dropna()
        mean = values.mean()
        stats_data.append({
            'parameter': param,
            'mean': mean,
            'std': values.std(),
            'cv': values.std() / mean * 100 if mean != 0 else np.nan,
            'min': values.min(),
            'max': values.max(),
            'n_curves': len(values),
        })

    return pd.DataFrame(stats_data)
