"""
Temperature response functions for photosynthesis parameters.

Each kinetic parameter is defined at a 25 °C reference and scaled to leaf
temperature by a response function chosen from a coefficient table. Tables
are plain data, so an alternative calibration is substituted by passing a
different dictionary rather than by editing solver code.

Supported response types:
- 'arrhenius': exp(Ea (Tk - Tref) / (R Tref Tk))
- 'peaked': Arrhenius with high-temperature deactivation (Hd, S)
- 'q10': Q10 ** ((T - Tref) / 10)
- 'flat': no temperature dependence
"""

import numpy as np
from typing import Dict, Union, Optional, Mapping
from dataclasses import dataclass

from .errors import InvalidParameterError

# Constants for temperature calculations
IDEAL_GAS_CONSTANT = 8.314e-3  # kJ / mol / K
ABSOLUTE_ZERO = -273.15  # degrees C
T_REF_C = 25.0  # Reference temperature (°C)


@dataclass(frozen=True)
class TemperatureParameter:
    """Temperature response definition for one parameter."""
    type: str  # 'arrhenius', 'peaked', 'q10' or 'flat'
    units: str = 'normalized to value at 25 degrees C'
    Ea: Optional[float] = None   # Activation energy (kJ/mol)
    Hd: Optional[float] = None   # Deactivation energy (kJ/mol)
    S: Optional[float] = None    # Entropy term (kJ/K/mol)
    q10: Optional[float] = None
    t_ref: float = T_REF_C


def arrhenius_response(
    activation_energy: float,
    temperature_c: Union[float, np.ndarray],
    t_ref: float = T_REF_C
) -> Union[float, np.ndarray]:
    """
    Normalized Arrhenius temperature response (1.0 at t_ref).

    Args:
        activation_energy: Activation energy (kJ/mol)
        temperature_c: Leaf temperature (°C)
        t_ref: Reference temperature (°C)

    Returns:
        Multiplicative temperature factor
    """
    tk = np.asarray(temperature_c, dtype=float) - ABSOLUTE_ZERO
    tref_k = t_ref - ABSOLUTE_ZERO
    return np.exp(activation_energy * (tk - tref_k) / (IDEAL_GAS_CONSTANT * tref_k * tk))


def peaked_arrhenius_response(
    activation_energy: float,
    deactivation_energy: float,
    entropy: float,
    temperature_c: Union[float, np.ndarray],
    t_ref: float = T_REF_C
) -> Union[float, np.ndarray]:
    """
    Modified Arrhenius response with high-temperature inhibition.

    response = arrhenius(Ea) * (1 + exp((S Tref - Hd) / (R Tref)))
                             / (1 + exp((S Tk - Hd) / (R Tk)))

    Equals 1.0 at t_ref and declines above the thermal optimum.
    """
    tk = np.asarray(temperature_c, dtype=float) - ABSOLUTE_ZERO
    tref_k = t_ref - ABSOLUTE_ZERO
    top = 1.0 + np.exp((entropy * tref_k - deactivation_energy) /
                       (IDEAL_GAS_CONSTANT * tref_k))
    bot = 1.0 + np.exp((entropy * tk - deactivation_energy) /
                       (IDEAL_GAS_CONSTANT * tk))
    return arrhenius_response(activation_energy, temperature_c, t_ref) * top / bot


def q10_response(
    q10: float,
    temperature_c: Union[float, np.ndarray],
    t_ref: float = T_REF_C
) -> Union[float, np.ndarray]:
    """Q10 temperature response, 1.0 at t_ref."""
    return q10 ** ((np.asarray(temperature_c, dtype=float) - t_ref) / 10.0)


def thermal_optimum(parameter: TemperatureParameter) -> float:
    """
    Temperature (°C) at which a peaked response is maximal.

    Topt = Hd / (S - R ln(Ea / (Hd - Ea)))
    """
    if parameter.type != 'peaked':
        raise ValueError("Thermal optimum is only defined for 'peaked' responses")
    ratio = parameter.Ea / (parameter.Hd - parameter.Ea)
    topt_k = parameter.Hd / (parameter.S - IDEAL_GAS_CONSTANT * np.log(ratio))
    return topt_k + ABSOLUTE_ZERO


def calculate_temperature_response(
    parameter: TemperatureParameter,
    temperature_c: Union[float, np.ndarray]
) -> Union[float, np.ndarray]:
    """
    Calculate temperature response for a single parameter.

    Args:
        parameter: Temperature parameter definition
        temperature_c: Temperature in degrees Celsius

    Returns:
        Multiplicative temperature factor

    Raises:
        InvalidParameterError: If the type is unknown or coefficients are missing
    """
    param_type = parameter.type.lower()

    if param_type == 'arrhenius':
        if parameter.Ea is None:
            raise InvalidParameterError("Arrhenius parameters require an 'Ea' value")
        return arrhenius_response(parameter.Ea, temperature_c, parameter.t_ref)

    elif param_type == 'peaked':
        if any(x is None for x in [parameter.Ea, parameter.Hd, parameter.S]):
            raise InvalidParameterError("Peaked parameters require 'Ea', 'Hd' and 'S' values")
        return peaked_arrhenius_response(
            parameter.Ea, parameter.Hd, parameter.S, temperature_c, parameter.t_ref
        )

    elif param_type == 'q10':
        if parameter.q10 is None or parameter.q10 <= 0:
            raise InvalidParameterError("Q10 parameters require a positive 'q10' value")
        return q10_response(parameter.q10, temperature_c, parameter.t_ref)

    elif param_type == 'flat':
        return np.ones_like(np.asarray(temperature_c, dtype=float))

    else:
        raise InvalidParameterError(
            f"Unknown temperature response type: '{param_type}'. "
            "Supported types are: arrhenius, peaked, q10, flat"
        )


def apply_temperature_response(
    values_at_25: Mapping[str, float],
    temperature_params: Mapping[str, TemperatureParameter],
    temperature_c: Union[float, np.ndarray]
) -> Dict[str, Union[float, np.ndarray]]:
    """
    Scale reference values to leaf temperature.

    Parameters without an entry in the table are returned unchanged.

    Args:
        values_at_25: Parameter values at the reference temperature
        temperature_params: Response definition per parameter name
        temperature_c: Leaf temperature in degrees Celsius

    Returns:
        New dictionary of temperature-adjusted values
    """
    adjusted = {}
    for name, value in values_at_25.items():
        if name in temperature_params:
            adjusted[name] = value * calculate_temperature_response(
                temperature_params[name], temperature_c
            )
        else:
            adjusted[name] = value
    return adjusted


# Predefined coefficient tables.
# Parameter names match BiochemicalParameters fields.

TEMPERATURE_PARAM_DEFAULT = {
    'vcmax': TemperatureParameter(type='arrhenius', Ea=82.62087),
    'jmax': TemperatureParameter(type='peaked', Ea=39.67689, Hd=200.0, S=0.6413615),
    'rd': TemperatureParameter(type='q10', q10=1.92),
    'gamma_star': TemperatureParameter(type='arrhenius', Ea=37.83),
    'kc': TemperatureParameter(type='arrhenius', Ea=79.43),
    'ko': TemperatureParameter(type='arrhenius', Ea=36.38),
    'km': TemperatureParameter(type='arrhenius', Ea=65.0),
    'tpu': TemperatureParameter(type='flat'),
}

TEMPERATURE_PARAM_BERNACCHI = {
    'vcmax': TemperatureParameter(type='arrhenius', Ea=65.33),
    'jmax': TemperatureParameter(type='arrhenius', Ea=43.5),
    'rd': TemperatureParameter(type='arrhenius', Ea=46.39),
    'gamma_star': TemperatureParameter(type='arrhenius', Ea=37.83),
    'kc': TemperatureParameter(type='arrhenius', Ea=79.43),
    'ko': TemperatureParameter(type='arrhenius', Ea=36.38),
    'km': TemperatureParameter(type='arrhenius', Ea=65.0),
    'tpu': TemperatureParameter(type='peaked', Ea=53.1, Hd=201.8, S=0.65),
}

TEMPERATURE_PARAM_FLAT = {
    name: TemperatureParameter(type='flat')
    for name in ['vcmax', 'jmax', 'rd', 'gamma_star', 'kc', 'ko', 'km', 'tpu']
}
